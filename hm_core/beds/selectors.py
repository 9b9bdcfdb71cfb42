# backend/hm_core/beds/selectors.py
from __future__ import annotations

from datetime import datetime, timedelta
from uuid import UUID

from django.db.models import Count, Q, QuerySet
from django.utils import timezone

from hm_core.beds.models import Bed, BedStatus, BedStatusLog, Room


def _scoped_beds(*, tenant_id: UUID, facility_id: UUID) -> QuerySet[Bed]:
    return Bed.objects.filter(tenant_id=tenant_id, facility_id=facility_id)


def list_beds(
    *,
    tenant_id: UUID,
    facility_id: UUID,
    status: str | None = None,
    bed_type: str | None = None,
    room_type: str | None = None,
    department_id: UUID | None = None,
    floor: int | None = None,
    feature: str | None = None,
) -> QuerySet[Bed]:
    qs = _scoped_beds(tenant_id=tenant_id, facility_id=facility_id).select_related("room")
    if status:
        qs = qs.filter(status=status)
    if bed_type:
        qs = qs.filter(bed_type=bed_type)
    if room_type:
        qs = qs.filter(room__room_type=room_type)
    if department_id:
        qs = qs.filter(room__department_id=department_id)
    if floor is not None:
        qs = qs.filter(room__floor_number=floor)
    if feature:
        qs = filter_by_feature(qs, feature)
    return qs.order_by("room__floor_number", "room__room_number", "bed_number")


def filter_by_feature(qs: QuerySet[Bed], feature: str) -> QuerySet[Bed]:
    # Match the JSON-encoded tag so "vent" does not match "ventilator".
    return qs.filter(features__icontains=f'"{feature}"')


def list_available_beds(
    *,
    tenant_id: UUID,
    facility_id: UUID,
    bed_type: str | None = None,
    room_type: str | None = None,
    department_id: UUID | None = None,
    floor: int | None = None,
    feature: str | None = None,
) -> QuerySet[Bed]:
    """Beds that can be assigned right now (available, in an operational room)."""
    return list_beds(
        tenant_id=tenant_id,
        facility_id=facility_id,
        status=BedStatus.AVAILABLE,
        bed_type=bed_type,
        room_type=room_type,
        department_id=department_id,
        floor=floor,
        feature=feature,
    ).filter(room__is_operational=True)


def get_current_occupant(*, tenant_id: UUID, facility_id: UUID, bed_id: UUID):
    """Open BedAssignment for the bed, or None."""
    from hm_core.admissions.models import BedAssignment

    return (
        BedAssignment.objects.select_related("admission")
        .filter(tenant_id=tenant_id, facility_id=facility_id, bed_id=bed_id, released_at__isnull=True)
        .first()
    )


# ---------------------------------------------------------------------
# Status log reads
# ---------------------------------------------------------------------
def _scoped_logs(*, tenant_id: UUID, facility_id: UUID) -> QuerySet[BedStatusLog]:
    return BedStatusLog.objects.filter(tenant_id=tenant_id, facility_id=facility_id)


def get_bed_history(*, tenant_id: UUID, facility_id: UUID, bed_id: UUID, limit: int = 50) -> QuerySet[BedStatusLog]:
    return _scoped_logs(tenant_id=tenant_id, facility_id=facility_id).filter(bed_id=bed_id).order_by("-changed_at")[:limit]


def recent_status_changes(*, tenant_id: UUID, facility_id: UUID, hours: int = 24, limit: int = 100) -> QuerySet[BedStatusLog]:
    since = timezone.now() - timedelta(hours=hours)
    return (
        _scoped_logs(tenant_id=tenant_id, facility_id=facility_id)
        .select_related("bed")
        .filter(changed_at__gte=since)
        .order_by("-changed_at")[:limit]
    )


def admission_bed_log(*, tenant_id: UUID, facility_id: UUID, admission_id: UUID) -> QuerySet[BedStatusLog]:
    return (
        _scoped_logs(tenant_id=tenant_id, facility_id=facility_id)
        .select_related("bed")
        .filter(admission_id=admission_id)
        .order_by("changed_at")
    )


def staff_activity(
    *,
    tenant_id: UUID,
    facility_id: UUID,
    user_id: int,
    start: datetime,
    end: datetime,
) -> QuerySet[BedStatusLog]:
    return (
        _scoped_logs(tenant_id=tenant_id, facility_id=facility_id)
        .select_related("bed")
        .filter(changed_by_id=user_id, changed_at__gte=start, changed_at__lte=end)
        .order_by("-changed_at")
    )


def long_maintenance_beds(*, tenant_id: UUID, facility_id: UUID, hours: int = 48) -> QuerySet[Bed]:
    threshold = timezone.now() - timedelta(hours=hours)
    return (
        _scoped_beds(tenant_id=tenant_id, facility_id=facility_id)
        .select_related("room")
        .filter(status=BedStatus.MAINTENANCE, maintenance_reported_at__lte=threshold)
        .order_by("maintenance_reported_at")
    )


# ---------------------------------------------------------------------
# Occupancy summaries
# ---------------------------------------------------------------------
def floor_summary(*, tenant_id: UUID, facility_id: UUID) -> list[dict]:
    rows = (
        _scoped_beds(tenant_id=tenant_id, facility_id=facility_id)
        .filter(room__is_operational=True)
        .values("room__floor_number")
        .annotate(
            total_beds=Count("id"),
            available_beds=Count("id", filter=Q(status=BedStatus.AVAILABLE)),
            occupied_beds=Count("id", filter=Q(status=BedStatus.OCCUPIED)),
        )
        .order_by("room__floor_number")
    )
    return [
        {
            "floor_number": r["room__floor_number"],
            "total_beds": r["total_beds"],
            "available_beds": r["available_beds"],
            "occupied_beds": r["occupied_beds"],
        }
        for r in rows
    ]


def rooms_summary(*, tenant_id: UUID, facility_id: UUID, floor: int | None = None) -> QuerySet[Room]:
    qs = Room.objects.filter(tenant_id=tenant_id, facility_id=facility_id, is_operational=True)
    if floor is not None:
        qs = qs.filter(floor_number=floor)
    return qs.annotate(
        total_beds=Count("beds"),
        available_beds=Count("beds", filter=Q(beds__status=BedStatus.AVAILABLE)),
        occupied_beds=Count("beds", filter=Q(beds__status=BedStatus.OCCUPIED)),
    ).order_by("floor_number", "room_number")


def room_occupancy(room: Room) -> dict:
    counts = room.beds.aggregate(
        total=Count("id"),
        occupied=Count("id", filter=Q(status=BedStatus.OCCUPIED)),
        available=Count("id", filter=Q(status=BedStatus.AVAILABLE)),
    )
    total = counts["total"] or 0
    return {
        "room_id": room.id,
        "room_number": room.room_number,
        "total_beds": total,
        "occupied_beds": counts["occupied"],
        "available_beds": counts["available"],
        "occupancy_percent": round(counts["occupied"] * 100 / total, 1) if total else 0.0,
    }
