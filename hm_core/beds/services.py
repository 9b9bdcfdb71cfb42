# backend/hm_core/beds/services.py
from __future__ import annotations

from uuid import UUID

import structlog
from django.db import IntegrityError, transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from hm_core.beds.models import Bed, BedStatus, BedStatusLog, Room
from hm_core.common.api.exceptions import InvalidStateTransition
from hm_core.common.db import retry_on_conflict, unit_of_work

log = structlog.get_logger(__name__)


# Allowed bed status moves. Anything not listed is rejected.
BED_TRANSITIONS: dict[str, frozenset[str]] = {
    BedStatus.AVAILABLE: frozenset({BedStatus.RESERVED, BedStatus.OCCUPIED, BedStatus.MAINTENANCE}),
    BedStatus.RESERVED: frozenset({BedStatus.AVAILABLE, BedStatus.MAINTENANCE}),
    BedStatus.OCCUPIED: frozenset({BedStatus.CLEANING}),
    BedStatus.CLEANING: frozenset({BedStatus.AVAILABLE, BedStatus.MAINTENANCE}),
    BedStatus.MAINTENANCE: frozenset({BedStatus.AVAILABLE, BedStatus.CLEANING}),
}

# Occupancy changes only as a side effect of the allocation ledger.
ALLOCATION_ONLY: frozenset[tuple[str, str]] = frozenset({
    (BedStatus.AVAILABLE, BedStatus.OCCUPIED),
    (BedStatus.OCCUPIED, BedStatus.CLEANING),
})


class BedService:
    # ---------------------------------------------------------------------
    # Locking + validation
    # ---------------------------------------------------------------------
    @staticmethod
    def lock_bed(*, tenant_id: UUID, facility_id: UUID, bed_id: UUID) -> Bed:
        """Bed row under SELECT ... FOR UPDATE. Must run inside a unit of work."""
        return Bed.objects.select_for_update().get(id=bed_id, tenant_id=tenant_id, facility_id=facility_id)

    @staticmethod
    def ensure_transition_allowed(*, bed: Bed, new_status: str, via_allocation: bool = False) -> None:
        old_status = bed.status

        if new_status not in BedStatus.values:
            raise ValidationError({"status": f"Unknown bed status '{new_status}'."})

        if old_status == new_status:
            raise InvalidStateTransition(
                f"Bed {bed.bed_number} is already {old_status}.",
                bed_id=bed.id,
                current_status=old_status,
                requested_status=new_status,
            )

        if old_status == BedStatus.OCCUPIED and new_status == BedStatus.MAINTENANCE:
            from hm_core.beds.selectors import get_current_occupant

            occupant = get_current_occupant(tenant_id=bed.tenant_id, facility_id=bed.facility_id, bed_id=bed.id)
            raise InvalidStateTransition(
                f"Bed {bed.bed_number} is occupied. Transfer the patient out before maintenance.",
                bed_id=bed.id,
                current_status=old_status,
                requested_status=new_status,
                assignment_id=occupant.id if occupant else None,
                admission_id=occupant.admission_id if occupant else None,
            )

        if new_status not in BED_TRANSITIONS.get(old_status, frozenset()):
            raise InvalidStateTransition(
                f"Bed {bed.bed_number} cannot move from {old_status} to {new_status}.",
                bed_id=bed.id,
                current_status=old_status,
                requested_status=new_status,
            )

        if (old_status, new_status) in ALLOCATION_ONLY and not via_allocation:
            raise InvalidStateTransition(
                f"Bed {bed.bed_number} can only become {new_status} through bed assignment.",
                bed_id=bed.id,
                current_status=old_status,
                requested_status=new_status,
            )

    # ---------------------------------------------------------------------
    # Status writes
    # ---------------------------------------------------------------------
    @staticmethod
    def transition_bed_status(
        *,
        bed: Bed,
        new_status: str,
        actor_user_id: int | None,
        reason: str = "",
        admission_id: UUID | None = None,
        assignment_id: UUID | None = None,
        via_allocation: bool = False,
        notes: str = "",
    ) -> BedStatusLog:
        """
        Validate and apply one bed status change plus its log row.

        The caller is expected to hold the row lock on `bed` (BedService.lock_bed).
        """
        with unit_of_work():
            BedService.ensure_transition_allowed(bed=bed, new_status=new_status, via_allocation=via_allocation)

            old_status = bed.status
            now = timezone.now()
            update_fields = ["status", "updated_at"]

            bed.status = new_status
            if old_status == BedStatus.CLEANING and new_status == BedStatus.AVAILABLE:
                bed.last_cleaned_at = now
                update_fields.append("last_cleaned_at")
            if new_status == BedStatus.MAINTENANCE:
                bed.maintenance_reported_at = now
                update_fields.append("maintenance_reported_at")
            elif old_status == BedStatus.MAINTENANCE:
                bed.maintenance_reported_at = None
                update_fields.append("maintenance_reported_at")

            bed.save(update_fields=update_fields)

            entry = BedStatusLog.objects.create(
                tenant_id=bed.tenant_id,
                facility_id=bed.facility_id,
                bed=bed,
                old_status=old_status,
                new_status=new_status,
                changed_by_id=actor_user_id,
                change_reason=reason or "",
                additional_notes=notes or "",
                admission_id=admission_id,
                assignment_id=assignment_id,
                changed_at=now,
            )

        log.info(
            "bed.status_changed",
            bed_id=str(bed.id),
            bed_number=bed.bed_number,
            old_status=old_status,
            new_status=new_status,
            actor_user_id=actor_user_id,
            admission_id=str(admission_id) if admission_id else None,
        )
        return entry

    @staticmethod
    def _staff_transition(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        bed_id: UUID,
        expected: frozenset[str],
        new_status: str,
        actor_user_id: int | None,
        reason: str,
        notes: str = "",
    ) -> Bed:
        with unit_of_work():
            bed = BedService.lock_bed(tenant_id=tenant_id, facility_id=facility_id, bed_id=bed_id)
            if bed.status not in expected:
                if bed.status == BedStatus.OCCUPIED and new_status == BedStatus.MAINTENANCE:
                    # Let the transition table explain the open assignment.
                    BedService.ensure_transition_allowed(bed=bed, new_status=new_status)
                raise InvalidStateTransition(
                    f"Bed {bed.bed_number} is {bed.status}; expected {' or '.join(sorted(expected))}.",
                    bed_id=bed.id,
                    current_status=bed.status,
                    requested_status=new_status,
                )
            BedService.transition_bed_status(
                bed=bed,
                new_status=new_status,
                actor_user_id=actor_user_id,
                reason=reason,
                notes=notes,
            )
        return bed

    @staticmethod
    @retry_on_conflict
    def reserve_bed(*, tenant_id: UUID, facility_id: UUID, bed_id: UUID, actor_user_id: int | None, reason: str = "", notes: str = "") -> Bed:
        return BedService._staff_transition(
            tenant_id=tenant_id,
            facility_id=facility_id,
            bed_id=bed_id,
            expected=frozenset({BedStatus.AVAILABLE}),
            new_status=BedStatus.RESERVED,
            actor_user_id=actor_user_id,
            reason=reason or "Bed reserved",
            notes=notes,
        )

    @staticmethod
    @retry_on_conflict
    def cancel_reservation(*, tenant_id: UUID, facility_id: UUID, bed_id: UUID, actor_user_id: int | None, reason: str = "", notes: str = "") -> Bed:
        return BedService._staff_transition(
            tenant_id=tenant_id,
            facility_id=facility_id,
            bed_id=bed_id,
            expected=frozenset({BedStatus.RESERVED}),
            new_status=BedStatus.AVAILABLE,
            actor_user_id=actor_user_id,
            reason=reason or "Reservation cancelled",
            notes=notes,
        )

    @staticmethod
    @retry_on_conflict
    def mark_maintenance(*, tenant_id: UUID, facility_id: UUID, bed_id: UUID, actor_user_id: int | None, reason: str, notes: str = "") -> Bed:
        if not (reason or "").strip():
            raise ValidationError({"reason": "A reason is required when taking a bed out of service."})
        return BedService._staff_transition(
            tenant_id=tenant_id,
            facility_id=facility_id,
            bed_id=bed_id,
            expected=frozenset({BedStatus.AVAILABLE, BedStatus.RESERVED, BedStatus.CLEANING}),
            new_status=BedStatus.MAINTENANCE,
            actor_user_id=actor_user_id,
            reason=reason,
            notes=notes,
        )

    @staticmethod
    @retry_on_conflict
    def complete_maintenance(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        bed_id: UUID,
        actor_user_id: int | None,
        next_status: str = BedStatus.AVAILABLE,
        reason: str = "",
        notes: str = "",
    ) -> Bed:
        if next_status not in (BedStatus.AVAILABLE, BedStatus.CLEANING):
            raise ValidationError({"next_status": "Maintenance can only complete to available or cleaning."})
        return BedService._staff_transition(
            tenant_id=tenant_id,
            facility_id=facility_id,
            bed_id=bed_id,
            expected=frozenset({BedStatus.MAINTENANCE}),
            new_status=next_status,
            actor_user_id=actor_user_id,
            reason=reason or "Maintenance completed",
            notes=notes,
        )

    @staticmethod
    @retry_on_conflict
    def mark_cleaned(*, tenant_id: UUID, facility_id: UUID, bed_id: UUID, actor_user_id: int | None, reason: str = "", notes: str = "") -> Bed:
        return BedService._staff_transition(
            tenant_id=tenant_id,
            facility_id=facility_id,
            bed_id=bed_id,
            expected=frozenset({BedStatus.CLEANING}),
            new_status=BedStatus.AVAILABLE,
            actor_user_id=actor_user_id,
            reason=reason or "Cleaning completed",
            notes=notes,
        )


class RoomService:
    @staticmethod
    @transaction.atomic
    def create_room(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        room_number: str,
        room_type: str,
        floor_number: int,
        department_id: UUID,
        max_capacity: int,
        is_operational: bool = True,
    ) -> Room:
        if max_capacity < 1:
            raise ValidationError({"max_capacity": "Room capacity must be at least 1."})
        try:
            with transaction.atomic():
                room = Room.objects.create(
                    tenant_id=tenant_id,
                    facility_id=facility_id,
                    room_number=room_number,
                    room_type=room_type,
                    floor_number=floor_number,
                    department_id=department_id,
                    max_capacity=max_capacity,
                    is_operational=is_operational,
                )
        except IntegrityError as exc:
            raise ValidationError({"room_number": f"Room {room_number} already exists in this facility."}) from exc

        log.info("room.created", room_id=str(room.id), room_number=room.room_number, floor=room.floor_number)
        return room

    @staticmethod
    @retry_on_conflict
    def create_bed(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        room_id: UUID,
        bed_number: str,
        actor_user_id: int | None,
        bed_type: str | None = None,
        features: list[str] | None = None,
    ) -> Bed:
        with unit_of_work():
            # Room lock serializes concurrent capacity checks.
            room = Room.objects.select_for_update().get(id=room_id, tenant_id=tenant_id, facility_id=facility_id)

            bed_count = Bed.objects.filter(room=room).count()
            if bed_count >= room.max_capacity:
                raise ValidationError(
                    {"room": f"Room {room.room_number} already holds {bed_count} of {room.max_capacity} beds."}
                )

            try:
                with transaction.atomic():
                    bed = Bed.objects.create(
                        tenant_id=tenant_id,
                        facility_id=facility_id,
                        room=room,
                        bed_number=bed_number,
                        bed_type=bed_type or room.room_type,
                        status=BedStatus.AVAILABLE,
                        features=list(features or []),
                    )
            except IntegrityError as exc:
                raise ValidationError({"bed_number": f"Bed {bed_number} already exists in room {room.room_number}."}) from exc

            BedStatusLog.objects.create(
                tenant_id=tenant_id,
                facility_id=facility_id,
                bed=bed,
                old_status=None,
                new_status=BedStatus.AVAILABLE,
                changed_by_id=actor_user_id,
                change_reason="Bed registered",
                changed_at=bed.created_at,
            )

        log.info("bed.created", bed_id=str(bed.id), bed_number=bed.bed_number, room_id=str(room.id))
        return bed

    @staticmethod
    @transaction.atomic
    def set_room_operational(*, tenant_id: UUID, facility_id: UUID, room_id: UUID, is_operational: bool) -> Room:
        room = Room.objects.select_for_update().get(id=room_id, tenant_id=tenant_id, facility_id=facility_id)
        if room.is_operational != is_operational:
            room.is_operational = is_operational
            room.save(update_fields=["is_operational", "updated_at"])
            log.info("room.operational_changed", room_id=str(room.id), is_operational=is_operational)
        return room
