# backend/hm_core/admissions/services/allocation.py
"""
Allocation ledger: which admission holds which bed, and when.

Lock order everywhere: admission row first, then beds by primary key.
"""
from __future__ import annotations

from uuid import UUID

import structlog
from django.db import IntegrityError, transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound

from hm_core.admissions.models import Admission, AdmissionStatus, BedAssignment
from hm_core.admissions.timeline import record_event
from hm_core.beds.models import Bed, BedStatus
from hm_core.beds.services import BedService
from hm_core.common.api.exceptions import BedUnavailable, ConcurrentUpdate, InvalidStateTransition
from hm_core.common.db import retry_on_conflict, unit_of_work
from hm_core.common.events import publish

log = structlog.get_logger(__name__)


class AllocationService:
    # ---------------------------------------------------------------------
    # Locked reads (call inside a unit of work)
    # ---------------------------------------------------------------------
    @staticmethod
    def lock_admission(*, tenant_id: UUID, facility_id: UUID, admission_id: UUID) -> Admission:
        return Admission.objects.select_for_update().get(id=admission_id, tenant_id=tenant_id, facility_id=facility_id)

    @staticmethod
    def _current_assignment_locked(admission: Admission) -> BedAssignment | None:
        return (
            BedAssignment.objects.select_for_update()
            .filter(admission=admission, released_at__isnull=True)
            .first()
        )

    @staticmethod
    def _lock_beds(*, admission: Admission, bed_ids: set[UUID]) -> dict[UUID, Bed]:
        beds = (
            Bed.objects.select_for_update()
            .filter(tenant_id=admission.tenant_id, facility_id=admission.facility_id, id__in=bed_ids)
            .order_by("id")
        )
        return {bed.id: bed for bed in beds}

    @staticmethod
    def _close(*, assignment: BedAssignment, actor_user_id: int | None, reason: str, released_at) -> None:
        assignment.released_at = released_at
        assignment.released_by_id = actor_user_id
        assignment.transfer_reason = reason or ""
        assignment.save(update_fields=["released_at", "released_by_id", "transfer_reason", "updated_at"])

    # ---------------------------------------------------------------------
    # Ledger writes on an already-locked admission
    # ---------------------------------------------------------------------
    @staticmethod
    def assign_locked(
        *,
        admission: Admission,
        bed_id: UUID,
        actor_user_id: int | None,
        transfer_reason: str = "",
    ) -> BedAssignment:
        """
        Move `admission` into `bed_id`, closing its current assignment if any.
        The admission row must already be locked by the caller.
        """
        if admission.status != AdmissionStatus.ACTIVE:
            raise InvalidStateTransition(
                f"Admission {admission.admission_number} is {admission.status}; beds can only be assigned to active admissions.",
                admission_id=admission.id,
                current_status=admission.status,
            )

        bed_id = UUID(str(bed_id))
        current = AllocationService._current_assignment_locked(admission)
        bed_ids = {bed_id} | ({current.bed_id} if current else set())
        beds = AllocationService._lock_beds(admission=admission, bed_ids=bed_ids)

        bed = beds.get(bed_id)
        if bed is None:
            raise NotFound("Bed not found.")

        if current is not None and current.bed_id == bed.id:
            raise InvalidStateTransition(
                f"Admission {admission.admission_number} already occupies bed {bed.bed_number}.",
                admission_id=admission.id,
                bed_id=bed.id,
            )

        if not bed.is_available:
            raise BedUnavailable(
                f"Bed {bed.bed_number} is {bed.status}.",
                bed_id=bed.id,
                bed_number=bed.bed_number,
                status=bed.status,
            )

        if not Bed.objects.filter(id=bed.id, room__is_operational=True).exists():
            raise BedUnavailable(
                f"Bed {bed.bed_number} is in a room that is not operational.",
                bed_id=bed.id,
                bed_number=bed.bed_number,
                status=bed.status,
            )

        now = timezone.now()
        previous_bed = None
        if current is not None:
            previous_bed = beds[current.bed_id]
            reason = transfer_reason or f"Transferred to bed {bed.bed_number}"
            AllocationService._close(assignment=current, actor_user_id=actor_user_id, reason=reason, released_at=now)
            BedService.transition_bed_status(
                bed=previous_bed,
                new_status=BedStatus.CLEANING,
                actor_user_id=actor_user_id,
                reason=reason,
                admission_id=admission.id,
                assignment_id=current.id,
                via_allocation=True,
            )

        try:
            with transaction.atomic():
                assignment = BedAssignment.objects.create(
                    tenant_id=admission.tenant_id,
                    facility_id=admission.facility_id,
                    admission=admission,
                    bed=bed,
                    assigned_at=now,
                    assigned_by_id=actor_user_id,
                    transfer_reason=transfer_reason if current is not None else "",
                )
        except IntegrityError as exc:
            if BedAssignment.objects.filter(bed=bed, released_at__isnull=True).exists():
                raise BedUnavailable(
                    f"Bed {bed.bed_number} was just assigned to another admission.",
                    bed_id=bed.id,
                    bed_number=bed.bed_number,
                    status=BedStatus.OCCUPIED,
                ) from exc
            raise ConcurrentUpdate(
                f"Admission {admission.admission_number} was assigned a bed concurrently.",
                admission_id=admission.id,
            ) from exc

        BedService.transition_bed_status(
            bed=bed,
            new_status=BedStatus.OCCUPIED,
            actor_user_id=actor_user_id,
            reason=f"Assigned to admission {admission.admission_number}",
            admission_id=admission.id,
            assignment_id=assignment.id,
            via_allocation=True,
        )

        if previous_bed is None:
            record_event(
                admission=admission,
                code="BED_ASSIGNED",
                title=f"Bed {bed.bed_number} assigned",
                actor_user_id=actor_user_id,
                event_key=f"BED_ASSIGNED:{assignment.id}",
                timestamp=now,
                meta={"assignment_id": str(assignment.id), "bed_id": str(bed.id), "bed_number": bed.bed_number},
            )
        else:
            record_event(
                admission=admission,
                code="BED_TRANSFERRED",
                title=f"Transferred from bed {previous_bed.bed_number} to {bed.bed_number}",
                actor_user_id=actor_user_id,
                event_key=f"BED_TRANSFERRED:{assignment.id}",
                timestamp=now,
                meta={
                    "assignment_id": str(assignment.id),
                    "from_bed_id": str(previous_bed.id),
                    "to_bed_id": str(bed.id),
                    "reason": current.transfer_reason,
                },
            )

        log.info(
            "bed.assigned",
            admission_id=str(admission.id),
            bed_id=str(bed.id),
            bed_number=bed.bed_number,
            from_bed_id=str(previous_bed.id) if previous_bed else None,
            actor_user_id=actor_user_id,
        )
        return assignment

    @staticmethod
    def release_locked(
        *,
        admission: Admission,
        actor_user_id: int | None,
        reason: str = "",
        released_at=None,
    ) -> BedAssignment | None:
        """Close the open assignment (bed goes to cleaning). None when no bed is held."""
        current = AllocationService._current_assignment_locked(admission)
        if current is None:
            return None

        bed = AllocationService._lock_beds(admission=admission, bed_ids={current.bed_id})[current.bed_id]
        released_at = released_at or timezone.now()
        AllocationService._close(assignment=current, actor_user_id=actor_user_id, reason=reason, released_at=released_at)
        BedService.transition_bed_status(
            bed=bed,
            new_status=BedStatus.CLEANING,
            actor_user_id=actor_user_id,
            reason=reason or "Bed released",
            admission_id=admission.id,
            assignment_id=current.id,
            via_allocation=True,
        )
        record_event(
            admission=admission,
            code="BED_RELEASED",
            title=f"Bed {bed.bed_number} released",
            actor_user_id=actor_user_id,
            event_key=f"BED_RELEASED:{current.id}",
            timestamp=released_at,
            meta={"assignment_id": str(current.id), "bed_id": str(bed.id), "reason": reason or ""},
        )
        log.info("bed.released", admission_id=str(admission.id), bed_id=str(bed.id), actor_user_id=actor_user_id)
        return current

    # ---------------------------------------------------------------------
    # Public operations (own their unit of work)
    # ---------------------------------------------------------------------
    @staticmethod
    @retry_on_conflict
    def assign_bed(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        admission_id: UUID,
        bed_id: UUID,
        actor_user_id: int | None,
        transfer_reason: str = "",
    ) -> BedAssignment:
        with unit_of_work():
            admission = AllocationService.lock_admission(
                tenant_id=tenant_id, facility_id=facility_id, admission_id=admission_id
            )
            had_bed = AllocationService._current_assignment_locked(admission) is not None
            assignment = AllocationService.assign_locked(
                admission=admission,
                bed_id=bed_id,
                actor_user_id=actor_user_id,
                transfer_reason=transfer_reason,
            )

        if had_bed:
            AllocationService._publish_transfer(admission=admission, assignment=assignment)
        return assignment

    @staticmethod
    @retry_on_conflict
    def transfer_bed(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        admission_id: UUID,
        new_bed_id: UUID,
        actor_user_id: int | None,
        reason: str,
    ) -> BedAssignment:
        with unit_of_work():
            admission = AllocationService.lock_admission(
                tenant_id=tenant_id, facility_id=facility_id, admission_id=admission_id
            )
            if AllocationService._current_assignment_locked(admission) is None:
                raise InvalidStateTransition(
                    f"Admission {admission.admission_number} has no current bed to transfer from.",
                    admission_id=admission.id,
                )
            assignment = AllocationService.assign_locked(
                admission=admission,
                bed_id=new_bed_id,
                actor_user_id=actor_user_id,
                transfer_reason=reason,
            )

        AllocationService._publish_transfer(admission=admission, assignment=assignment)
        return assignment

    @staticmethod
    @retry_on_conflict
    def release_bed(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        admission_id: UUID,
        actor_user_id: int | None,
        reason: str = "",
    ) -> BedAssignment | None:
        with unit_of_work():
            admission = AllocationService.lock_admission(
                tenant_id=tenant_id, facility_id=facility_id, admission_id=admission_id
            )
            if admission.is_terminal:
                raise InvalidStateTransition(
                    f"Admission {admission.admission_number} is {admission.status}.",
                    admission_id=admission.id,
                    current_status=admission.status,
                )
            return AllocationService.release_locked(admission=admission, actor_user_id=actor_user_id, reason=reason)

    # ---------------------------------------------------------------------
    # Reads
    # ---------------------------------------------------------------------
    @staticmethod
    def get_current_bed(*, tenant_id: UUID, facility_id: UUID, admission_id: UUID) -> Bed | None:
        return (
            Bed.objects.select_related("room")
            .filter(
                tenant_id=tenant_id,
                facility_id=facility_id,
                assignments__admission_id=admission_id,
                assignments__released_at__isnull=True,
            )
            .first()
        )

    @staticmethod
    def assignment_history(*, tenant_id: UUID, facility_id: UUID, admission_id: UUID):
        return (
            BedAssignment.objects.select_related("bed", "bed__room")
            .filter(tenant_id=tenant_id, facility_id=facility_id, admission_id=admission_id)
            .order_by("assigned_at")
        )

    @staticmethod
    def _publish_transfer(*, admission: Admission, assignment: BedAssignment) -> None:
        publish(
            "admission.bed_transferred",
            {
                "tenant_id": str(admission.tenant_id),
                "facility_id": str(admission.facility_id),
                "admission_id": str(admission.id),
                "assignment_id": str(assignment.id),
                "bed_id": str(assignment.bed_id),
            },
        )
