# backend/hm_core/admissions/services/lifecycle.py
from __future__ import annotations

import functools
from datetime import date
from uuid import UUID

import structlog
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from hm_core.admissions.models import (
    DISCHARGE_OUTCOMES,
    Admission,
    AdmissionStatus,
    compute_length_of_stay,
)
from hm_core.admissions.services.allocation import AllocationService
from hm_core.admissions.services.discharge_sync import DischargeSyncService
from hm_core.admissions.timeline import record_event
from hm_core.common.api.exceptions import AccessDenied, ConcurrentUpdate, InvalidStateTransition
from hm_core.common.db import retry_on_conflict, unit_of_work
from hm_core.common.events import publish
from hm_core.sequences.models import SequenceType
from hm_core.sequences.services import SequenceService

log = structlog.get_logger(__name__)


def _event_payload(admission: Admission, **extra) -> dict:
    payload = {
        "tenant_id": str(admission.tenant_id),
        "facility_id": str(admission.facility_id),
        "admission_id": str(admission.id),
        "admission_number": admission.admission_number,
        "patient_id": str(admission.patient_id),
        "status": admission.status,
    }
    payload.update(extra)
    return payload


class AdmissionService:
    # ---------------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------------
    @staticmethod
    def _ensure_status(admission: Admission, allowed: set[str], *, action: str) -> None:
        if admission.status not in allowed:
            raise InvalidStateTransition(
                f"Cannot {action}: admission {admission.admission_number} is {admission.status}.",
                admission_id=admission.id,
                current_status=admission.status,
                allowed_statuses=sorted(allowed),
            )

    @staticmethod
    def _ensure_attending(admission: Admission, doctor_id: int | None, *, action: str) -> None:
        if doctor_id is None or int(doctor_id) != admission.attending_doctor_id:
            raise AccessDenied(
                f"Only the attending doctor can {action}.",
                admission_id=admission.id,
            )

    @staticmethod
    def _ensure_doctor_exists(doctor_id: int) -> None:
        User = get_user_model()
        if not User.objects.filter(id=doctor_id, is_active=True).exists():
            raise ValidationError({"attending_doctor_id": "Attending doctor not found or inactive."})

    # ---------------------------------------------------------------------
    # Create
    # ---------------------------------------------------------------------
    @staticmethod
    @retry_on_conflict
    def create(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        patient_id: UUID,
        attending_doctor_id: int,
        admission_type: str,
        admission_source: str,
        diagnosis: str,
        actor_user_id: int | None,
        bed_id: UUID | None = None,
        appointment_id: UUID | None = None,
        expected_discharge_date: date | None = None,
    ) -> Admission:
        """
        Admit a patient: number issue, admission row and optional first bed in
        one unit of work. Any failure leaves no admission and no consumed number.
        """
        AdmissionService._ensure_doctor_exists(attending_doctor_id)

        with unit_of_work():
            admission_number = SequenceService.next_value(
                tenant_id=tenant_id,
                facility_id=facility_id,
                sequence_type=SequenceType.ADMISSION,
            )

            try:
                with transaction.atomic():
                    admission = Admission.objects.create(
                        tenant_id=tenant_id,
                        facility_id=facility_id,
                        admission_number=admission_number,
                        patient_id=patient_id,
                        attending_doctor_id=attending_doctor_id,
                        appointment_id=appointment_id,
                        admission_type=admission_type,
                        admission_source=admission_source,
                        diagnosis_at_admission=diagnosis,
                        expected_discharge_date=expected_discharge_date,
                        status=AdmissionStatus.ACTIVE,
                        created_by_id=actor_user_id,
                    )
            except IntegrityError as exc:
                open_exists = Admission.objects.filter(
                    tenant_id=tenant_id,
                    facility_id=facility_id,
                    patient_id=patient_id,
                    status__in=[AdmissionStatus.ACTIVE, AdmissionStatus.PENDING_DISCHARGE],
                ).exists()
                if open_exists:
                    raise ValidationError({"patient_id": "Patient already has an open admission in this facility."}) from exc
                raise ConcurrentUpdate("Admission number collided; please retry.") from exc

            record_event(
                admission=admission,
                code="ADMISSION_CREATED",
                title="Patient admitted",
                actor_user_id=actor_user_id,
                timestamp=admission.admission_date,
                meta={
                    "admission_number": admission.admission_number,
                    "admission_type": admission.admission_type,
                    "admission_source": admission.admission_source,
                    "attending_doctor_id": attending_doctor_id,
                },
            )

            if bed_id:
                AllocationService.assign_locked(admission=admission, bed_id=bed_id, actor_user_id=actor_user_id)

        log.info(
            "admission.created",
            admission_id=str(admission.id),
            admission_number=admission.admission_number,
            patient_id=str(patient_id),
            bed_id=str(bed_id) if bed_id else None,
            actor_user_id=actor_user_id,
        )
        publish("admission.created", _event_payload(admission, bed_id=str(bed_id) if bed_id else None))
        return admission

    # ---------------------------------------------------------------------
    # Discharge workflow
    # ---------------------------------------------------------------------
    @staticmethod
    @retry_on_conflict
    def request_discharge(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        admission_id: UUID,
        doctor_id: int,
        summary: str,
        expected_discharge_date: date | None = None,
        follow_up_instructions: str = "",
    ) -> Admission:
        with unit_of_work():
            admission = AllocationService.lock_admission(
                tenant_id=tenant_id, facility_id=facility_id, admission_id=admission_id
            )
            AdmissionService._ensure_status(admission, {AdmissionStatus.ACTIVE}, action="request discharge")
            AdmissionService._ensure_attending(admission, doctor_id, action="request discharge")

            now = timezone.now()
            admission.status = AdmissionStatus.PENDING_DISCHARGE
            admission.discharge_summary = summary
            admission.expected_discharge_date = expected_discharge_date or timezone.localdate()
            admission.discharge_requested_by_id = doctor_id
            admission.discharge_requested_at = now
            if follow_up_instructions:
                admission.follow_up_instructions = follow_up_instructions
            admission.save(
                update_fields=[
                    "status",
                    "discharge_summary",
                    "expected_discharge_date",
                    "discharge_requested_by_id",
                    "discharge_requested_at",
                    "follow_up_instructions",
                    "updated_at",
                ]
            )

            record_event(
                admission=admission,
                code="DISCHARGE_REQUESTED",
                title="Discharge requested",
                actor_user_id=doctor_id,
                event_key=f"DISCHARGE_REQUESTED:{admission.id}:{now.isoformat()}",
                timestamp=now,
                meta={"expected_discharge_date": admission.expected_discharge_date.isoformat()},
            )

        log.info("admission.discharge_requested", admission_id=str(admission.id), doctor_id=doctor_id)
        publish("admission.discharge_requested", _event_payload(admission, doctor_id=doctor_id))
        return admission

    @staticmethod
    @retry_on_conflict
    def cancel_discharge_request(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        admission_id: UUID,
        actor_user_id: int | None,
        reason: str = "",
    ) -> Admission:
        with unit_of_work():
            admission = AllocationService.lock_admission(
                tenant_id=tenant_id, facility_id=facility_id, admission_id=admission_id
            )
            AdmissionService._ensure_status(
                admission, {AdmissionStatus.PENDING_DISCHARGE}, action="cancel the discharge request"
            )

            now = timezone.now()
            admission.status = AdmissionStatus.ACTIVE
            admission.discharge_requested_by_id = None
            admission.discharge_requested_at = None
            admission.save(update_fields=["status", "discharge_requested_by_id", "discharge_requested_at", "updated_at"])

            record_event(
                admission=admission,
                code="DISCHARGE_CANCELLED",
                title="Discharge request cancelled",
                actor_user_id=actor_user_id,
                event_key=f"DISCHARGE_CANCELLED:{admission.id}:{now.isoformat()}",
                timestamp=now,
                meta={"reason": reason},
            )

        log.info("admission.discharge_cancelled", admission_id=str(admission.id), actor_user_id=actor_user_id)
        publish("admission.discharge_cancelled", _event_payload(admission, actor_user_id=actor_user_id))
        return admission

    @staticmethod
    @retry_on_conflict
    def finalize_discharge(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        admission_id: UUID,
        actor_user_id: int | None,
        discharge_type: str,
        condition_on_discharge: str = "",
        follow_up_instructions: str | None = None,
    ) -> Admission:
        """
        pending_discharge -> discharged | transferred | deceased.

        Releases the bed (to cleaning), freezes length of stay, and queues the
        downstream discharge sync for delivery after commit.
        """
        terminal_status = DISCHARGE_OUTCOMES.get(discharge_type)
        if terminal_status is None:
            raise ValidationError({"discharge_type": f"Unknown discharge type '{discharge_type}'."})

        with unit_of_work():
            admission = AllocationService.lock_admission(
                tenant_id=tenant_id, facility_id=facility_id, admission_id=admission_id
            )
            AdmissionService._ensure_status(
                admission, {AdmissionStatus.PENDING_DISCHARGE}, action="finalize discharge"
            )

            now = timezone.now()
            released = AllocationService.release_locked(
                admission=admission,
                actor_user_id=actor_user_id,
                reason=f"Patient discharged ({discharge_type})",
                released_at=now,
            )

            admission.status = terminal_status
            admission.discharge_type = discharge_type
            admission.discharge_date = now
            admission.condition_on_discharge = condition_on_discharge or ""
            if follow_up_instructions is not None:
                admission.follow_up_instructions = follow_up_instructions
            admission.length_of_stay_days = compute_length_of_stay(admission.admission_date, now)
            admission.save(
                update_fields=[
                    "status",
                    "discharge_type",
                    "discharge_date",
                    "condition_on_discharge",
                    "follow_up_instructions",
                    "length_of_stay_days",
                    "updated_at",
                ]
            )

            record_event(
                admission=admission,
                code="ADMISSION_DISCHARGED",
                title=f"Discharge finalized ({admission.get_discharge_type_display()})",
                actor_user_id=actor_user_id,
                timestamp=now,
                meta={
                    "discharge_type": discharge_type,
                    "status": terminal_status,
                    "length_of_stay_days": admission.length_of_stay_days,
                    "released_assignment_id": str(released.id) if released else None,
                },
            )

            message = DischargeSyncService.enqueue(admission=admission)
            transaction.on_commit(
                functools.partial(DischargeSyncService.deliver, outbox_id=message.id),
                robust=True,
            )

        log.info(
            "admission.discharged",
            admission_id=str(admission.id),
            status=admission.status,
            discharge_type=discharge_type,
            length_of_stay_days=admission.length_of_stay_days,
            actor_user_id=actor_user_id,
        )
        publish(
            "admission.discharged",
            _event_payload(admission, discharge_type=discharge_type, length_of_stay_days=admission.length_of_stay_days),
        )
        return admission

    # ---------------------------------------------------------------------
    # Clinical details
    # ---------------------------------------------------------------------
    @staticmethod
    @retry_on_conflict
    def update_clinical_details(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        admission_id: UUID,
        doctor_id: int,
        diagnosis: str | None = None,
        expected_discharge_date: date | None = None,
    ) -> Admission:
        with unit_of_work():
            admission = AllocationService.lock_admission(
                tenant_id=tenant_id, facility_id=facility_id, admission_id=admission_id
            )
            AdmissionService._ensure_status(admission, {AdmissionStatus.ACTIVE}, action="update clinical details")
            AdmissionService._ensure_attending(admission, doctor_id, action="update clinical details")

            changed = {}
            if diagnosis is not None and diagnosis != admission.diagnosis_at_admission:
                admission.diagnosis_at_admission = diagnosis
                changed["diagnosis_at_admission"] = diagnosis
            if expected_discharge_date is not None and expected_discharge_date != admission.expected_discharge_date:
                admission.expected_discharge_date = expected_discharge_date
                changed["expected_discharge_date"] = expected_discharge_date.isoformat()

            if not changed:
                return admission

            now = timezone.now()
            admission.save(update_fields=[*changed.keys(), "updated_at"])
            record_event(
                admission=admission,
                code="CLINICAL_DETAILS_UPDATED",
                title="Clinical details updated",
                actor_user_id=doctor_id,
                event_key=f"CLINICAL_DETAILS_UPDATED:{admission.id}:{now.isoformat()}",
                timestamp=now,
                meta={"changed": changed},
            )

        log.info("admission.clinical_details_updated", admission_id=str(admission.id), fields=sorted(changed))
        return admission
