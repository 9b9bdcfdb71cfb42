# backend/hm_core/admissions/services/discharge_sync.py
from __future__ import annotations

from uuid import UUID

import structlog
from django.conf import settings
from django.db.models import F
from django.utils import timezone

from hm_core.admissions.integrations import DischargeSyncGateway, DownstreamSyncFailed
from hm_core.admissions.models import Admission, DischargeSyncOutbox, DischargeSyncStatus

log = structlog.get_logger(__name__)


class DischargeSyncService:
    @staticmethod
    def build_payload(admission: Admission) -> dict:
        return {
            "patient_id": str(admission.patient_id),
            "admission_id": str(admission.id),
            "admission_number": admission.admission_number,
            "discharge_datetime": admission.discharge_date.isoformat() if admission.discharge_date else None,
            "final_diagnosis": admission.diagnosis_at_admission,
            "discharge_type": admission.discharge_type,
            "condition_on_discharge": admission.condition_on_discharge,
            "follow_up_instructions": admission.follow_up_instructions,
        }

    @staticmethod
    def enqueue(*, admission: Admission) -> DischargeSyncOutbox:
        """Write the outbox row; must run in the discharge transaction."""
        return DischargeSyncOutbox.objects.create(
            tenant_id=admission.tenant_id,
            facility_id=admission.facility_id,
            admission=admission,
            payload=DischargeSyncService.build_payload(admission),
            status=DischargeSyncStatus.PENDING,
        )

    @staticmethod
    def deliver(*, outbox_id: UUID, gateway: DischargeSyncGateway | None = None) -> bool:
        """
        Push one pending notification. Returns True when delivered.

        Runs after the discharge committed, so a failure is recorded on the
        outbox row and logged, never raised.
        """
        gateway = gateway or DischargeSyncGateway.from_settings()
        message = DischargeSyncOutbox.objects.filter(id=outbox_id).first()
        if message is None or message.status != DischargeSyncStatus.PENDING:
            return False

        bound = log.bind(outbox_id=str(message.id), admission_id=str(message.admission_id))
        if not gateway.enabled:
            bound.info("discharge_sync.disabled")
            return False

        now = timezone.now()
        try:
            gateway.send(message.payload)
        except DownstreamSyncFailed as exc:
            max_attempts = int(getattr(settings, "DISCHARGE_SYNC_MAX_ATTEMPTS", 5))
            attempts = message.attempts + 1
            status = DischargeSyncStatus.FAILED if attempts >= max_attempts else DischargeSyncStatus.PENDING
            DischargeSyncOutbox.objects.filter(id=message.id, status=DischargeSyncStatus.PENDING).update(
                attempts=F("attempts") + 1,
                last_error=str(exc)[:2000],
                last_attempt_at=now,
                status=status,
                updated_at=now,
            )
            bound.warning("discharge_sync.failed", error=str(exc), attempts=attempts, status=status)
            return False

        DischargeSyncOutbox.objects.filter(id=message.id).update(
            attempts=F("attempts") + 1,
            status=DischargeSyncStatus.DELIVERED,
            delivered_at=now,
            last_attempt_at=now,
            last_error="",
            updated_at=now,
        )
        bound.info("discharge_sync.delivered")
        return True

    @staticmethod
    def deliver_pending(*, limit: int = 50, gateway: DischargeSyncGateway | None = None) -> int:
        """Retry pending notifications, oldest first. Returns how many were delivered."""
        gateway = gateway or DischargeSyncGateway.from_settings()
        ids = list(
            DischargeSyncOutbox.objects.filter(status=DischargeSyncStatus.PENDING)
            .order_by("created_at")
            .values_list("id", flat=True)[:limit]
        )
        return sum(1 for outbox_id in ids if DischargeSyncService.deliver(outbox_id=outbox_id, gateway=gateway))
