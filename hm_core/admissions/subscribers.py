# backend/hm_core/admissions/subscribers.py
from __future__ import annotations

from datetime import date
from uuid import UUID

import structlog

from hm_core.admissions.services.lifecycle import AdmissionService
from hm_core.common.events import subscribe

log = structlog.get_logger(__name__)


@subscribe("clinical_docs.discharge_request_filed")
def on_discharge_request_filed(payload: dict) -> None:
    """
    A doctor filed a discharge-request note; move the admission to
    pending_discharge. Invalid state or non-attending doctor propagate to
    the publisher.
    """
    expected = payload.get("expected_discharge_date")
    if isinstance(expected, str) and expected:
        expected = date.fromisoformat(expected)

    log.info(
        "admission.discharge_request_signal",
        admission_id=payload.get("admission_id"),
        doctor_id=payload.get("doctor_id"),
    )
    AdmissionService.request_discharge(
        tenant_id=UUID(str(payload["tenant_id"])),
        facility_id=UUID(str(payload["facility_id"])),
        admission_id=UUID(str(payload["admission_id"])),
        doctor_id=int(payload["doctor_id"]),
        summary=payload.get("summary") or "",
        expected_discharge_date=expected or None,
        follow_up_instructions=payload.get("follow_up_instructions") or "",
    )
