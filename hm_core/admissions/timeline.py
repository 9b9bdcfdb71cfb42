# backend/hm_core/admissions/timeline.py
from __future__ import annotations

from typing import Any, Dict, Optional

from django.utils import timezone

from hm_core.admissions.models import Admission, AdmissionEvent


def record_event(
    *,
    admission: Admission,
    code: str,
    title: str = "",
    actor_user_id: int | None = None,
    event_key: str | None = None,
    timestamp=None,
    meta: Optional[Dict[str, Any]] = None,
) -> AdmissionEvent:
    """
    Idempotent timeline write, inside the caller's transaction.

    One-shot events (ADMISSION_CREATED, ADMISSION_DISCHARGED) use a key derived
    from the admission; repeatable ones pass their own key.
    """
    if timestamp is None:
        timestamp = timezone.now()

    event, _ = AdmissionEvent.objects.get_or_create(
        tenant_id=admission.tenant_id,
        facility_id=admission.facility_id,
        admission_id=admission.id,
        event_key=event_key or f"{code}:{admission.id}",
        defaults={
            "code": code,
            "title": title,
            "timestamp": timestamp,
            "actor_user_id": actor_user_id,
            "meta": meta or {},
        },
    )
    return event
