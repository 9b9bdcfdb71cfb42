# backend/hm_core/admissions/selectors.py
from __future__ import annotations

from typing import Optional
from uuid import UUID

from django.db.models import QuerySet

from hm_core.admissions.models import Admission, AdmissionEvent


class AdmissionSelectors:
    @staticmethod
    def list_admissions(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        status: Optional[str] = None,
        patient_id: Optional[UUID] = None,
        attending_doctor_id: Optional[int] = None,
    ) -> QuerySet[Admission]:
        qs = Admission.objects.filter(tenant_id=tenant_id, facility_id=facility_id)
        if status:
            qs = qs.filter(status__in=[s.strip() for s in status.split(",") if s.strip()])
        if patient_id:
            qs = qs.filter(patient_id=patient_id)
        if attending_doctor_id:
            qs = qs.filter(attending_doctor_id=attending_doctor_id)
        return qs.order_by("-admission_date")

    @staticmethod
    def get_admission(*, tenant_id: UUID, facility_id: UUID, admission_id: UUID) -> Admission:
        return Admission.objects.get(id=admission_id, tenant_id=tenant_id, facility_id=facility_id)

    @staticmethod
    def timeline(*, tenant_id: UUID, facility_id: UUID, admission_id: UUID) -> QuerySet[AdmissionEvent]:
        return AdmissionEvent.objects.filter(
            tenant_id=tenant_id,
            facility_id=facility_id,
            admission_id=admission_id,
        ).order_by("timestamp", "created_at")
