from __future__ import annotations

from uuid import UUID

from django.db.models import QuerySet

from hm_core.sequences.models import IdSequence


def list_sequences(*, tenant_id: UUID, facility_id: UUID) -> QuerySet[IdSequence]:
    return IdSequence.objects.filter(tenant_id=tenant_id, facility_id=facility_id).order_by("sequence_type")
