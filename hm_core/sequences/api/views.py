# backend/hm_core/sequences/api/views.py
from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from hm_core.common.permissions import SequencePermission
from hm_core.common.scope import require_scope
from hm_core.sequences.models import IdSequence
from hm_core.sequences.selectors import list_sequences
from hm_core.sequences.serializers import IdSequenceSerializer, IssuedIdentifierSerializer
from hm_core.sequences.services import SequenceService


class SequenceViewSet(viewsets.ViewSet):
    permission_classes = [SequencePermission]
    serializer_class = IdSequenceSerializer
    queryset = IdSequence.objects.none()
    lookup_field = "sequence_type"
    lookup_value_regex = r"[a-z_]+"

    def list(self, request):
        scope = require_scope(request)
        qs = list_sequences(tenant_id=scope.tenant_id, facility_id=scope.facility_id)
        return Response(IdSequenceSerializer(qs, many=True).data)

    @extend_schema(request=None, responses={201: IssuedIdentifierSerializer})
    @action(detail=True, methods=["post"], url_path="next")
    def next(self, request, sequence_type=None):
        scope = require_scope(request)
        value = SequenceService.next_value(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            sequence_type=sequence_type,
        )
        out = IssuedIdentifierSerializer({"sequence_type": sequence_type, "value": value})
        return Response(out.data, status=status.HTTP_201_CREATED)
