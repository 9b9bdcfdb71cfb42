# backend/hm_core/beds/api/views.py
from __future__ import annotations

from datetime import timedelta

from django.utils import timezone
from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response

from hm_core.beds import selectors
from hm_core.beds.filters import BedFilter
from hm_core.beds.models import Bed, Room
from hm_core.beds.serializers import (
    BedActionSerializer,
    BedCreateSerializer,
    BedSerializer,
    BedStatusLogSerializer,
    CompleteMaintenanceSerializer,
    FloorSummarySerializer,
    MaintenanceSerializer,
    RoomCreateSerializer,
    RoomOperationalSerializer,
    RoomSerializer,
    RoomSummarySerializer,
)
from hm_core.beds.services import BedService, RoomService
from hm_core.common.api.pagination import paginate
from hm_core.common.api.params import UUID_PATTERN, datetime_param, int_param, uuid_param
from hm_core.common.permissions import BedPermission, RoomPermission
from hm_core.common.scope import require_scope


class BedViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Bed registry reads + staff status actions.
    Occupancy (occupied <-> cleaning) only changes through admissions endpoints.
    """
    permission_classes = [BedPermission]
    serializer_class = BedSerializer
    filter_backends = [DjangoFilterBackend]
    filterset_class = BedFilter
    queryset = Bed.objects.none()
    lookup_value_regex = UUID_PATTERN

    def get_queryset(self):
        if getattr(self, "swagger_fake_view", False):
            return Bed.objects.none()
        scope = require_scope(self.request)
        return selectors.list_beds(tenant_id=scope.tenant_id, facility_id=scope.facility_id)

    def _bed_response(self, bed: Bed) -> Response:
        bed = Bed.objects.select_related("room").get(id=bed.id)
        return Response(BedSerializer(bed).data, status=status.HTTP_200_OK)

    # ------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------
    @extend_schema(
        parameters=[
            OpenApiParameter("bed_type", str),
            OpenApiParameter("room_type", str),
            OpenApiParameter("department_id", str),
            OpenApiParameter("floor", int),
            OpenApiParameter("feature", str),
        ],
        responses={200: BedSerializer(many=True)},
    )
    @action(detail=False, methods=["get"], url_path="available")
    def available(self, request):
        scope = require_scope(request)
        qs = selectors.list_available_beds(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            bed_type=request.query_params.get("bed_type") or None,
            room_type=request.query_params.get("room_type") or None,
            department_id=uuid_param(request, "department_id"),
            floor=int_param(request, "floor"),
            feature=request.query_params.get("feature") or None,
        )
        return paginate(request, qs, BedSerializer)

    @extend_schema(parameters=[OpenApiParameter("limit", int)], responses={200: BedStatusLogSerializer(many=True)})
    @action(detail=True, methods=["get"], url_path="history")
    def history(self, request, pk=None):
        scope = require_scope(request)
        bed = self.get_object()
        logs = selectors.get_bed_history(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            bed_id=bed.id,
            limit=int_param(request, "limit", 50, maximum=500),
        )
        return Response(BedStatusLogSerializer(logs, many=True).data)

    @action(detail=True, methods=["get"], url_path="occupant")
    def occupant(self, request, pk=None):
        scope = require_scope(request)
        bed = self.get_object()
        assignment = selectors.get_current_occupant(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            bed_id=bed.id,
        )
        if assignment is None:
            return Response({"bed_id": str(bed.id), "occupant": None})

        admission = assignment.admission
        return Response(
            {
                "bed_id": str(bed.id),
                "occupant": {
                    "assignment_id": str(assignment.id),
                    "admission_id": str(admission.id),
                    "admission_number": admission.admission_number,
                    "patient_id": str(admission.patient_id),
                    "assigned_at": assignment.assigned_at,
                },
            }
        )

    @extend_schema(responses={200: FloorSummarySerializer(many=True)})
    @action(detail=False, methods=["get"], url_path="floors")
    def floors(self, request):
        scope = require_scope(request)
        rows = selectors.floor_summary(tenant_id=scope.tenant_id, facility_id=scope.facility_id)
        return Response(FloorSummarySerializer(rows, many=True).data)

    @extend_schema(parameters=[OpenApiParameter("hours", int), OpenApiParameter("limit", int)])
    @action(detail=False, methods=["get"], url_path="recent-changes")
    def recent_changes(self, request):
        scope = require_scope(request)
        logs = selectors.recent_status_changes(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            hours=int_param(request, "hours", 24),
            limit=int_param(request, "limit", 100, maximum=500),
        )
        return Response(BedStatusLogSerializer(logs, many=True).data)

    @extend_schema(
        parameters=[
            OpenApiParameter("user_id", int, required=True),
            OpenApiParameter("start", str, description="ISO-8601; defaults to 24h before end"),
            OpenApiParameter("end", str, description="ISO-8601; defaults to now"),
        ],
        responses={200: BedStatusLogSerializer(many=True)},
    )
    @action(detail=False, methods=["get"], url_path="staff-activity")
    def staff_activity(self, request):
        scope = require_scope(request)
        user_id = int_param(request, "user_id")
        if user_id is None:
            raise ValidationError({"user_id": "This query parameter is required."})
        end = datetime_param(request, "end", timezone.now())
        start = datetime_param(request, "start", end - timedelta(hours=24))
        if start > end:
            raise ValidationError({"start": "Must not be after end."})

        logs = selectors.staff_activity(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            user_id=user_id,
            start=start,
            end=end,
        )
        return Response(BedStatusLogSerializer(logs, many=True).data)

    @extend_schema(parameters=[OpenApiParameter("hours", int)], responses={200: BedSerializer(many=True)})
    @action(detail=False, methods=["get"], url_path="long-maintenance")
    def long_maintenance(self, request):
        scope = require_scope(request)
        qs = selectors.long_maintenance_beds(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            hours=int_param(request, "hours", 48),
        )
        return Response(BedSerializer(qs, many=True).data)

    # ------------------------------------------------------------
    # Staff status actions
    # ------------------------------------------------------------
    def _run_action(self, request, pk, service_fn, serializer_class=BedActionSerializer):
        scope = require_scope(request)
        ser = serializer_class(data=request.data or {})
        ser.is_valid(raise_exception=True)
        bed = service_fn(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            bed_id=pk,
            actor_user_id=request.user.id,
            **ser.validated_data,
        )
        return self._bed_response(bed)

    @extend_schema(request=BedActionSerializer, responses={200: BedSerializer})
    @action(detail=True, methods=["post"], url_path="reserve")
    def reserve(self, request, pk=None):
        return self._run_action(request, pk, BedService.reserve_bed)

    @extend_schema(request=BedActionSerializer, responses={200: BedSerializer})
    @action(detail=True, methods=["post"], url_path="cancel-reservation")
    def cancel_reservation(self, request, pk=None):
        return self._run_action(request, pk, BedService.cancel_reservation)

    @extend_schema(request=MaintenanceSerializer, responses={200: BedSerializer})
    @action(detail=True, methods=["post"], url_path="maintenance")
    def maintenance(self, request, pk=None):
        return self._run_action(request, pk, BedService.mark_maintenance, MaintenanceSerializer)

    @extend_schema(request=CompleteMaintenanceSerializer, responses={200: BedSerializer})
    @action(detail=True, methods=["post"], url_path="complete-maintenance")
    def complete_maintenance(self, request, pk=None):
        return self._run_action(request, pk, BedService.complete_maintenance, CompleteMaintenanceSerializer)

    @extend_schema(request=BedActionSerializer, responses={200: BedSerializer})
    @action(detail=True, methods=["post"], url_path="mark-cleaned")
    def mark_cleaned(self, request, pk=None):
        return self._run_action(request, pk, BedService.mark_cleaned)


class RoomViewSet(viewsets.ViewSet):
    permission_classes = [RoomPermission]
    serializer_class = RoomSerializer
    queryset = Room.objects.none()
    lookup_value_regex = UUID_PATTERN

    def get_object(self, request, pk) -> Room:
        scope = require_scope(request)
        return Room.objects.get(id=pk, tenant_id=scope.tenant_id, facility_id=scope.facility_id)

    @extend_schema(parameters=[OpenApiParameter("floor", int)], responses={200: RoomSummarySerializer(many=True)})
    def list(self, request):
        scope = require_scope(request)
        qs = selectors.rooms_summary(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            floor=int_param(request, "floor"),
        )
        return paginate(request, qs, RoomSummarySerializer)

    def retrieve(self, request, pk=None):
        room = self.get_object(request, pk)
        data = RoomSerializer(room).data
        data["occupancy"] = selectors.room_occupancy(room)
        return Response(data)

    @extend_schema(request=RoomCreateSerializer, responses={201: RoomSerializer})
    def create(self, request):
        scope = require_scope(request)
        ser = RoomCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        room = RoomService.create_room(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            **ser.validated_data,
        )
        return Response(RoomSerializer(room).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=BedCreateSerializer, responses={201: BedSerializer})
    @action(detail=True, methods=["post"], url_path="beds")
    def add_bed(self, request, pk=None):
        scope = require_scope(request)
        ser = BedCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        bed = RoomService.create_bed(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            room_id=pk,
            actor_user_id=request.user.id,
            **ser.validated_data,
        )
        return Response(BedSerializer(bed).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=RoomOperationalSerializer, responses={200: RoomSerializer})
    @action(detail=True, methods=["post"], url_path="operational")
    def operational(self, request, pk=None):
        scope = require_scope(request)
        ser = RoomOperationalSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        room = RoomService.set_room_operational(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            room_id=pk,
            is_operational=ser.validated_data["is_operational"],
        )
        return Response(RoomSerializer(room).data)
