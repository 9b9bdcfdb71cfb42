# backend/hm_core/admissions/api/views.py
from __future__ import annotations

from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from hm_core.admissions.models import Admission
from hm_core.admissions.selectors import AdmissionSelectors
from hm_core.admissions.serializers import (
    AdmissionCreateSerializer,
    AdmissionEventSerializer,
    AdmissionSerializer,
    AssignBedSerializer,
    BedAssignmentSerializer,
    CancelDischargeSerializer,
    ClinicalDetailsSerializer,
    CurrentBedSerializer,
    FinalizeDischargeSerializer,
    ReleaseBedSerializer,
    RequestDischargeSerializer,
    TransferBedSerializer,
)
from hm_core.admissions.services.allocation import AllocationService
from hm_core.admissions.services.lifecycle import AdmissionService
from hm_core.beds import selectors as bed_selectors
from hm_core.beds.serializers import BedSerializer, BedStatusLogSerializer
from hm_core.common.api.pagination import paginate
from hm_core.common.api.params import UUID_PATTERN, int_param, uuid_param
from hm_core.common.permissions import AdmissionPermission
from hm_core.common.scope import require_scope


class AdmissionViewSet(viewsets.ViewSet):
    permission_classes = [AdmissionPermission]
    serializer_class = AdmissionSerializer
    queryset = Admission.objects.none()
    lookup_value_regex = UUID_PATTERN

    def get_object(self, request, pk) -> Admission:
        scope = require_scope(request)
        return AdmissionSelectors.get_admission(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            admission_id=pk,
        )

    def _admission_response(self, request, pk, *, http_status=status.HTTP_200_OK) -> Response:
        return Response(AdmissionSerializer(self.get_object(request, pk)).data, status=http_status)

    # ------------------------------------------------------------
    # CRUD-ish endpoints
    # ------------------------------------------------------------
    @extend_schema(
        parameters=[
            OpenApiParameter("status", str, description="Comma-separated statuses"),
            OpenApiParameter("patient_id", str),
            OpenApiParameter("attending_doctor_id", int),
        ],
        responses={200: AdmissionSerializer(many=True)},
    )
    def list(self, request):
        scope = require_scope(request)
        qs = AdmissionSelectors.list_admissions(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            status=request.query_params.get("status"),
            patient_id=uuid_param(request, "patient_id"),
            attending_doctor_id=int_param(request, "attending_doctor_id"),
        )
        return paginate(request, qs, AdmissionSerializer)

    def retrieve(self, request, pk=None):
        return self._admission_response(request, pk)

    @extend_schema(request=AdmissionCreateSerializer, responses={201: AdmissionSerializer})
    def create(self, request):
        scope = require_scope(request)
        ser = AdmissionCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        admission = AdmissionService.create(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            actor_user_id=request.user.id,
            **ser.validated_data,
        )
        return Response(AdmissionSerializer(admission).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=ClinicalDetailsSerializer, responses={200: AdmissionSerializer})
    def partial_update(self, request, pk=None):
        scope = require_scope(request)
        ser = ClinicalDetailsSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)
        AdmissionService.update_clinical_details(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            admission_id=pk,
            doctor_id=request.user.id,
            **ser.validated_data,
        )
        return self._admission_response(request, pk)

    # ------------------------------------------------------------
    # Discharge workflow
    # ------------------------------------------------------------
    @extend_schema(request=RequestDischargeSerializer, responses={200: AdmissionSerializer})
    @action(detail=True, methods=["post"], url_path="request-discharge")
    def request_discharge(self, request, pk=None):
        scope = require_scope(request)
        ser = RequestDischargeSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        AdmissionService.request_discharge(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            admission_id=pk,
            doctor_id=request.user.id,
            **ser.validated_data,
        )
        return self._admission_response(request, pk)

    @extend_schema(request=CancelDischargeSerializer, responses={200: AdmissionSerializer})
    @action(detail=True, methods=["post"], url_path="cancel-discharge-request")
    def cancel_discharge_request(self, request, pk=None):
        scope = require_scope(request)
        ser = CancelDischargeSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)
        AdmissionService.cancel_discharge_request(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            admission_id=pk,
            actor_user_id=request.user.id,
            **ser.validated_data,
        )
        return self._admission_response(request, pk)

    @extend_schema(request=FinalizeDischargeSerializer, responses={200: AdmissionSerializer})
    @action(detail=True, methods=["post"], url_path="finalize-discharge")
    def finalize_discharge(self, request, pk=None):
        scope = require_scope(request)
        ser = FinalizeDischargeSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        AdmissionService.finalize_discharge(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            admission_id=pk,
            actor_user_id=request.user.id,
            **ser.validated_data,
        )
        return self._admission_response(request, pk)

    # ------------------------------------------------------------
    # Bed allocation
    # ------------------------------------------------------------
    @extend_schema(request=AssignBedSerializer, responses={201: BedAssignmentSerializer})
    @action(detail=True, methods=["post"], url_path="assign-bed")
    def assign_bed(self, request, pk=None):
        scope = require_scope(request)
        ser = AssignBedSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        assignment = AllocationService.assign_bed(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            admission_id=pk,
            bed_id=ser.validated_data["bed_id"],
            actor_user_id=request.user.id,
        )
        return Response(BedAssignmentSerializer(assignment).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=TransferBedSerializer, responses={201: BedAssignmentSerializer})
    @action(detail=True, methods=["post"], url_path="transfer-bed")
    def transfer_bed(self, request, pk=None):
        scope = require_scope(request)
        ser = TransferBedSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        assignment = AllocationService.transfer_bed(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            admission_id=pk,
            new_bed_id=ser.validated_data["bed_id"],
            actor_user_id=request.user.id,
            reason=ser.validated_data["reason"],
        )
        return Response(BedAssignmentSerializer(assignment).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=ReleaseBedSerializer, responses={200: BedAssignmentSerializer})
    @action(detail=True, methods=["post"], url_path="release-bed")
    def release_bed(self, request, pk=None):
        scope = require_scope(request)
        ser = ReleaseBedSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)
        released = AllocationService.release_bed(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            admission_id=pk,
            actor_user_id=request.user.id,
            reason=ser.validated_data["reason"],
        )
        if released is None:
            return Response({"released": None})
        return Response({"released": BedAssignmentSerializer(released).data})

    @extend_schema(responses={200: CurrentBedSerializer})
    @action(detail=True, methods=["get"], url_path="current-bed")
    def current_bed(self, request, pk=None):
        scope = require_scope(request)
        admission = self.get_object(request, pk)
        bed = AllocationService.get_current_bed(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            admission_id=admission.id,
        )
        return Response({"bed": BedSerializer(bed).data if bed else None})

    @extend_schema(responses={200: BedAssignmentSerializer(many=True)})
    @action(detail=True, methods=["get"], url_path="bed-assignments")
    def bed_assignments(self, request, pk=None):
        scope = require_scope(request)
        admission = self.get_object(request, pk)
        qs = AllocationService.assignment_history(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            admission_id=admission.id,
        )
        return Response(BedAssignmentSerializer(qs, many=True).data)

    @extend_schema(responses={200: BedStatusLogSerializer(many=True)})
    @action(detail=True, methods=["get"], url_path="bed-log")
    def bed_log(self, request, pk=None):
        scope = require_scope(request)
        admission = self.get_object(request, pk)
        qs = bed_selectors.admission_bed_log(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            admission_id=admission.id,
        )
        return Response(BedStatusLogSerializer(qs, many=True).data)

    @extend_schema(responses={200: AdmissionEventSerializer(many=True)})
    @action(detail=True, methods=["get"], url_path="timeline")
    def timeline(self, request, pk=None):
        scope = require_scope(request)
        admission = self.get_object(request, pk)
        qs = AdmissionSelectors.timeline(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            admission_id=admission.id,
        )
        return Response({"admission_id": str(admission.id), "items": AdmissionEventSerializer(qs, many=True).data})
