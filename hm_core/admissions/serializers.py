# backend/hm_core/admissions/serializers.py
from __future__ import annotations

from rest_framework import serializers

from hm_core.admissions.models import (
    Admission,
    AdmissionEvent,
    AdmissionSource,
    AdmissionType,
    BedAssignment,
    DischargeType,
)
from hm_core.beds.serializers import BedSerializer


class AdmissionSerializer(serializers.ModelSerializer):
    length_of_stay = serializers.IntegerField(read_only=True)

    class Meta:
        model = Admission
        fields = [
            "id",
            "admission_number",
            "patient_id",
            "attending_doctor_id",
            "appointment_id",
            "admission_type",
            "admission_source",
            "diagnosis_at_admission",
            "admission_date",
            "expected_discharge_date",
            "status",
            "discharge_requested_by_id",
            "discharge_requested_at",
            "discharge_summary",
            "discharge_date",
            "discharge_type",
            "condition_on_discharge",
            "follow_up_instructions",
            "length_of_stay_days",
            "length_of_stay",
            "created_by_id",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class AdmissionCreateSerializer(serializers.Serializer):
    patient_id = serializers.UUIDField()
    attending_doctor_id = serializers.IntegerField(min_value=1)
    admission_type = serializers.ChoiceField(choices=AdmissionType.choices)
    admission_source = serializers.ChoiceField(choices=AdmissionSource.choices)
    diagnosis = serializers.CharField()
    bed_id = serializers.UUIDField(required=False, allow_null=True)
    appointment_id = serializers.UUIDField(required=False, allow_null=True)
    expected_discharge_date = serializers.DateField(required=False, allow_null=True)


class ClinicalDetailsSerializer(serializers.Serializer):
    diagnosis = serializers.CharField(required=False)
    expected_discharge_date = serializers.DateField(required=False)


class RequestDischargeSerializer(serializers.Serializer):
    summary = serializers.CharField()
    expected_discharge_date = serializers.DateField(required=False, allow_null=True)
    follow_up_instructions = serializers.CharField(required=False, allow_blank=True, default="")


class CancelDischargeSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class FinalizeDischargeSerializer(serializers.Serializer):
    discharge_type = serializers.ChoiceField(choices=DischargeType.choices)
    condition_on_discharge = serializers.CharField(required=False, allow_blank=True, default="", max_length=100)
    follow_up_instructions = serializers.CharField(required=False, allow_blank=True)


class AssignBedSerializer(serializers.Serializer):
    bed_id = serializers.UUIDField()


class TransferBedSerializer(serializers.Serializer):
    bed_id = serializers.UUIDField()
    reason = serializers.CharField()


class ReleaseBedSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class BedAssignmentSerializer(serializers.ModelSerializer):
    bed_number = serializers.CharField(source="bed.bed_number", read_only=True)
    room_number = serializers.CharField(source="bed.room.room_number", read_only=True)
    is_current = serializers.BooleanField(read_only=True)

    class Meta:
        model = BedAssignment
        fields = [
            "id",
            "admission",
            "bed",
            "bed_number",
            "room_number",
            "assigned_at",
            "assigned_by_id",
            "released_at",
            "released_by_id",
            "transfer_reason",
            "is_current",
        ]
        read_only_fields = fields


class CurrentBedSerializer(serializers.Serializer):
    bed = BedSerializer(allow_null=True)


class AdmissionEventSerializer(serializers.ModelSerializer):
    class Meta:
        model = AdmissionEvent
        fields = ["id", "code", "title", "timestamp", "actor_user_id", "meta"]
        read_only_fields = fields
