# backend/hm_core/beds/serializers.py
from __future__ import annotations

from rest_framework import serializers

from hm_core.beds.models import Bed, BedStatus, BedStatusLog, BedType, Room, RoomType


class RoomSerializer(serializers.ModelSerializer):
    class Meta:
        model = Room
        fields = [
            "id",
            "room_number",
            "room_type",
            "floor_number",
            "department_id",
            "max_capacity",
            "is_operational",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class RoomSummarySerializer(RoomSerializer):
    total_beds = serializers.IntegerField(read_only=True)
    available_beds = serializers.IntegerField(read_only=True)
    occupied_beds = serializers.IntegerField(read_only=True)

    class Meta(RoomSerializer.Meta):
        fields = RoomSerializer.Meta.fields + ["total_beds", "available_beds", "occupied_beds"]
        read_only_fields = fields


class RoomCreateSerializer(serializers.Serializer):
    room_number = serializers.CharField(max_length=20)
    room_type = serializers.ChoiceField(choices=RoomType.choices)
    floor_number = serializers.IntegerField()
    department_id = serializers.UUIDField()
    max_capacity = serializers.IntegerField(min_value=1)
    is_operational = serializers.BooleanField(required=False, default=True)


class RoomOperationalSerializer(serializers.Serializer):
    is_operational = serializers.BooleanField()


class BedSerializer(serializers.ModelSerializer):
    room_number = serializers.CharField(source="room.room_number", read_only=True)
    room_type = serializers.CharField(source="room.room_type", read_only=True)
    floor_number = serializers.IntegerField(source="room.floor_number", read_only=True)
    department_id = serializers.UUIDField(source="room.department_id", read_only=True)

    class Meta:
        model = Bed
        fields = [
            "id",
            "room",
            "room_number",
            "room_type",
            "floor_number",
            "department_id",
            "bed_number",
            "bed_type",
            "status",
            "features",
            "last_cleaned_at",
            "maintenance_reported_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class BedCreateSerializer(serializers.Serializer):
    bed_number = serializers.CharField(max_length=20)
    bed_type = serializers.ChoiceField(choices=BedType.choices, required=False)
    features = serializers.ListField(child=serializers.CharField(max_length=64), required=False, default=list)


class BedActionSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class MaintenanceSerializer(BedActionSerializer):
    reason = serializers.CharField()


class CompleteMaintenanceSerializer(BedActionSerializer):
    next_status = serializers.ChoiceField(
        choices=[BedStatus.AVAILABLE, BedStatus.CLEANING],
        required=False,
        default=BedStatus.AVAILABLE,
    )


class BedStatusLogSerializer(serializers.ModelSerializer):
    bed_number = serializers.CharField(source="bed.bed_number", read_only=True)

    class Meta:
        model = BedStatusLog
        fields = [
            "id",
            "bed",
            "bed_number",
            "old_status",
            "new_status",
            "changed_by_id",
            "change_reason",
            "additional_notes",
            "admission_id",
            "assignment_id",
            "changed_at",
        ]
        read_only_fields = fields


class FloorSummarySerializer(serializers.Serializer):
    floor_number = serializers.IntegerField()
    total_beds = serializers.IntegerField()
    available_beds = serializers.IntegerField()
    occupied_beds = serializers.IntegerField()
