# backend/hm_core/beds/models.py
from __future__ import annotations

import uuid

from django.db import models
from django.utils import timezone

from hm_core.common.models import AppendOnlyModel, ScopedModel


class RoomType(models.TextChoices):
    WARD = "ward", "General ward"
    SEMI_PRIVATE = "semi_private", "Semi-private"
    PRIVATE = "private", "Private"
    ICU = "icu", "ICU"
    ISOLATION = "isolation", "Isolation"


# Beds are typed with the same vocabulary as rooms.
BedType = RoomType


class BedStatus(models.TextChoices):
    AVAILABLE = "available", "Available"
    OCCUPIED = "occupied", "Occupied"
    MAINTENANCE = "maintenance", "Maintenance"
    RESERVED = "reserved", "Reserved"
    CLEANING = "cleaning", "Cleaning"


class Room(ScopedModel):
    room_number = models.CharField(max_length=20)
    room_type = models.CharField(max_length=20, choices=RoomType.choices, db_index=True)
    floor_number = models.IntegerField(db_index=True)

    # External department id (department directory lives outside this service).
    department_id = models.UUIDField(db_index=True)

    max_capacity = models.PositiveSmallIntegerField()
    is_operational = models.BooleanField(default=True)

    class Meta:
        db_table = "beds_room"
        constraints = [
            models.UniqueConstraint(
                fields=["tenant_id", "facility_id", "room_number"],
                name="uq_room_number_per_scope",
            ),
            models.CheckConstraint(
                condition=models.Q(max_capacity__gte=1),
                name="ck_room_capacity_positive",
            ),
        ]
        indexes = [
            models.Index(fields=["tenant_id", "facility_id", "floor_number"], name="beds_room_scope_floor_idx"),
        ]

    def __str__(self) -> str:
        return f"Room {self.room_number} (floor {self.floor_number})"


class Bed(ScopedModel):
    """
    Physical bed. `status` is written only by BedService.transition_bed_status,
    always together with a BedStatusLog row.
    """
    room = models.ForeignKey(Room, on_delete=models.PROTECT, related_name="beds")
    bed_number = models.CharField(max_length=20)
    bed_type = models.CharField(max_length=20, choices=BedType.choices, db_index=True)
    status = models.CharField(
        max_length=20,
        choices=BedStatus.choices,
        default=BedStatus.AVAILABLE,
        db_index=True,
    )

    # Capability tags, e.g. ["ventilator", "negative_pressure"]
    features = models.JSONField(default=list, blank=True)

    last_cleaned_at = models.DateTimeField(null=True, blank=True)
    maintenance_reported_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "beds_bed"
        constraints = [
            models.UniqueConstraint(fields=["room", "bed_number"], name="uq_bed_number_per_room"),
        ]
        indexes = [
            models.Index(fields=["tenant_id", "facility_id", "status"], name="beds_bed_scope_status_idx"),
            models.Index(fields=["tenant_id", "facility_id", "bed_type"], name="beds_bed_scope_type_idx"),
        ]

    def __str__(self) -> str:
        return f"Bed {self.bed_number} [{self.status}]"

    @property
    def is_available(self) -> bool:
        return self.status == BedStatus.AVAILABLE


class BedStatusLog(AppendOnlyModel):
    """
    Immutable audit trail of bed status changes.
    old_status is NULL for the registration row.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tenant_id = models.UUIDField(db_index=True)
    facility_id = models.UUIDField(db_index=True)

    bed = models.ForeignKey(Bed, on_delete=models.PROTECT, related_name="status_logs")
    old_status = models.CharField(max_length=20, choices=BedStatus.choices, null=True, blank=True)
    new_status = models.CharField(max_length=20, choices=BedStatus.choices)

    changed_by_id = models.IntegerField(null=True, blank=True, db_index=True)
    change_reason = models.TextField(blank=True, default="")
    additional_notes = models.TextField(blank=True, default="")

    # Keep links loose (UUID fields) to avoid a beds -> admissions FK cycle.
    admission_id = models.UUIDField(null=True, blank=True, db_index=True)
    assignment_id = models.UUIDField(null=True, blank=True)

    changed_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        db_table = "beds_status_log"
        ordering = ["-changed_at"]
        indexes = [
            models.Index(fields=["bed", "changed_at"], name="beds_log_bed_changed_idx"),
            models.Index(fields=["tenant_id", "facility_id", "changed_at"], name="beds_log_scope_changed_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.bed_id}: {self.old_status} -> {self.new_status} @ {self.changed_at}"
