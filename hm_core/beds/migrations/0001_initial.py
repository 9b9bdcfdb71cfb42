import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


ROOM_TYPES = [
    ("ward", "General ward"),
    ("semi_private", "Semi-private"),
    ("private", "Private"),
    ("icu", "ICU"),
    ("isolation", "Isolation"),
]

BED_STATUSES = [
    ("available", "Available"),
    ("occupied", "Occupied"),
    ("maintenance", "Maintenance"),
    ("reserved", "Reserved"),
    ("cleaning", "Cleaning"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Room",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("tenant_id", models.UUIDField(db_index=True)),
                ("facility_id", models.UUIDField(db_index=True)),
                ("room_number", models.CharField(max_length=20)),
                ("room_type", models.CharField(choices=ROOM_TYPES, db_index=True, max_length=20)),
                ("floor_number", models.IntegerField(db_index=True)),
                ("department_id", models.UUIDField(db_index=True)),
                ("max_capacity", models.PositiveSmallIntegerField()),
                ("is_operational", models.BooleanField(default=True)),
            ],
            options={
                "db_table": "beds_room",
                "indexes": [
                    models.Index(fields=["tenant_id", "facility_id", "floor_number"], name="beds_room_scope_floor_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("tenant_id", "facility_id", "room_number"),
                        name="uq_room_number_per_scope",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("max_capacity__gte", 1)),
                        name="ck_room_capacity_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Bed",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("tenant_id", models.UUIDField(db_index=True)),
                ("facility_id", models.UUIDField(db_index=True)),
                ("bed_number", models.CharField(max_length=20)),
                ("bed_type", models.CharField(choices=ROOM_TYPES, db_index=True, max_length=20)),
                ("status", models.CharField(choices=BED_STATUSES, db_index=True, default="available", max_length=20)),
                ("features", models.JSONField(blank=True, default=list)),
                ("last_cleaned_at", models.DateTimeField(blank=True, null=True)),
                ("maintenance_reported_at", models.DateTimeField(blank=True, null=True)),
                (
                    "room",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="beds",
                        to="beds.room",
                    ),
                ),
            ],
            options={
                "db_table": "beds_bed",
                "indexes": [
                    models.Index(fields=["tenant_id", "facility_id", "status"], name="beds_bed_scope_status_idx"),
                    models.Index(fields=["tenant_id", "facility_id", "bed_type"], name="beds_bed_scope_type_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("room", "bed_number"), name="uq_bed_number_per_room"),
                ],
            },
        ),
        migrations.CreateModel(
            name="BedStatusLog",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("tenant_id", models.UUIDField(db_index=True)),
                ("facility_id", models.UUIDField(db_index=True)),
                ("old_status", models.CharField(blank=True, choices=BED_STATUSES, max_length=20, null=True)),
                ("new_status", models.CharField(choices=BED_STATUSES, max_length=20)),
                ("changed_by_id", models.IntegerField(blank=True, db_index=True, null=True)),
                ("change_reason", models.TextField(blank=True, default="")),
                ("additional_notes", models.TextField(blank=True, default="")),
                ("admission_id", models.UUIDField(blank=True, db_index=True, null=True)),
                ("assignment_id", models.UUIDField(blank=True, null=True)),
                ("changed_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                (
                    "bed",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="status_logs",
                        to="beds.bed",
                    ),
                ),
            ],
            options={
                "db_table": "beds_status_log",
                "ordering": ["-changed_at"],
                "indexes": [
                    models.Index(fields=["bed", "changed_at"], name="beds_log_bed_changed_idx"),
                    models.Index(fields=["tenant_id", "facility_id", "changed_at"], name="beds_log_scope_changed_idx"),
                ],
            },
        ),
    ]
