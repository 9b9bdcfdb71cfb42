import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("beds", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Admission",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("tenant_id", models.UUIDField(db_index=True)),
                ("facility_id", models.UUIDField(db_index=True)),
                ("admission_number", models.CharField(max_length=32)),
                ("patient_id", models.UUIDField(db_index=True)),
                ("attending_doctor_id", models.IntegerField(db_index=True)),
                ("appointment_id", models.UUIDField(blank=True, null=True)),
                (
                    "admission_type",
                    models.CharField(
                        choices=[
                            ("elective", "Elective"),
                            ("emergency", "Emergency"),
                            ("transfer", "Transfer in"),
                            ("delivery", "Delivery"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "admission_source",
                    models.CharField(
                        choices=[
                            ("er", "Emergency room"),
                            ("outpatient", "Outpatient"),
                            ("referral", "Referral"),
                            ("direct", "Direct"),
                        ],
                        max_length=20,
                    ),
                ),
                ("diagnosis_at_admission", models.TextField()),
                ("admission_date", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("expected_discharge_date", models.DateField(blank=True, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("pending_discharge", "Pending discharge"),
                            ("discharged", "Discharged"),
                            ("transferred", "Transferred"),
                            ("deceased", "Deceased"),
                        ],
                        db_index=True,
                        default="active",
                        max_length=32,
                    ),
                ),
                ("discharge_requested_by_id", models.IntegerField(blank=True, null=True)),
                ("discharge_requested_at", models.DateTimeField(blank=True, null=True)),
                ("discharge_summary", models.TextField(blank=True, default="")),
                ("discharge_date", models.DateTimeField(blank=True, null=True)),
                (
                    "discharge_type",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("routine", "Routine"),
                            ("against_advice", "Against medical advice"),
                            ("transferred", "Transferred out"),
                            ("deceased", "Deceased"),
                        ],
                        default="",
                        max_length=20,
                    ),
                ),
                ("condition_on_discharge", models.CharField(blank=True, default="", max_length=100)),
                ("follow_up_instructions", models.TextField(blank=True, default="")),
                ("length_of_stay_days", models.PositiveIntegerField(blank=True, null=True)),
                ("created_by_id", models.IntegerField(blank=True, null=True)),
            ],
            options={
                "db_table": "admissions_admission",
                "indexes": [
                    models.Index(fields=["tenant_id", "facility_id", "status"], name="adm_scope_status_idx"),
                    models.Index(fields=["tenant_id", "facility_id", "attending_doctor_id"], name="adm_scope_doctor_idx"),
                    models.Index(fields=["tenant_id", "facility_id", "admission_date"], name="adm_scope_date_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("tenant_id", "facility_id", "admission_number"),
                        name="uq_admission_number_per_scope",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("status__in", ["active", "pending_discharge"])),
                        fields=("tenant_id", "facility_id", "patient_id"),
                        name="uq_open_admission_per_patient",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="AdmissionEvent",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("tenant_id", models.UUIDField(db_index=True)),
                ("facility_id", models.UUIDField(db_index=True)),
                ("admission_id", models.UUIDField(db_index=True)),
                ("event_key", models.CharField(max_length=128)),
                ("code", models.CharField(db_index=True, max_length=64)),
                ("title", models.CharField(blank=True, default="", max_length=255)),
                ("timestamp", models.DateTimeField(db_index=True)),
                ("actor_user_id", models.IntegerField(blank=True, null=True)),
                ("meta", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "db_table": "admissions_event",
                "indexes": [
                    models.Index(
                        fields=["tenant_id", "facility_id", "admission_id", "timestamp"],
                        name="adm_event_timeline_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("tenant_id", "facility_id", "admission_id", "event_key"),
                        name="uq_admission_event_key",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BedAssignment",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("tenant_id", models.UUIDField(db_index=True)),
                ("facility_id", models.UUIDField(db_index=True)),
                ("assigned_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("assigned_by_id", models.IntegerField(blank=True, null=True)),
                ("released_at", models.DateTimeField(blank=True, null=True)),
                ("released_by_id", models.IntegerField(blank=True, null=True)),
                ("transfer_reason", models.TextField(blank=True, default="")),
                (
                    "admission",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bed_assignments",
                        to="admissions.admission",
                    ),
                ),
                (
                    "bed",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="assignments",
                        to="beds.bed",
                    ),
                ),
            ],
            options={
                "db_table": "admissions_bed_assignment",
                "indexes": [
                    models.Index(fields=["admission", "assigned_at"], name="adm_assign_adm_at_idx"),
                    models.Index(fields=["bed", "assigned_at"], name="adm_assign_bed_at_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("released_at__isnull", True)),
                        fields=("admission",),
                        name="uq_open_assignment_admission",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("released_at__isnull", True)),
                        fields=("bed",),
                        name="uq_open_assignment_bed",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="DischargeSyncOutbox",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("tenant_id", models.UUIDField(db_index=True)),
                ("facility_id", models.UUIDField(db_index=True)),
                ("payload", models.JSONField(default=dict)),
                (
                    "status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("delivered", "Delivered"), ("failed", "Failed")],
                        db_index=True,
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("attempts", models.PositiveIntegerField(default=0)),
                ("last_error", models.TextField(blank=True, default="")),
                ("last_attempt_at", models.DateTimeField(blank=True, null=True)),
                ("delivered_at", models.DateTimeField(blank=True, null=True)),
                (
                    "admission",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="discharge_sync",
                        to="admissions.admission",
                    ),
                ),
            ],
            options={
                "db_table": "admissions_discharge_sync_outbox",
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="adm_sync_status_idx"),
                ],
            },
        ),
    ]
