# backend/hm_core/admissions/models.py
from __future__ import annotations

import math
import uuid
from datetime import datetime

from django.db import models
from django.db.models import Q
from django.utils import timezone

from hm_core.beds.models import Bed
from hm_core.common.api.exceptions import InvalidStateTransition
from hm_core.common.models import AppendOnlyModel, ScopedModel


class AdmissionStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    PENDING_DISCHARGE = "pending_discharge", "Pending discharge"
    DISCHARGED = "discharged", "Discharged"
    TRANSFERRED = "transferred", "Transferred"
    DECEASED = "deceased", "Deceased"


TERMINAL_STATUSES = frozenset({AdmissionStatus.DISCHARGED, AdmissionStatus.TRANSFERRED, AdmissionStatus.DECEASED})
OPEN_STATUSES = frozenset({AdmissionStatus.ACTIVE, AdmissionStatus.PENDING_DISCHARGE})


class AdmissionType(models.TextChoices):
    ELECTIVE = "elective", "Elective"
    EMERGENCY = "emergency", "Emergency"
    TRANSFER = "transfer", "Transfer in"
    DELIVERY = "delivery", "Delivery"


class AdmissionSource(models.TextChoices):
    ER = "er", "Emergency room"
    OUTPATIENT = "outpatient", "Outpatient"
    REFERRAL = "referral", "Referral"
    DIRECT = "direct", "Direct"


class DischargeType(models.TextChoices):
    ROUTINE = "routine", "Routine"
    AGAINST_ADVICE = "against_advice", "Against medical advice"
    TRANSFERRED = "transferred", "Transferred out"
    DECEASED = "deceased", "Deceased"


# Terminal admission status reached by each discharge type.
DISCHARGE_OUTCOMES = {
    DischargeType.ROUTINE: AdmissionStatus.DISCHARGED,
    DischargeType.AGAINST_ADVICE: AdmissionStatus.DISCHARGED,
    DischargeType.TRANSFERRED: AdmissionStatus.TRANSFERRED,
    DischargeType.DECEASED: AdmissionStatus.DECEASED,
}


def compute_length_of_stay(start: datetime, end: datetime) -> int:
    """Whole days between admission and discharge, partial days rounded up."""
    seconds = (end - start).total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / 86400)


class Admission(ScopedModel):
    """
    Inpatient stay. Patient and doctors are referenced by id only.

    Rows in a terminal status (discharged/transferred/deceased) are read-only.
    """
    admission_number = models.CharField(max_length=32)

    patient_id = models.UUIDField(db_index=True)
    attending_doctor_id = models.IntegerField(db_index=True)
    appointment_id = models.UUIDField(null=True, blank=True)

    admission_type = models.CharField(max_length=20, choices=AdmissionType.choices)
    admission_source = models.CharField(max_length=20, choices=AdmissionSource.choices)
    diagnosis_at_admission = models.TextField()

    admission_date = models.DateTimeField(default=timezone.now, db_index=True)
    expected_discharge_date = models.DateField(null=True, blank=True)

    status = models.CharField(
        max_length=32,
        choices=AdmissionStatus.choices,
        default=AdmissionStatus.ACTIVE,
        db_index=True,
    )

    discharge_requested_by_id = models.IntegerField(null=True, blank=True)
    discharge_requested_at = models.DateTimeField(null=True, blank=True)
    discharge_summary = models.TextField(blank=True, default="")

    discharge_date = models.DateTimeField(null=True, blank=True)
    discharge_type = models.CharField(max_length=20, choices=DischargeType.choices, blank=True, default="")
    condition_on_discharge = models.CharField(max_length=100, blank=True, default="")
    follow_up_instructions = models.TextField(blank=True, default="")
    length_of_stay_days = models.PositiveIntegerField(null=True, blank=True)

    created_by_id = models.IntegerField(null=True, blank=True)

    class Meta:
        db_table = "admissions_admission"
        constraints = [
            models.UniqueConstraint(
                fields=["tenant_id", "facility_id", "admission_number"],
                name="uq_admission_number_per_scope",
            ),
            # One open admission per patient per facility.
            models.UniqueConstraint(
                fields=["tenant_id", "facility_id", "patient_id"],
                condition=Q(status__in=["active", "pending_discharge"]),
                name="uq_open_admission_per_patient",
            ),
        ]
        indexes = [
            models.Index(fields=["tenant_id", "facility_id", "status"], name="adm_scope_status_idx"),
            models.Index(fields=["tenant_id", "facility_id", "attending_doctor_id"], name="adm_scope_doctor_idx"),
            models.Index(fields=["tenant_id", "facility_id", "admission_date"], name="adm_scope_date_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.admission_number} [{self.status}]"

    # ------------------------------------------------------------------
    # Terminal immutability
    # ------------------------------------------------------------------
    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_status = instance.status
        return instance

    def refresh_from_db(self, *args, **kwargs):
        super().refresh_from_db(*args, **kwargs)
        self._loaded_status = self.status

    def save(self, *args, **kwargs):
        loaded_status = getattr(self, "_loaded_status", None)
        if not self._state.adding and loaded_status in TERMINAL_STATUSES:
            raise InvalidStateTransition(
                f"Admission {self.admission_number} is {loaded_status} and can no longer be changed.",
                admission_id=self.id,
                current_status=loaded_status,
            )
        super().save(*args, **kwargs)
        self._loaded_status = self.status

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def length_of_stay(self) -> int:
        """Frozen value after discharge, otherwise computed against now."""
        if self.length_of_stay_days is not None:
            return self.length_of_stay_days
        return compute_length_of_stay(self.admission_date, timezone.now())


class BedAssignment(ScopedModel):
    """
    Allocation ledger row: one admission in one bed over [assigned_at, released_at).
    An open row (released_at IS NULL) is the current assignment.
    """
    admission = models.ForeignKey(Admission, on_delete=models.PROTECT, related_name="bed_assignments")
    bed = models.ForeignKey(Bed, on_delete=models.PROTECT, related_name="assignments")

    assigned_at = models.DateTimeField(default=timezone.now, db_index=True)
    assigned_by_id = models.IntegerField(null=True, blank=True)

    released_at = models.DateTimeField(null=True, blank=True)
    released_by_id = models.IntegerField(null=True, blank=True)
    transfer_reason = models.TextField(blank=True, default="")

    class Meta:
        db_table = "admissions_bed_assignment"
        constraints = [
            # At most one current bed per admission.
            models.UniqueConstraint(
                fields=["admission"],
                condition=Q(released_at__isnull=True),
                name="uq_open_assignment_admission",
            ),
            # At most one current admission per bed.
            models.UniqueConstraint(
                fields=["bed"],
                condition=Q(released_at__isnull=True),
                name="uq_open_assignment_bed",
            ),
        ]
        indexes = [
            models.Index(fields=["admission", "assigned_at"], name="adm_assign_adm_at_idx"),
            models.Index(fields=["bed", "assigned_at"], name="adm_assign_bed_at_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.admission_id} -> {self.bed_id} ({'open' if self.is_current else 'closed'})"

    @property
    def is_current(self) -> bool:
        return self.released_at is None


class AdmissionEvent(AppendOnlyModel):
    """
    Immutable timeline for an admission.
    The timeline endpoint only reads from this table.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tenant_id = models.UUIDField(db_index=True)
    facility_id = models.UUIDField(db_index=True)
    admission_id = models.UUIDField(db_index=True)

    # Stable identity for idempotent writes
    event_key = models.CharField(max_length=128)

    code = models.CharField(max_length=64, db_index=True)
    title = models.CharField(max_length=255, blank=True, default="")
    timestamp = models.DateTimeField(db_index=True)
    actor_user_id = models.IntegerField(null=True, blank=True)
    meta = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "admissions_event"
        constraints = [
            models.UniqueConstraint(
                fields=["tenant_id", "facility_id", "admission_id", "event_key"],
                name="uq_admission_event_key",
            ),
        ]
        indexes = [
            models.Index(fields=["tenant_id", "facility_id", "admission_id", "timestamp"], name="adm_event_timeline_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.code} @ {self.timestamp}"


class DischargeSyncStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    DELIVERED = "delivered", "Delivered"
    FAILED = "failed", "Failed"


class DischargeSyncOutbox(ScopedModel):
    """
    Discharge notification for the downstream records system.
    Written in the discharge transaction, delivered after commit.
    """
    admission = models.OneToOneField(Admission, on_delete=models.PROTECT, related_name="discharge_sync")
    payload = models.JSONField(default=dict)

    status = models.CharField(
        max_length=16,
        choices=DischargeSyncStatus.choices,
        default=DischargeSyncStatus.PENDING,
        db_index=True,
    )
    attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True, default="")
    last_attempt_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "admissions_discharge_sync_outbox"
        indexes = [
            models.Index(fields=["status", "created_at"], name="adm_sync_status_idx"),
        ]

    def __str__(self) -> str:
        return f"discharge sync {self.admission_id} [{self.status}]"
