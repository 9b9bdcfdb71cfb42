# backend/hm_core/sequences/models.py
from __future__ import annotations

from django.db import models

from hm_core.common.models import ScopedModel


class SequenceType(models.TextChoices):
    MRN = "mrn", "Medical record number"
    APPOINTMENT = "appointment", "Appointment"
    ADMISSION = "admission", "Admission"
    ER_VISIT = "er_visit", "ER visit"
    INVOICE = "invoice", "Invoice"
    PRESCRIPTION = "prescription", "Prescription"
    LAB_ORDER = "lab_order", "Lab order"


class IdSequence(ScopedModel):
    """
    Per-scope counter for human-readable identifiers: PREFIX-YEAR-000123.

    One row per (tenant, facility, sequence_type). Rows are only ever mutated
    under SELECT ... FOR UPDATE by SequenceService.
    """
    sequence_type = models.CharField(max_length=32, db_index=True)
    prefix = models.CharField(max_length=10)
    padding_length = models.PositiveSmallIntegerField(default=6)

    current_value = models.PositiveBigIntegerField(default=0)
    year = models.PositiveIntegerField()
    reset_yearly = models.BooleanField(default=True)

    last_issued_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "sequences_id_sequence"
        constraints = [
            models.UniqueConstraint(
                fields=["tenant_id", "facility_id", "sequence_type"],
                name="uq_sequence_type_per_scope",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.sequence_type}: {self.prefix}-{self.year} @ {self.current_value}"

    @property
    def max_value(self) -> int:
        return 10 ** self.padding_length - 1

    @staticmethod
    def format_id(*, prefix: str, year: int, value: int, padding_length: int) -> str:
        return f"{prefix}-{year}-{value:0{padding_length}d}"
