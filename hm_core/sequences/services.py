# backend/hm_core/sequences/services.py
from __future__ import annotations

from uuid import UUID

import structlog
from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from hm_core.common.api.exceptions import ConcurrentUpdate, SequenceExhausted, SequenceNotConfigured
from hm_core.common.db import retry_on_conflict, unit_of_work
from hm_core.sequences.models import IdSequence

log = structlog.get_logger(__name__)


class SequenceService:
    # ---------------------------------------------------------------------
    # Configuration
    # ---------------------------------------------------------------------
    @staticmethod
    def defaults_for(sequence_type: str) -> dict:
        conf = getattr(settings, "ID_SEQUENCE_DEFAULTS", {}) or {}
        defaults = conf.get(sequence_type)
        if not defaults:
            raise SequenceNotConfigured(
                f"No identifier sequence is configured for '{sequence_type}'.",
                sequence_type=sequence_type,
            )
        return {
            "prefix": defaults["prefix"],
            "padding_length": int(defaults.get("padding_length", 6)),
            "reset_yearly": bool(defaults.get("reset_yearly", True)),
        }

    @staticmethod
    def _scoped(*, tenant_id: UUID, facility_id: UUID, sequence_type: str):
        return IdSequence.objects.filter(
            tenant_id=tenant_id,
            facility_id=facility_id,
            sequence_type=sequence_type,
        )

    @staticmethod
    def _get_locked(*, tenant_id: UUID, facility_id: UUID, sequence_type: str) -> IdSequence:
        """
        Row-locked sequence, provisioned from settings on first use.
        Must run inside a unit of work.
        """
        qs = SequenceService._scoped(tenant_id=tenant_id, facility_id=facility_id, sequence_type=sequence_type)
        seq = qs.select_for_update().first()
        if seq is not None:
            return seq

        defaults = SequenceService.defaults_for(sequence_type)
        try:
            with transaction.atomic():
                return IdSequence.objects.create(
                    tenant_id=tenant_id,
                    facility_id=facility_id,
                    sequence_type=sequence_type,
                    year=timezone.localdate().year,
                    current_value=0,
                    **defaults,
                )
        except IntegrityError as exc:
            # Another writer provisioned the row first; lock theirs instead.
            seq = qs.select_for_update().first()
            if seq is None:
                raise ConcurrentUpdate(
                    "Identifier sequence is being provisioned by another request.",
                    sequence_type=sequence_type,
                ) from exc
            return seq

    # ---------------------------------------------------------------------
    # Issue
    # ---------------------------------------------------------------------
    @staticmethod
    @retry_on_conflict
    def next_value(*, tenant_id: UUID, facility_id: UUID, sequence_type: str) -> str:
        """
        Issue the next identifier for `sequence_type`, e.g. ADM-2026-000042.

        Called inside an outer unit of work, the increment commits or rolls
        back with it; a gap can only appear if that outer work rolls back.
        """
        with unit_of_work():
            seq = SequenceService._get_locked(
                tenant_id=tenant_id,
                facility_id=facility_id,
                sequence_type=sequence_type,
            )

            current_year = timezone.localdate().year
            if seq.year < current_year:
                if seq.reset_yearly:
                    seq.current_value = 0
                seq.year = current_year

            value = seq.current_value + 1
            if value > seq.max_value:
                log.error(
                    "sequence.exhausted",
                    sequence_type=sequence_type,
                    year=seq.year,
                    padding_length=seq.padding_length,
                )
                raise SequenceExhausted(
                    f"Sequence '{sequence_type}' cannot issue more than {seq.max_value} values for {seq.year}.",
                    sequence_type=sequence_type,
                    year=seq.year,
                    padding_length=seq.padding_length,
                )

            seq.current_value = value
            seq.last_issued_at = timezone.now()
            seq.save(update_fields=["current_value", "year", "last_issued_at", "updated_at"])

            issued = IdSequence.format_id(
                prefix=seq.prefix,
                year=seq.year,
                value=value,
                padding_length=seq.padding_length,
            )

        log.info(
            "sequence.issued",
            tenant_id=str(tenant_id),
            facility_id=str(facility_id),
            sequence_type=sequence_type,
            value=issued,
        )
        return issued

    # ---------------------------------------------------------------------
    # Read-only helpers
    # ---------------------------------------------------------------------
    @staticmethod
    def peek(*, tenant_id: UUID, facility_id: UUID, sequence_type: str) -> IdSequence | None:
        return SequenceService._scoped(
            tenant_id=tenant_id,
            facility_id=facility_id,
            sequence_type=sequence_type,
        ).first()

    @staticmethod
    def format_id(*, prefix: str, year: int, value: int, padding_length: int = 6) -> str:
        return IdSequence.format_id(prefix=prefix, year=year, value=value, padding_length=padding_length)

    @staticmethod
    def ensure_configured(*, tenant_id: UUID, facility_id: UUID) -> list[IdSequence]:
        """
        Provision every configured sequence for a scope (idempotent).
        Existing rows keep their counters.
        """
        created = []
        conf = getattr(settings, "ID_SEQUENCE_DEFAULTS", {}) or {}
        year = timezone.localdate().year
        for sequence_type in conf:
            defaults = SequenceService.defaults_for(sequence_type)
            seq, was_created = IdSequence.objects.get_or_create(
                tenant_id=tenant_id,
                facility_id=facility_id,
                sequence_type=sequence_type,
                defaults={"year": year, "current_value": 0, **defaults},
            )
            if was_created:
                created.append(seq)
        return created
