import threading
import uuid

import pytest
from django.db import connection, connections
from django.utils import timezone

from hm_core.common.api.exceptions import SequenceExhausted, SequenceNotConfigured
from hm_core.sequences.models import IdSequence, SequenceType
from hm_core.sequences.services import SequenceService


def _next(scope, sequence_type=SequenceType.ADMISSION):
    return SequenceService.next_value(sequence_type=sequence_type, **scope)


def test_format_id_zero_pads_to_configured_width():
    assert SequenceService.format_id(prefix="ADM", year=2026, value=42) == "ADM-2026-000042"
    assert SequenceService.format_id(prefix="RX", year=2026, value=7, padding_length=3) == "RX-2026-007"


@pytest.mark.django_db
def test_first_issue_provisions_row_from_settings(scope):
    year = timezone.localdate().year

    value = _next(scope)

    assert value == f"ADM-{year}-000001"
    seq = SequenceService.peek(sequence_type=SequenceType.ADMISSION, **scope)
    assert seq.prefix == "ADM"
    assert seq.current_value == 1
    assert seq.last_issued_at is not None


@pytest.mark.django_db
def test_values_are_strictly_increasing_without_gaps(scope):
    year = timezone.localdate().year

    issued = [_next(scope) for _ in range(5)]

    assert issued == [f"ADM-{year}-{n:06d}" for n in range(1, 6)]


@pytest.mark.django_db
def test_sequences_are_independent_per_type_and_scope(scope, tenant_id):
    _next(scope)
    _next(scope)
    other_facility = {"tenant_id": tenant_id, "facility_id": uuid.uuid4()}

    assert _next(scope, SequenceType.INVOICE).endswith("-000001")
    assert _next(other_facility).endswith("-000001")
    assert _next(scope).endswith("-000003")


@pytest.mark.django_db
def test_year_rollover_resets_counter(scope):
    _next(scope)
    year = timezone.localdate().year
    IdSequence.objects.filter(sequence_type=SequenceType.ADMISSION, **scope).update(year=year - 1, current_value=57)

    value = _next(scope)

    assert value == f"ADM-{year}-000001"
    seq = SequenceService.peek(sequence_type=SequenceType.ADMISSION, **scope)
    assert seq.year == year


@pytest.mark.django_db
def test_mrn_keeps_counting_across_years(scope):
    _next(scope, SequenceType.MRN)
    year = timezone.localdate().year
    IdSequence.objects.filter(sequence_type=SequenceType.MRN, **scope).update(year=year - 1, current_value=41)

    assert _next(scope, SequenceType.MRN) == f"MRN-{year}-000042"


@pytest.mark.django_db
def test_exhausted_sequence_raises_and_keeps_counter(scope):
    _next(scope)
    IdSequence.objects.filter(sequence_type=SequenceType.ADMISSION, **scope).update(padding_length=2, current_value=99)

    with pytest.raises(SequenceExhausted):
        _next(scope)

    seq = SequenceService.peek(sequence_type=SequenceType.ADMISSION, **scope)
    assert seq.current_value == 99


@pytest.mark.django_db
def test_unknown_sequence_type_is_not_configured(scope):
    with pytest.raises(SequenceNotConfigured):
        _next(scope, "boarding_pass")

    assert not IdSequence.objects.filter(sequence_type="boarding_pass").exists()


@pytest.mark.django_db
def test_ensure_configured_is_idempotent(scope):
    created = SequenceService.ensure_configured(**scope)
    again = SequenceService.ensure_configured(**scope)

    assert {s.sequence_type for s in created} == set(SequenceType.values)
    assert again == []


@pytest.mark.skipif(connection.vendor != "postgresql", reason="needs real row locks")
@pytest.mark.django_db(transaction=True)
def test_concurrent_issuers_never_share_a_value(scope):
    _next(scope)
    results, errors = [], []

    def worker():
        try:
            for _ in range(10):
                results.append(_next(scope))
        except Exception as exc:
            errors.append(exc)
        finally:
            connections.close_all()

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(results) == 50
    assert len(set(results)) == 50
    seq = SequenceService.peek(sequence_type=SequenceType.ADMISSION, **scope)
    assert seq.current_value == 51
