from types import SimpleNamespace

import pytest
from django.db import OperationalError, transaction

from hm_core.beds.models import Room
from hm_core.common import db as db_module
from hm_core.common.api.exceptions import ConcurrentUpdate
from hm_core.common.db import is_contention_error, retry_on_conflict, unit_of_work


class _PgError(Exception):
    def __init__(self, sqlstate):
        super().__init__(sqlstate)
        self.sqlstate = sqlstate


def _operational(sqlstate):
    exc = OperationalError("canceling statement due to lock timeout")
    exc.__cause__ = _PgError(sqlstate)
    return exc


def test_contention_sqlstates_are_detected():
    assert is_contention_error(_operational("55P03"))
    assert is_contention_error(_operational("40P01"))
    assert is_contention_error(OperationalError("database is locked"))
    assert not is_contention_error(_operational("08006"))


def test_retry_on_conflict_retries_until_success():
    calls = []

    @retry_on_conflict(attempts=3, backoff_seconds=0)
    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ConcurrentUpdate()
        return "ok"

    assert flaky() == "ok"
    assert len(calls) == 3


def test_retry_on_conflict_gives_up_after_max_attempts():
    calls = []

    @retry_on_conflict(attempts=2, backoff_seconds=0)
    def always_conflicts():
        calls.append(1)
        raise ConcurrentUpdate()

    with pytest.raises(ConcurrentUpdate):
        always_conflicts()
    assert len(calls) == 2


def test_retry_on_conflict_does_not_retry_other_errors():
    calls = []

    @retry_on_conflict(attempts=3, backoff_seconds=0)
    def broken():
        calls.append(1)
        raise ValueError("nope")

    with pytest.raises(ValueError):
        broken()
    assert len(calls) == 1


@pytest.mark.django_db
def test_retry_is_skipped_inside_an_enclosing_transaction():
    calls = []

    @retry_on_conflict(attempts=3, backoff_seconds=0)
    def conflicts():
        calls.append(1)
        raise ConcurrentUpdate()

    assert transaction.get_connection().in_atomic_block
    with pytest.raises(ConcurrentUpdate):
        conflicts()
    assert len(calls) == 1


@pytest.mark.django_db
def test_lock_contention_surfaces_as_concurrent_update():
    with pytest.raises(ConcurrentUpdate) as exc:
        with unit_of_work():
            raise _operational("55P03")

    assert exc.value.default_code == "concurrent_update"


@pytest.mark.django_db
def test_other_operational_errors_propagate():
    with pytest.raises(OperationalError):
        with unit_of_work():
            raise _operational("08006")


@pytest.mark.django_db(transaction=True)
def test_deadline_overrun_rolls_back_everything(monkeypatch, tenant_id, facility_id, scope):
    ticks = iter([0.0, 100.0])
    monkeypatch.setattr(db_module, "time", SimpleNamespace(monotonic=lambda: next(ticks), sleep=lambda s: None))

    with pytest.raises(ConcurrentUpdate):
        with unit_of_work(timeout_seconds=5):
            Room.objects.create(
                tenant_id=tenant_id,
                facility_id=facility_id,
                room_number="900",
                room_type="ward",
                floor_number=9,
                department_id=tenant_id,
                max_capacity=2,
            )

    assert not Room.objects.filter(room_number="900").exists()


@pytest.mark.django_db(transaction=True)
def test_nested_unit_of_work_rolls_back_with_outer(tenant_id, facility_id):
    with pytest.raises(RuntimeError):
        with unit_of_work():
            with unit_of_work():
                Room.objects.create(
                    tenant_id=tenant_id,
                    facility_id=facility_id,
                    room_number="901",
                    room_type="ward",
                    floor_number=9,
                    department_id=tenant_id,
                    max_capacity=2,
                )
            raise RuntimeError("outer failed")

    assert not Room.objects.filter(room_number="901").exists()
