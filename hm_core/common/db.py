# backend/hm_core/common/db.py
"""
Transaction helpers for state-changing services.

unit_of_work() wraps a single logical operation (all-or-nothing) and bounds
how long it may wait on row locks. retry_on_conflict() re-runs a whole
operation when it lost a lock race.

Usage:
    class SomeService:
        @staticmethod
        @retry_on_conflict
        def do_something(...):
            with unit_of_work():
                row = Model.objects.select_for_update().get(...)
                ...
"""
from __future__ import annotations

import functools
import time
from contextlib import contextmanager

import structlog
from django.conf import settings
from django.db import DEFAULT_DB_ALIAS, OperationalError, transaction

from hm_core.common.api.exceptions import ConcurrentUpdate

log = structlog.get_logger(__name__)

# lock_not_available, query_canceled, deadlock_detected, serialization_failure
CONTENTION_SQLSTATES = frozenset({"55P03", "57014", "40P01", "40001"})


def _sqlstate(exc: BaseException) -> str | None:
    cause = exc.__cause__ or exc
    return getattr(cause, "sqlstate", None) or getattr(cause, "pgcode", None)


def is_contention_error(exc: BaseException) -> bool:
    """True when the database gave up waiting on a lock (or aborted a deadlock victim)."""
    if _sqlstate(exc) in CONTENTION_SQLSTATES:
        return True
    # SQLite reports lock waits as a plain OperationalError.
    return "database is locked" in str(exc).lower()


def _apply_lock_timeouts(using: str) -> None:
    conn = transaction.get_connection(using)
    if conn.vendor != "postgresql":
        return

    lock_ms = int(getattr(settings, "UNIT_OF_WORK_LOCK_TIMEOUT_MS", 0) or 0)
    statement_ms = int(getattr(settings, "UNIT_OF_WORK_STATEMENT_TIMEOUT_MS", 0) or 0)
    with conn.cursor() as cursor:
        # set_config(..., true) is transaction-local, same as SET LOCAL.
        if lock_ms:
            cursor.execute("SELECT set_config('lock_timeout', %s, true)", [f"{lock_ms}ms"])
        if statement_ms:
            cursor.execute("SELECT set_config('statement_timeout', %s, true)", [f"{statement_ms}ms"])


@contextmanager
def unit_of_work(*, using: str = DEFAULT_DB_ALIAS, timeout_seconds: float | None = None):
    """
    Atomic block with bounded waits.

    - Outermost call: applies lock/statement timeouts (PostgreSQL) and a
      wall-clock deadline; overrunning the deadline rolls everything back.
    - Nested call: plain savepoint, the outer unit owns the limits.
    - Lock-wait failures surface as ConcurrentUpdate and leave no partial writes.
    """
    outermost = not transaction.get_connection(using).in_atomic_block
    if timeout_seconds is None:
        timeout_seconds = float(getattr(settings, "UNIT_OF_WORK_TIMEOUT_SECONDS", 0) or 0)

    started = time.monotonic()
    try:
        with transaction.atomic(using=using):
            if outermost:
                _apply_lock_timeouts(using)

            yield

            elapsed = time.monotonic() - started
            if outermost and timeout_seconds and elapsed > timeout_seconds:
                log.warning("unit_of_work.deadline_exceeded", elapsed=round(elapsed, 3), limit=timeout_seconds)
                raise ConcurrentUpdate(
                    "Operation took too long and was rolled back. Please retry.",
                    elapsed_seconds=round(elapsed, 3),
                )
    except OperationalError as exc:
        if not is_contention_error(exc):
            raise
        log.warning("unit_of_work.lock_contention", error=str(exc), sqlstate=_sqlstate(exc))
        raise ConcurrentUpdate() from exc


def retry_on_conflict(fn=None, *, attempts: int | None = None, backoff_seconds: float | None = None):
    """
    Retry an operation that raised ConcurrentUpdate with exponential backoff.

    Only the outermost call retries. Inside an enclosing transaction the
    failed attempt cannot be replayed on its own, so the error propagates
    to whoever owns that transaction.
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            if transaction.get_connection().in_atomic_block:
                return func(*args, **kwargs)

            max_attempts = attempts or int(getattr(settings, "CONCURRENCY_RETRY_ATTEMPTS", 3))
            base_delay = (
                backoff_seconds
                if backoff_seconds is not None
                else float(getattr(settings, "CONCURRENCY_RETRY_BACKOFF_SECONDS", 0.05))
            )

            attempt = 1
            while True:
                try:
                    return func(*args, **kwargs)
                except ConcurrentUpdate:
                    if attempt >= max_attempts:
                        log.warning("unit_of_work.retries_exhausted", operation=func.__qualname__, attempts=attempt)
                        raise
                    delay = base_delay * (2 ** (attempt - 1))
                    log.info("unit_of_work.retrying", operation=func.__qualname__, attempt=attempt, delay=delay)
                    if delay:
                        time.sleep(delay)
                    attempt += 1

        return wrapper

    if fn is not None:
        return decorator(fn)
    return decorator
