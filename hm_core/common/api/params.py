# backend/hm_core/common/api/params.py
from __future__ import annotations

from datetime import datetime, time
from uuid import UUID

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime
from rest_framework.exceptions import ValidationError

# Router lookup for UUID primary keys (non-UUIDs fall through to 404).
UUID_PATTERN = r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"


def uuid_param(request, name: str) -> UUID | None:
    raw = request.query_params.get(name)
    if not raw:
        return None
    try:
        return UUID(str(raw))
    except ValueError:
        raise ValidationError({name: "Must be a valid UUID."})


def int_param(request, name: str, default: int | None = None, *, maximum: int | None = None) -> int | None:
    raw = request.query_params.get(name)
    if raw in (None, ""):
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError({name: "Must be an integer."})
    if value < 0:
        raise ValidationError({name: "Must not be negative."})
    if maximum is not None:
        value = min(value, maximum)
    return value


def datetime_param(request, name: str, default: datetime | None = None) -> datetime | None:
    """ISO-8601 date or datetime; naive values are read in the current timezone."""
    raw = request.query_params.get(name)
    if not raw:
        return default
    try:
        value = parse_datetime(raw)
        day = parse_date(raw) if value is None else None
    except ValueError:
        value = day = None
    if value is None:
        if day is None:
            raise ValidationError({name: "Must be an ISO-8601 date or datetime."})
        value = datetime.combine(day, time.min)
    if timezone.is_naive(value):
        value = timezone.make_aware(value)
    return value
