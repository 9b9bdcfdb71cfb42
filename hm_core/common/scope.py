# backend/hm_core/common/scope.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from rest_framework.exceptions import ValidationError

MISSING_SCOPE_MSG = "Missing scope headers. Provide X-Tenant-Id and X-Facility-Id."
INVALID_SCOPE_MSG = "Invalid scope headers. Provide valid UUIDs for X-Tenant-Id and X-Facility-Id."


@dataclass(frozen=True)
class Scope:
    tenant_id: UUID
    facility_id: UUID


# Preferred header names
HDR_TENANT = "X-Tenant-Id"
HDR_FACILITY = "X-Facility-Id"

# HM-prefixed variants (older clients)
HDR_TENANT_HM = "X-HM-Tenant-Id"
HDR_FACILITY_HM = "X-HM-Facility-Id"


def _parse_uuid(value) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


def _get_header(request, name: str) -> Optional[str]:
    """
    request.headers is case-insensitive; fallback to META for the test client.
    """
    headers = getattr(request, "headers", None)
    if headers is not None:
        v = headers.get(name)
        if v:
            return v

    meta_key = "HTTP_" + name.upper().replace("-", "_")
    return request.META.get(meta_key)


def _raw_scope(request) -> tuple[Optional[str], Optional[str]]:
    tenant_raw = _get_header(request, HDR_TENANT) or _get_header(request, HDR_TENANT_HM)
    facility_raw = _get_header(request, HDR_FACILITY) or _get_header(request, HDR_FACILITY_HM)
    return tenant_raw, facility_raw


def resolve_scope(request) -> Optional[Scope]:
    """
    Returns Scope if BOTH headers are present and valid, otherwise None.
    Pure resolver: raises nothing.
    """
    existing = getattr(request, "scope", None)
    if isinstance(existing, Scope):
        return existing

    tenant_raw, facility_raw = _raw_scope(request)
    tenant_id = _parse_uuid(tenant_raw) if tenant_raw else None
    facility_id = _parse_uuid(facility_raw) if facility_raw else None
    if not tenant_id or not facility_id:
        return None
    return Scope(tenant_id=tenant_id, facility_id=facility_id)


def require_scope(request) -> Scope:
    """
    Scope for a view, or 400 (validation_error envelope) when missing/invalid.
    Attaches request.scope / tenant_id / facility_id for downstream code.
    """
    scope = resolve_scope(request)
    if scope is None:
        tenant_raw, facility_raw = _raw_scope(request)
        msg = INVALID_SCOPE_MSG if (tenant_raw and facility_raw) else MISSING_SCOPE_MSG
        raise ValidationError({"detail": msg})

    request.scope = scope
    request.tenant_id = scope.tenant_id
    request.facility_id = scope.facility_id
    return scope
