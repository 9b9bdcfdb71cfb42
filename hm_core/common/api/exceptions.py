# backend/hm_core/common/api/exceptions.py

from __future__ import annotations

import uuid
from typing import Any

import structlog
from django.core.exceptions import ObjectDoesNotExist
from django.core.exceptions import ValidationError as DjangoValidationError
from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException, NotAuthenticated, NotFound, PermissionDenied, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

log = structlog.get_logger(__name__)


def ensure_request_id(request) -> str:
    """
    Ensures request has a stable request_id attribute and returns it.
    Safe to call from middleware and DRF exception handler.
    """
    rid = getattr(request, "request_id", None) if request is not None else None
    if not rid:
        rid = uuid.uuid4().hex
        if request is not None:
            setattr(request, "request_id", rid)
    return rid


def build_error_envelope(*, request=None, code: str, message: str, details: Any = None) -> dict[str, Any]:
    """
    Canonical error envelope.
    Reusable from Django middleware (JsonResponse) and DRF (Response).
    """
    rid = ensure_request_id(request)
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details,
            "request_id": rid,
        }
    }


class DomainError(APIException):
    """
    Business-rule failure raised from services.

    Carries a human message plus structured context, e.g.
        BedUnavailable("Bed B-12 is occupied.", bed_id=..., current_status="occupied")
    The envelope renders the message as `message` and the context as `details`.
    """
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict."
    default_code = "conflict"

    def __init__(self, message: str | None = None, **context: Any):
        self.message = message or str(self.default_detail)
        self.context = {k: v for k, v in context.items() if v is not None}
        detail = {"detail": self.message}
        detail.update({k: str(v) if isinstance(v, uuid.UUID) else v for k, v in self.context.items()})
        super().__init__(detail=detail, code=self.default_code)

    def __str__(self) -> str:
        return self.message


class InvalidStateTransition(DomainError):
    default_detail = "The requested state change is not allowed."
    default_code = "invalid_state_transition"


class BedUnavailable(DomainError):
    default_detail = "The bed is not available."
    default_code = "bed_unavailable"


class ConcurrentUpdate(DomainError):
    default_detail = "The record is being updated by another request. Please retry."
    default_code = "concurrent_update"


class AccessDenied(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You are not allowed to perform this action."
    default_code = "access_denied"


class SequenceNotConfigured(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "No identifier sequence is configured for this type."
    default_code = "sequence_not_configured"


class SequenceExhausted(DomainError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "The identifier sequence has run out of values."
    default_code = "sequence_exhausted"


def _code_for(exc: Exception, http_status: int) -> str:
    if isinstance(exc, ValidationError):
        return "validation_error"
    if isinstance(exc, NotAuthenticated):
        return "not_authenticated"
    if isinstance(exc, PermissionDenied):
        return "permission_denied"
    if isinstance(exc, (Http404, NotFound)):
        return "not_found"
    if isinstance(exc, APIException):
        return getattr(exc, "default_code", "api_error") or "api_error"
    if http_status >= 500:
        return "server_error"
    return "error"


def api_exception_handler(exc: Exception, context: dict[str, Any]):
    request = context.get("request")

    # Model.DoesNotExist raised from services/selectors is a plain 404.
    if isinstance(exc, ObjectDoesNotExist):
        exc = NotFound(str(exc) or "Not found.")

    # Field coercion failures (e.g. a malformed UUID in a lookup) are client errors.
    if isinstance(exc, DjangoValidationError):
        exc = ValidationError({"detail": exc.messages[0] if exc.messages else "Invalid value."})

    response = drf_exception_handler(exc, context)

    # Truly unhandled error
    if response is None:
        log.exception("api.unhandled_error", request_id=ensure_request_id(request))
        return Response(
            build_error_envelope(
                request=request,
                code="server_error",
                message="Unexpected server error.",
                details=None,
            ),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    http_status = response.status_code
    code = _code_for(exc, http_status)

    if isinstance(exc, DomainError):
        log.info("api.domain_error", code=code, status=http_status, message=exc.message)

    # DRF standardizes errors into response.data
    data = response.data

    # Message + details rules:
    # 1) {"detail": "..."} -> message=detail, details=None
    # 2) {"detail": "...", ...} -> message=detail, details={...without detail}
    # 3) otherwise -> message="Request failed.", details=data
    message = "Request failed."
    details = data

    if isinstance(data, dict) and "detail" in data:
        message = str(data.get("detail"))
        rest = {k: v for k, v in data.items() if k != "detail"}
        details = rest or None

    return Response(
        build_error_envelope(
            request=request,
            code=code,
            message=message,
            details=details,
        ),
        status=http_status,
        headers=response.headers,
    )
