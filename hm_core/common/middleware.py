# backend/hm_core/common/middleware.py
from __future__ import annotations

import structlog
from django.utils.deprecation import MiddlewareMixin

from hm_core.common.api.exceptions import ensure_request_id
from hm_core.common.scope import resolve_scope


class RequestContextMiddleware(MiddlewareMixin):
    """
    Binds per-request logging context (request id, method, path, scope).

    Scope is only attached here when the headers are valid; views still call
    require_scope(), which turns a missing/invalid scope into a 400 envelope.
    """

    REQUEST_ID_HEADER = "HTTP_X_REQUEST_ID"

    def process_request(self, request):
        incoming = request.META.get(self.REQUEST_ID_HEADER)
        if incoming:
            request.request_id = incoming[:64]
        rid = ensure_request_id(request)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=rid,
            method=request.method,
            path=request.path,
        )

        scope = resolve_scope(request)
        if scope is not None:
            request.scope = scope
            request.tenant_id = scope.tenant_id
            request.facility_id = scope.facility_id
            structlog.contextvars.bind_contextvars(
                tenant_id=str(scope.tenant_id),
                facility_id=str(scope.facility_id),
            )
        return None

    def process_response(self, request, response):
        rid = getattr(request, "request_id", None)
        if rid:
            response["X-Request-Id"] = rid
        structlog.contextvars.clear_contextvars()
        return response
