from __future__ import annotations

from django.conf import settings
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


class DefaultPagination(PageNumberPagination):
    page_size = settings.REST_FRAMEWORK.get("PAGE_SIZE") or 25
    page_size_query_param = "page_size"
    max_page_size = 200


def paginate(request, queryset, serializer_class, *, paginator: PageNumberPagination | None = None) -> Response:
    """
    Stable list contract for every collection endpoint:
      { count, next, previous, results }
    """
    p = paginator or DefaultPagination()
    page = p.paginate_queryset(queryset, request)
    if page is not None:
        ser = serializer_class(page, many=True)
        return p.get_paginated_response(ser.data)

    ser = serializer_class(queryset, many=True)
    return Response(ser.data)
