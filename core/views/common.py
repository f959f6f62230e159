"""
Response helpers shared by the API views.

Successful payloads are wrapped as ``{'ok': True, 'data': ...}``; list
endpoints add a ``pagination`` block.  View-level refusals use
:func:`fail`, everything else goes through the exception handler.
"""
from __future__ import annotations

from typing import Any, Optional

from rest_framework import status
from rest_framework.response import Response

DEFAULT_PAGE_SIZE = 50


def ok(data: Any = None, *, status_code: int = status.HTTP_200_OK, pagination: Optional[dict] = None,
       **extra) -> Response:
    body: dict[str, Any] = {'ok': True, 'data': data}
    if pagination is not None:
        body['pagination'] = pagination
    body.update(extra)
    return Response(body, status=status_code)


def created(data: Any = None) -> Response:
    return ok(data, status_code=status.HTTP_201_CREATED)


def fail(detail: str, status_code: int = status.HTTP_400_BAD_REQUEST) -> Response:
    return Response({'ok': False, 'detail': detail}, status=status_code)


def _int(value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def paginate(qs, request, *, default_size: int = DEFAULT_PAGE_SIZE, max_size: int = 200):
    """Slice ``qs`` by ``page``/``pageSize`` query params.

    Returns ``(rows, pagination)``; ``pageSize`` is clamped to ``max_size``.
    """
    page = max(1, _int(request.query_params.get('page'), 1))
    size = min(max(1, _int(request.query_params.get('pageSize') or request.query_params.get('limit'),
                           default_size)), max_size)
    total = qs.count()
    start = (page - 1) * size
    rows = list(qs[start:start + size])
    return rows, {'total': total, 'page': page, 'pageSize': size}


def flag(value) -> Optional[bool]:
    """Parse ``true``/``false`` query values; anything else is None."""
    if value is None:
        return None
    v = str(value).strip().lower()
    if v in ('1', 'true', 'yes'):
        return True
    if v in ('0', 'false', 'no'):
        return False
    return None
