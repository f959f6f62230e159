import logging

from django.db import IntegrityError
from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class ApiError(exceptions.APIException):
    """Domain error that carries its own HTTP status.

    Services raise this instead of returning tuples so that views stay
    thin; the handler below renders it like any other DRF error.
    """
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = 'api_error'

    def __init__(self, message, status_code: int | None = None, code: str | None = None):
        super().__init__(detail=message, code=code)
        if status_code is not None:
            self.status_code = status_code


# codes for ApiErrors raised with a bare status
CODES_BY_STATUS = {
    status.HTTP_401_UNAUTHORIZED: 'not_authenticated',
    status.HTTP_403_FORBIDDEN: 'permission_denied',
    status.HTTP_404_NOT_FOUND: 'not_found',
    status.HTTP_409_CONFLICT: 'conflict',
}


def _code_for(exc, status_code: int) -> str:
    if isinstance(exc, exceptions.ValidationError):
        return 'validation_error'
    if isinstance(exc, (exceptions.NotAuthenticated, exceptions.AuthenticationFailed)):
        return 'not_authenticated'
    if isinstance(exc, exceptions.PermissionDenied):
        return 'permission_denied'
    if isinstance(exc, (exceptions.NotFound, Http404)):
        return 'not_found'
    if isinstance(exc, exceptions.Throttled):
        return 'throttled'
    if isinstance(exc, ApiError):
        code = exc.get_codes()
        if code != ApiError.default_code:
            return code
        return CODES_BY_STATUS.get(status_code, code)
    return 'api_error'


def api_exception_handler(exc, context):
    if isinstance(exc, IntegrityError):
        logger.info("integrity error on %s: %s", context.get('view'), exc)
        return Response({'ok': False, 'error': {'code': 'conflict', 'message': 'Duplicate or conflicting record'}},
                        status=status.HTTP_409_CONFLICT)

    resp = drf_exception_handler(exc, context)
    if resp is None:
        logger.exception("unhandled API error", exc_info=exc)
        return Response({'ok': False, 'error': {'code': 'server_error', 'message': str(exc)}}, status=500)

    # normalize response
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = resp.data
    return Response({'ok': False, 'error': {'code': _code_for(exc, resp.status_code), 'message': detail}},
                    status=resp.status_code,
                    headers={h: resp[h] for h in ('WWW-Authenticate', 'Retry-After') if resp.has_header(h)})
