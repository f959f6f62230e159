import json
import logging

from django.db import DatabaseError

from core.services.audit import log_action

logger = logging.getLogger(__name__)


class AuditLogMiddleware:
    """Record every authenticated write under ``/api/``.

    The JSON body is captured before the view runs (password-like keys are
    redacted by ``log_action``); the user is read afterwards because DRF
    authenticates inside the view.
    """
    AUDITED_METHODS = ('POST', 'PUT', 'PATCH', 'DELETE')
    PREFIX = '/api/'
    # these already write their own audit rows
    SKIP_PATHS = ('/api/auth/login', '/api/auth/signup')

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        path = request.path or ''
        audited = (request.method in self.AUDITED_METHODS and path.startswith(self.PREFIX)
                   and path not in self.SKIP_PATHS)
        body = self._body(request) if audited else None
        response = self.get_response(request)
        if audited:
            user = getattr(request, 'user', None)
            if user is not None and user.is_authenticated:
                self._record(request, user, body, response.status_code)
        return response

    @staticmethod
    def _body(request):
        if 'json' not in (request.content_type or ''):
            return None
        try:
            return json.loads(request.body or b'null')
        except ValueError:
            return None

    def _record(self, request, user, body, status_code):
        resolver = getattr(request, 'resolver_match', None)
        kwargs = resolver.kwargs if resolver else {}
        object_id = next((v for k, v in kwargs.items() if k in ('pk', 'user_id', 'patient_id')), None)
        name = (resolver.url_name if resolver else None) or path_tail(request.path)
        try:
            log_action(
                user=user,
                action=f"{request.method.lower()}:{name}"[:64],
                object_type=name,
                object_id=object_id,
                detail={'body': body} if body is not None else {},
                method=request.method,
                path=request.path,
                status_code=status_code,
            )
        except DatabaseError:
            logger.exception("audit log write failed for %s %s", request.method, request.path)


def path_tail(path: str) -> str:
    return path.rstrip('/').rsplit('/', 1)[-1][:50]
