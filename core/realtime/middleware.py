"""
WebSocket authentication from the ``token`` query parameter.

Browsers cannot set headers on a WebSocket handshake, so clients pass
either their DRF token or a JWT access token as ``?token=...``.
"""
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth.models import AnonymousUser

from core.authentication import resolve_user_from_token


@database_sync_to_async
def _user_for(raw):
    return resolve_user_from_token(raw) or AnonymousUser()


class TokenAuthMiddleware(BaseMiddleware):
    async def __call__(self, scope, receive, send):
        query = parse_qs((scope.get("query_string") or b"").decode())
        raw = (query.get("token") or [""])[0]
        scope = dict(scope, user=await _user_for(raw) if raw else AnonymousUser())
        return await super().__call__(scope, receive, send)
