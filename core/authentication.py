"""
Authentication classes and helpers shared by HTTP views and websockets.

The ``Token`` keyword subclass keeps a stable import path for the DRF
configuration.  ``resolve_user_from_token`` accepts either a legacy DRF
token key or a simplejwt access token, which is what browsers pass as
the ``token`` query parameter when opening a websocket.
"""
from __future__ import annotations

import logging

from rest_framework import authentication
from rest_framework.exceptions import AuthenticationFailed
from rest_framework.authtoken.models import Token
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError

logger = logging.getLogger(__name__)


class TokenAuthentication(authentication.TokenAuthentication):
    """DRF token authentication using the ``Token`` keyword."""

    keyword = 'Token'


def resolve_user_from_token(raw: str | None):
    """Return the active user for a DRF token or JWT access token, else None."""
    if not raw:
        return None
    tok = Token.objects.select_related('user').filter(key=raw).first()
    if tok is not None:
        return tok.user if tok.user.is_active else None
    jwt_auth = JWTAuthentication()
    try:
        validated = jwt_auth.get_validated_token(raw.encode())
        user = jwt_auth.get_user(validated)
    except (InvalidToken, TokenError) as e:
        logger.debug("rejected websocket token: %s", e)
        return None
    except AuthenticationFailed as e:
        logger.debug("websocket token user lookup failed: %s", e)
        return None
    return user if user.is_active else None
