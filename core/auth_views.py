"""
Authentication views.

Signup and login hand out both a DRF token and a JWT pair; refresh and
logout operate on the JWT refresh token.  These views live outside
``core.authentication`` so DRF can import the authentication class
without pulling in the view layer.
"""
from __future__ import annotations

from django.contrib.auth import authenticate
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError
from rest_framework_simplejwt.serializers import TokenRefreshSerializer
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken
from rest_framework_simplejwt.tokens import RefreshToken

from core.models import User
from core.serializers.auth import LoginSerializer, SignupSerializer
from core.services.audit import log_action
from core.services.users import issue_tokens, register_user
from core.views.common import fail


@api_view(['POST'])
@permission_classes([AllowAny])
def signup_view(request):
    s = SignupSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    user = register_user(s.validated_data)
    log_action(user=user, action='signup', object_type='user', object_id=user.id,
               detail={'role': user.role, 'ip': request.META.get('REMOTE_ADDR')},
               method=request.method, path=request.path, status_code=201)
    return Response({'ok': True, **issue_tokens(user)}, status=status.HTTP_201_CREATED)


signup_view.cls.throttle_scope = 'signup'


def _username_for(login: str) -> str:
    if '@' not in login:
        return login
    user = User.objects.filter(email__iexact=login).only('username').first()
    return user.username if user else login


@api_view(['POST'])
@permission_classes([AllowAny])
def login_view(request):
    """Email (or username) and password login."""
    s = LoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    login = s.validated_data['login']
    ip = request.META.get('REMOTE_ADDR')

    user = authenticate(request, username=_username_for(login), password=s.validated_data['password'])
    if not user:
        # only the login name is kept for failed attempts
        log_action(user=None, action='login', object_type='user',
                   detail={'result': 'fail', 'login': login, 'ip': ip},
                   method=request.method, path=request.path, status_code=401)
        return fail('Invalid email or password', status.HTTP_401_UNAUTHORIZED)

    log_action(user=user, action='login', object_type='user', object_id=user.id,
               detail={'result': 'ok', 'ip': ip}, method=request.method, path=request.path, status_code=200)
    return Response({'ok': True, **issue_tokens(user)})


login_view.cls.throttle_scope = 'login'


@api_view(['POST'])
@permission_classes([AllowAny])
def jwt_refresh_view(request):
    """Return a new access token from a refresh token."""
    s = TokenRefreshSerializer(data=request.data)
    try:
        s.is_valid(raise_exception=True)
    except TokenError as e:
        raise InvalidToken(e.args[0])
    data = dict(s.validated_data)
    out = {'ok': True, 'jwtAccess': data.pop('access')}
    if 'refresh' in data:
        out['jwtRefresh'] = data['refresh']
    return Response(out)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def jwt_logout_view(request):
    """Blacklist the given refresh token, or every outstanding one of the user."""
    refresh = request.data.get('refresh')
    count = 0
    if refresh:
        try:
            RefreshToken(refresh).blacklist()
        except TokenError as e:
            return fail(str(e))
        count = 1
    else:
        for token in OutstandingToken.objects.filter(user=request.user):
            _, was_created = BlacklistedToken.objects.get_or_create(token=token)
            count += int(was_created)
    return Response({'ok': True, 'blacklisted': count})
