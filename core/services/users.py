"""
Account helpers shared by signup, login and the user directory.
"""
from __future__ import annotations

from django.db import transaction
from rest_framework.authtoken.models import Token
from rest_framework_simplejwt.tokens import RefreshToken

from core.exceptions import ApiError
from core.models import Distributor, Hospital, Pharmacy, User
from core.permissions import TENANT_FIELDS, missing_tenant
from core.services.activity import create_activity

TENANT_FIELDS_BY_KEY = (
    ('hospitalId', 'hospital_id', Hospital),
    ('pharmacyId', 'pharmacy_id', Pharmacy),
    ('distributorId', 'distributor_id', Distributor),
)


def serialize_user(u: User) -> dict:
    return {
        'id': u.id,
        'name': u.display_name,
        'email': u.email,
        'phone': u.phone,
        'role': u.role,
        'hospitalId': u.hospital_id,
        'pharmacyId': u.pharmacy_id,
        'distributorId': u.distributor_id,
        'isActive': u.is_active,
        'createdAt': u.date_joined.isoformat() if u.date_joined else None,
    }


def tenant_values(data: dict) -> dict:
    """Map camelCase tenant ids to model fields, checking they exist."""
    out = {}
    for key, field, model in TENANT_FIELDS_BY_KEY:
        if key not in data:
            continue
        value = data[key]
        if value is not None and not model.objects.filter(pk=value).exists():
            raise ApiError(f"{model._meta.verbose_name.title()} not found", 404)
        out[field] = value
    return out


def check_tenant_binding(user: User) -> None:
    """Hospital admins, pharmacy staff and distributors must belong to a tenant."""
    if missing_tenant(user):
        key = next(k for k, field, _ in TENANT_FIELDS_BY_KEY if field == TENANT_FIELDS[user.role])
        raise ApiError(f"{user.role} accounts require {key}")


def issue_tokens(user: User) -> dict:
    token, _ = Token.objects.get_or_create(user=user)
    refresh = RefreshToken.for_user(user)
    return {
        'token': token.key,
        'jwtAccess': str(refresh.access_token),
        'jwtRefresh': str(refresh),
        'user': serialize_user(user),
    }


@transaction.atomic
def register_user(data: dict) -> User:
    email = data['email']
    if User.objects.filter(email__iexact=email).exists() or User.objects.filter(username__iexact=email).exists():
        raise ApiError('Email already registered')
    if data.get('role') == User.SUPER_ADMIN:
        raise ApiError('SUPER_ADMIN cannot be self-assigned', 403)
    user = User(
        username=email,
        email=email,
        first_name=data['name'],
        phone=data.get('phone') or '',
        role=data.get('role') or User.PATIENT,
        **tenant_values(data),
    )
    check_tenant_binding(user)
    user.set_password(data['password'])
    user.save()
    create_activity(
        'USER_CREATED',
        'New user registered',
        f"{user.display_name} signed up as {user.role}",
        user_id=user.id,
        hospital_id=user.hospital_id,
        pharmacy_id=user.pharmacy_id,
        distributor_id=user.distributor_id,
        metadata={'role': user.role},
    )
    return user
