"""
User directory endpoints.
"""
from __future__ import annotations

from django.db.models.functions import Lower
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated

from core.models import User
from core.permissions import ADMIN_ROLES, IsAdminRole
from core.serializers.auth import UserUpdateSerializer
from core.services.activity import create_activity
from core.services.users import check_tenant_binding, serialize_user, tenant_values
from core.views.common import fail, ok, paginate


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def me(request):
    return ok(serialize_user(request.user))


@api_view(['GET'])
@permission_classes([AllowAny])
def check_role(request, email):
    user = User.objects.filter(email__iexact=email.strip()).only('role').first()
    return ok({'exists': user is not None, 'role': user.role if user else None})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def users_by_role(request, role):
    role = role.upper()
    if role not in dict(User.ROLE_CHOICES):
        return fail('Unknown role')
    qs = User.objects.filter(role=role, is_active=True).order_by(Lower('first_name'), 'id')[:100]
    return ok([serialize_user(u) for u in qs])


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def list_users(request):
    qs = User.objects.all().order_by('-date_joined')
    qp = request.query_params
    if qp.get('role'):
        qs = qs.filter(role=qp['role'].upper())
    if qp.get('hospitalId'):
        qs = qs.filter(hospital_id=qp['hospitalId'])
    if qp.get('pharmacyId'):
        qs = qs.filter(pharmacy_id=qp['pharmacyId'])
    if request.user.role == User.HOSPITAL_ADMIN:
        qs = qs.filter(hospital_id=request.user.hospital_id)
    rows, pagination = paginate(qs, request, default_size=50, max_size=50)
    return ok([serialize_user(u) for u in rows], pagination=pagination)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def user_detail(request, user_id):
    target = User.objects.filter(pk=user_id).first()
    if not target:
        return fail('User not found', status.HTTP_404_NOT_FOUND)
    is_admin = request.user.role in ADMIN_ROLES

    if request.method == 'GET':
        if not is_admin and target.id != request.user.id:
            return fail('You may only view your own profile', status.HTTP_403_FORBIDDEN)
        return ok(serialize_user(target))

    if not is_admin:
        return fail('Administrator role required', status.HTTP_403_FORBIDDEN)
    if target.role == User.SUPER_ADMIN and request.user.role != User.SUPER_ADMIN:
        return fail('Only a super admin may modify a super admin', status.HTTP_403_FORBIDDEN)

    if request.method == 'DELETE':
        snapshot = serialize_user(target)
        target.delete()
        create_activity('USER_DELETED', 'User deleted', f"{snapshot['name']} ({snapshot['role']}) was removed",
                        user_id=request.user.id, metadata={'userId': snapshot['id'], 'role': snapshot['role']})
        return ok({'id': snapshot['id']})

    s = UserUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    if vd.get('role') == User.SUPER_ADMIN and request.user.role != User.SUPER_ADMIN:
        return fail('Only a super admin may grant SUPER_ADMIN', status.HTTP_403_FORBIDDEN)
    if 'name' in vd:
        target.first_name = vd['name']
    if 'phone' in vd:
        target.phone = vd['phone']
    if 'role' in vd:
        target.role = vd['role']
    if 'isActive' in vd:
        target.is_active = vd['isActive']
    for field, value in tenant_values(vd).items():
        setattr(target, field, value)
    check_tenant_binding(target)
    target.save()
    create_activity('USER_UPDATED', 'User updated', f"{target.display_name} was updated",
                    user_id=request.user.id, hospital_id=target.hospital_id, pharmacy_id=target.pharmacy_id,
                    distributor_id=target.distributor_id,
                    metadata={'userId': target.id, 'fields': sorted(request.data.keys())})
    return ok(serialize_user(target))
