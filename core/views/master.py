"""
Tenant master data (hospitals, pharmacies, distributors) and the
anonymous public directory.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated

from core.models import Distributor, Hospital, InventoryItem, Pharmacy, User
from core.permissions import IsAdminOrReadOnly
from core.serializers.master import OrgUnitSerializer
from core.services.activity import create_activity
from core.views.common import created, fail, ok, paginate

# url segment -> (model, activity prefix, activity fk)
KINDS = {
    'hospitals': (Hospital, 'HOSPITAL', 'hospital_id'),
    'pharmacies': (Pharmacy, 'PHARMACY', 'pharmacy_id'),
    'distributors': (Distributor, 'DISTRIBUTOR', 'distributor_id'),
}


def serialize_unit(u) -> dict:
    return {
        'id': u.id,
        'name': u.name,
        'address': u.address,
        'phone': u.phone,
        'email': u.email,
        'isActive': u.is_active,
        'createdAt': u.created_at.isoformat() if u.created_at else None,
    }


def _apply(unit, vd: dict) -> None:
    for key, field in (('name', 'name'), ('address', 'address'), ('phone', 'phone'), ('email', 'email'),
                       ('isActive', 'is_active')):
        if key in vd:
            setattr(unit, field, vd[key])


def _record(kind: str, action: str, unit, user) -> None:
    _, prefix, fk = KINDS[kind]
    create_activity(
        f'{prefix}_{action}',
        f"{prefix.title()} {action.lower()}",
        f"{unit.name} was {action.lower()}",
        user_id=user.id,
        metadata={'id': unit.id, 'name': unit.name},
        **({fk: unit.id} if action != 'DELETED' else {}),
    )


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminOrReadOnly])
def unit_collection(request, kind):
    if kind not in KINDS:
        return fail('Unknown master data type', status.HTTP_404_NOT_FOUND)
    model = KINDS[kind][0]
    if request.method == 'GET':
        qs = model.objects.all()
        q = request.query_params.get('q')
        if q:
            qs = qs.filter(name__icontains=q)
        rows, pagination = paginate(qs, request, default_size=100, max_size=500)
        return ok([serialize_unit(u) for u in rows], pagination=pagination)

    s = OrgUnitSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    unit = model()
    _apply(unit, s.validated_data)
    unit.save()
    _record(kind, 'CREATED', unit, request.user)
    return created(serialize_unit(unit))


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminOrReadOnly])
def unit_detail(request, kind, pk):
    if kind not in KINDS:
        return fail('Unknown master data type', status.HTTP_404_NOT_FOUND)
    unit = KINDS[kind][0].objects.filter(pk=pk).first()
    if not unit:
        return fail('Not found', status.HTTP_404_NOT_FOUND)
    if request.method == 'GET':
        return ok(serialize_unit(unit))
    if request.method == 'DELETE':
        unit.delete()
        unit.id = pk
        _record(kind, 'DELETED', unit, request.user)
        return ok({'id': pk})

    s = OrgUnitSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    _apply(unit, s.validated_data)
    unit.save()
    _record(kind, 'UPDATED', unit, request.user)
    return ok(serialize_unit(unit))


# ---------------------------------------------------------------------
# Public directory
# ---------------------------------------------------------------------
@api_view(['GET'])
@permission_classes([AllowAny])
def public_units(request, kind):
    if kind not in ('hospitals', 'pharmacies'):
        return fail('Not found', status.HTTP_404_NOT_FOUND)
    qs = KINDS[kind][0].objects.filter(is_active=True)
    return ok([{'id': u.id, 'name': u.name, 'address': u.address, 'phone': u.phone} for u in qs])


@api_view(['GET'])
@permission_classes([AllowAny])
def public_doctors(request):
    qs = User.objects.filter(role=User.DOCTOR, is_active=True).select_related('hospital').order_by('first_name', 'id')
    hospital_id = request.query_params.get('hospitalId')
    if hospital_id:
        qs = qs.filter(hospital_id=hospital_id)
    return ok([
        {'id': d.id, 'name': d.display_name, 'hospitalId': d.hospital_id,
         'hospitalName': d.hospital.name if d.hospital else None}
        for d in qs
    ])


@api_view(['GET'])
@permission_classes([AllowAny])
def public_medicines(request):
    qs = InventoryItem.objects.filter(quantity__gt=0, pharmacy__is_active=True).select_related('pharmacy')
    q = (request.query_params.get('q') or '').strip()
    if q:
        qs = qs.filter(medicine_name__icontains=q)
    pharmacy_id = request.query_params.get('pharmacyId')
    if pharmacy_id:
        qs = qs.filter(pharmacy_id=pharmacy_id)
    rows, pagination = paginate(qs.order_by('medicine_name', 'id'), request, default_size=50, max_size=100)
    return ok([
        {'id': i.id, 'medicineName': i.medicine_name, 'pharmacyId': i.pharmacy_id, 'pharmacyName': i.pharmacy.name,
         'quantity': i.quantity, 'sellingPrice': float(i.selling_price), 'expiryDate': i.expiry_date.isoformat()}
        for i in rows
    ], pagination=pagination)
