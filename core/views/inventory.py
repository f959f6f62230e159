"""
Pharmacy stock endpoints, plus brand search by name or composition.
"""
from __future__ import annotations

from datetime import timedelta

from django.conf import settings
from django.db.models import F, Q
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from core.exceptions import ApiError
from core.models import Distributor, InventoryItem, Pharmacy
from core.permissions import IsPharmacyOrReadOnly, IsPharmacyRole, can_access_pharmacy, scoped_pharmacy_id
from core.serializers.pharmacy import (
    ConsumeSerializer, InventoryItemSerializer, InventorySearchQuerySerializer, InventoryUpdateSerializer,
)
from core.services.activity import create_activity
from core.services.inventory import check_low_stock, decrement_stock, serialize_distributor_order
from core.views.common import created, fail, flag, ok, paginate

FIELD_MAP = {
    'pharmacyId': 'pharmacy_id',
    'medicineName': 'medicine_name',
    'brandName': 'brand_name',
    'composition': 'composition',
    'batchNumber': 'batch_number',
    'expiryDate': 'expiry_date',
    'quantity': 'quantity',
    'threshold': 'threshold',
    'distributorId': 'distributor_id',
    'purchasePrice': 'purchase_price',
    'sellingPrice': 'selling_price',
    'rackNumber': 'rack_number',
}


def serialize_item(i: InventoryItem) -> dict:
    return {
        'id': i.id,
        'pharmacyId': i.pharmacy_id,
        'medicineName': i.medicine_name,
        'brandName': i.brand_name or None,
        'composition': i.composition or None,
        'batchNumber': i.batch_number,
        'expiryDate': i.expiry_date.isoformat() if i.expiry_date else None,
        'quantity': i.quantity,
        'threshold': i.threshold,
        'isLowStock': i.is_low_stock,
        'distributorId': i.distributor_id,
        'purchasePrice': float(i.purchase_price),
        'sellingPrice': float(i.selling_price),
        'rackNumber': i.rack_number or None,
        'createdAt': i.created_at.isoformat() if i.created_at else None,
        'updatedAt': i.updated_at.isoformat() if i.updated_at else None,
    }


def _check_refs(request, vd):
    if 'pharmacyId' in vd:
        if not Pharmacy.objects.filter(pk=vd['pharmacyId']).exists():
            return fail('Pharmacy not found', status.HTTP_404_NOT_FOUND)
        if not can_access_pharmacy(request.user, vd['pharmacyId']):
            return fail('Not allowed for this pharmacy', status.HTTP_403_FORBIDDEN)
    if vd.get('distributorId') and not Distributor.objects.filter(pk=vd['distributorId']).exists():
        return fail('Distributor not found', status.HTTP_404_NOT_FOUND)
    return None


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsPharmacyOrReadOnly])
def inventory_collection(request):
    if request.method == 'POST':
        s = InventoryItemSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = s.validated_data
        refused = _check_refs(request, vd)
        if refused:
            return refused
        item = InventoryItem.objects.create(**{FIELD_MAP[k]: v for k, v in vd.items()})
        create_activity('INVENTORY_ADDED', 'Inventory added',
                        f"{item.medicine_name} ({item.quantity}) added to pharmacy #{item.pharmacy_id}",
                        user_id=request.user.id, pharmacy_id=item.pharmacy_id,
                        metadata={'inventoryItemId': item.id})
        return created(serialize_item(item))

    qs = InventoryItem.objects.all()
    pinned = scoped_pharmacy_id(request.user)
    qp = request.query_params
    if pinned:
        qs = qs.filter(pharmacy_id=pinned)
    elif qp.get('pharmacyId'):
        qs = qs.filter(pharmacy_id=qp['pharmacyId'])
    if qp.get('medicineName'):
        qs = qs.filter(medicine_name__icontains=qp['medicineName'])
    if flag(qp.get('lowStock')):
        qs = qs.filter(quantity__lte=F('threshold'))
    rows, pagination = paginate(qs.order_by('medicine_name', 'expiry_date'), request, default_size=100, max_size=500)
    return ok([serialize_item(i) for i in rows], pagination=pagination)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsPharmacyOrReadOnly])
def inventory_detail(request, pk):
    item = InventoryItem.objects.filter(pk=pk).first()
    if not item:
        return fail('Inventory item not found', status.HTTP_404_NOT_FOUND)
    if request.method == 'GET':
        return ok(serialize_item(item))
    if not can_access_pharmacy(request.user, item.pharmacy_id):
        return fail('Not allowed for this pharmacy', status.HTTP_403_FORBIDDEN)
    if request.method == 'DELETE':
        item.delete()
        return ok({'id': pk})

    s = InventoryUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    refused = _check_refs(request, vd)
    if refused:
        return refused
    previous_qty = item.quantity
    for key, value in vd.items():
        setattr(item, FIELD_MAP[key], value)
    item.save()
    if item.quantity < previous_qty:
        check_low_stock(item)
    return ok(serialize_item(item))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsPharmacyRole])
def inventory_consume(request, pk):
    s = ConsumeSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    item = InventoryItem.objects.filter(pk=pk).only('pharmacy_id').first()
    if not item:
        return fail('Inventory item not found', status.HTTP_404_NOT_FOUND)
    if not can_access_pharmacy(request.user, item.pharmacy_id):
        return fail('Not allowed for this pharmacy', status.HTTP_403_FORBIDDEN)
    item, restock = decrement_stock(pk, s.validated_data['quantity'])
    return ok(serialize_item(item), restockOrder=serialize_distributor_order(restock) if restock else None)


def _search_query(request, *required):
    q = InventorySearchQuerySerializer(data={k: v for k, v in request.query_params.items() if v})
    q.is_valid(raise_exception=True)
    vd = dict(q.validated_data)
    pinned = scoped_pharmacy_id(request.user)
    if pinned:
        vd['pharmacyId'] = pinned
    missing = [name for name in ('pharmacyId',) + required if not vd.get(name)]
    if missing:
        raise ApiError(f"{' and '.join(missing)} {'is' if len(missing) == 1 else 'are'} required")
    return vd


def serialize_brand(item: InventoryItem, today) -> dict:
    """One stocked batch as a brand choice; expired and expiring batches sort first."""
    days = (item.expiry_date - today).days
    expired = days < 0
    soon = 0 <= days <= settings.EXPIRY_SOON_DAYS
    return {
        'inventoryItemId': item.id,
        'brandName': item.brand_name or 'Generic',
        'batchNumber': item.batch_number,
        'expiryDate': item.expiry_date.isoformat(),
        'daysUntilExpiry': days,
        'isExpiringSoon': soon,
        'isExpired': expired,
        'expiryWarning': 'EXPIRED' if expired else (f"Expiring in {days} days" if soon else None),
        'availableQuantity': item.quantity,
        'costPrice': float(item.purchase_price),
        'sellingPrice': float(item.selling_price),
        'margin': float(item.selling_price - item.purchase_price),
        'rackNumber': item.rack_number or None,
        'priority': 0 if expired else 1 if soon else 2,
    }


def _by_priority(brands: list[dict]) -> list[dict]:
    return sorted(brands, key=lambda b: (b['priority'], b['daysUntilExpiry']))


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPharmacyOrReadOnly])
def inventory_search(request):
    vd = _search_query(request)
    qs = InventoryItem.objects.filter(pharmacy_id=vd['pharmacyId'])
    if vd.get('query'):
        term = vd['query']
        qs = qs.filter(Q(medicine_name__icontains=term) | Q(composition__icontains=term) |
                       Q(brand_name__icontains=term))
    if vd.get('composition'):
        qs = qs.filter(composition__icontains=vd['composition'])
    if vd.get('brandName'):
        qs = qs.filter(brand_name__icontains=vd['brandName'])
    items = list(qs.order_by('expiry_date', 'brand_name')[:100])

    today = timezone.localdate()
    groups = {}
    for item in items:
        key = item.composition or item.medicine_name
        group = groups.setdefault(key, {'composition': item.composition or None,
                                        'medicineName': item.medicine_name, 'brands': []})
        group['brands'].append(serialize_brand(item, today))
    results = [dict(g, brands=_by_priority(g['brands'])) for g in groups.values()]
    return ok({
        'query': vd.get('query') or vd.get('composition') or vd.get('brandName'),
        'results': results,
        'totalBrands': len(items),
        'totalCompositions': len(results),
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPharmacyOrReadOnly])
def brands_by_composition(request):
    vd = _search_query(request, 'composition')
    today = timezone.localdate()
    items = (InventoryItem.objects
             .filter(pharmacy_id=vd['pharmacyId'], composition__icontains=vd['composition'], quantity__gt=0)
             .order_by('expiry_date')[:50])
    brands = _by_priority([serialize_brand(i, today) for i in items])
    return ok({'composition': vd['composition'], 'brands': brands, 'totalBrands': len(brands)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPharmacyOrReadOnly])
def expiry_risk(request):
    vd = _search_query(request)
    days = vd.get('days', settings.EXPIRY_SOON_DAYS)
    today = timezone.localdate()
    items = (InventoryItem.objects
             .filter(pharmacy_id=vd['pharmacyId'], quantity__gt=0,
                     expiry_date__gte=today, expiry_date__lte=today + timedelta(days=days))
             .order_by('expiry_date')[:100])
    rows = [
        {
            'inventoryItemId': i.id,
            'medicineName': i.medicine_name,
            'composition': i.composition or None,
            'brandName': i.brand_name or None,
            'batchNumber': i.batch_number,
            'expiryDate': i.expiry_date.isoformat(),
            'daysUntilExpiry': (i.expiry_date - today).days,
            'quantity': i.quantity,
            # value at risk is what the stock cost
            'value': float(i.quantity * i.purchase_price),
            'rackNumber': i.rack_number or None,
        }
        for i in items
    ]
    return ok({
        'pharmacyId': vd['pharmacyId'],
        'days': days,
        'riskItems': rows,
        'totalItems': len(rows),
        'totalValue': round(sum(r['value'] for r in rows), 2),
    })
