"""
Pharmacy stock reports: expiry tracking, audit mismatches, brand margins,
batch aging and the cross-branch stock overview.
"""
from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db.models import Count, DecimalField, ExpressionWrapper, F, Q, Sum, Value
from django.db.models.functions import Coalesce
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from core.exceptions import ApiError
from core.models import InventoryItem, Pharmacy, PharmacyInvoiceItem, StockAudit
from core.permissions import IsPharmacyRole, IsSuperAdmin, scoped_pharmacy_id
from core.serializers.pharmacy import PharmacyReportQuerySerializer
from core.services.stock_audit import serialize_audit
from core.views.common import ok


def _pharmacy_filter(request) -> dict:
    pinned = scoped_pharmacy_id(request.user)
    if pinned:
        return {'pharmacy_id': pinned}
    if request.query_params.get('pharmacyId'):
        return {'pharmacy_id': request.query_params['pharmacyId']}
    return {}


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPharmacyRole])
def expiry_tracking(request):
    today = timezone.localdate()
    soon = settings.EXPIRY_SOON_DAYS
    rows = []
    expired = expiring = 0
    for item in InventoryItem.objects.filter(**_pharmacy_filter(request)).order_by('expiry_date', 'medicine_name'):
        days = (item.expiry_date - today).days
        is_expired = days < 0
        is_soon = 0 <= days <= soon
        expired += is_expired
        expiring += is_soon
        rows.append({
            'id': item.id,
            'pharmacyId': item.pharmacy_id,
            'medicineName': item.medicine_name,
            'batchNumber': item.batch_number,
            'expiryDate': item.expiry_date.isoformat(),
            'quantity': item.quantity,
            'daysUntilExpiry': days,
            'isExpired': is_expired,
            'isExpiringSoon': is_soon,
        })
    return ok({
        'items': rows,
        'summary': {'total': len(rows), 'expired': expired, 'expiringSoon': expiring,
                    'valid': len(rows) - expired - expiring},
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPharmacyRole])
def audit_mismatches(request):
    qs = (StockAudit.objects.filter(status__in=('COMPLETED', 'REVIEWED'), items_with_variance__gt=0,
                                    **_pharmacy_filter(request))
          .prefetch_related('items').order_by('-audit_date'))
    data = []
    for audit in qs[:100]:
        payload = serialize_audit(audit)
        payload['items'] = [i for i in payload['items'] if i['variance']]
        data.append(payload)
    return ok(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsSuperAdmin])
def branch_stock(request):
    money = DecimalField(max_digits=16, decimal_places=2)
    zero = Value(Decimal('0'), output_field=money)
    rows = Pharmacy.objects.annotate(
        item_count=Count('inventory', distinct=True),
        units=Coalesce(Sum('inventory__quantity'), 0),
        low_stock=Count('inventory', filter=Q(inventory__quantity__lte=F('inventory__threshold')), distinct=True),
        stock_value=Coalesce(Sum(ExpressionWrapper(F('inventory__quantity') * F('inventory__selling_price'),
                                                   output_field=money)), zero),
    ).order_by('name')
    return ok([
        {
            'pharmacyId': p.id,
            'pharmacyName': p.name,
            'totalItems': p.item_count,
            'totalUnits': p.units,
            'lowStockItems': p.low_stock,
            'stockValue': float(p.stock_value),
        }
        for p in rows
    ])


def _report_query(request):
    """Validated report filters with ``pharmacyId`` forced to the caller's pin."""
    q = PharmacyReportQuerySerializer(data={k: v for k, v in request.query_params.items() if v})
    q.is_valid(raise_exception=True)
    vd = dict(q.validated_data)
    pinned = scoped_pharmacy_id(request.user)
    if pinned:
        vd['pharmacyId'] = pinned
    if not vd.get('pharmacyId'):
        raise ApiError('pharmacyId is required')
    return vd


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPharmacyRole])
def brand_margin(request):
    vd = _report_query(request)
    money = DecimalField(max_digits=16, decimal_places=2)
    lines = PharmacyInvoiceItem.objects.filter(invoice__pharmacy_id=vd['pharmacyId'])
    if vd.get('startDate'):
        lines = lines.filter(invoice__bill_date__date__gte=vd['startDate'])
    if vd.get('endDate'):
        lines = lines.filter(invoice__bill_date__date__lte=vd['endDate'])
    if vd.get('composition'):
        lines = lines.filter(composition__icontains=vd['composition'])
    grouped = lines.order_by().values('composition', 'brand_name').annotate(
        quantity=Sum('quantity'),
        revenue=Sum('total'),
        cost=Sum(ExpressionWrapper(F('purchase_price') * F('quantity'), output_field=money)),
        invoices=Count('invoice', distinct=True),
    )
    brands = []
    for row in grouped:
        margin = row['revenue'] - row['cost']
        brands.append({
            'composition': row['composition'] or None,
            'brandName': row['brand_name'] or 'Generic',
            'totalQuantity': row['quantity'],
            'totalRevenue': float(row['revenue']),
            'totalCost': float(row['cost']),
            'marginAmount': float(margin),
            'marginPercentage': round(float(margin / row['cost'] * 100), 2) if row['cost'] else 0.0,
            'invoiceCount': row['invoices'],
        })
    brands.sort(key=lambda b: b['marginPercentage'], reverse=True)
    revenue = sum(b['totalRevenue'] for b in brands)
    cost = sum(b['totalCost'] for b in brands)
    return ok({
        'pharmacyId': vd['pharmacyId'],
        'startDate': vd['startDate'].isoformat() if vd.get('startDate') else None,
        'endDate': vd['endDate'].isoformat() if vd.get('endDate') else None,
        'composition': vd.get('composition'),
        'brands': brands,
        'summary': {
            'totalBrands': len(brands),
            'totalRevenue': round(revenue, 2),
            'totalCost': round(cost, 2),
            'totalMargin': round(revenue - cost, 2),
            'overallMarginPercentage': round((revenue - cost) / cost * 100, 2) if cost else 0.0,
        },
    })


def aging_category(days_in_stock: int) -> str:
    if days_in_stock > 180:
        return 'OLD'
    if days_in_stock > 90:
        return 'MODERATE'
    if days_in_stock > 30:
        return 'RECENT'
    return 'FRESH'


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPharmacyRole])
def batch_aging(request):
    vd = _report_query(request)
    today = timezone.localdate()
    batches = []
    by_category = {}
    for item in InventoryItem.objects.filter(pharmacy_id=vd['pharmacyId'], quantity__gt=0).order_by('created_at'):
        received = timezone.localtime(item.created_at).date()
        days = (today - received).days
        row = {
            'inventoryItemId': item.id,
            'medicineName': item.medicine_name,
            'composition': item.composition or None,
            'brandName': item.brand_name or None,
            'batchNumber': item.batch_number,
            'expiryDate': item.expiry_date.isoformat(),
            'receivedDate': received.isoformat(),
            'daysInStock': days,
            'daysUntilExpiry': (item.expiry_date - today).days,
            'agingCategory': aging_category(days),
            'quantity': item.quantity,
            'stockValue': float(item.quantity * item.purchase_price),
            'rackNumber': item.rack_number or None,
        }
        batches.append(row)
        by_category.setdefault(row['agingCategory'], []).append(row)
    return ok({
        'pharmacyId': vd['pharmacyId'],
        'reportDate': today.isoformat(),
        'batches': batches,
        'byCategory': by_category,
        'summary': {
            'totalBatches': len(batches),
            'totalStockValue': round(sum(b['stockValue'] for b in batches), 2),
            'byCategory': [
                {'category': name, 'count': len(rows), 'totalValue': round(sum(r['stockValue'] for r in rows), 2)}
                for name, rows in by_category.items()
            ],
        },
    })
