"""
Daily stock audit.

Opening stock is reconstructed as current quantity plus the day's
system (invoice) sales, so the expected closing stock starts as the
current quantity.  Manual bills move the expected closing stock down;
the counted closing stock yields ``variance = actual - expected``.
"""
from __future__ import annotations

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Iterable

from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from core.exceptions import ApiError
from core.models import InventoryItem, PharmacyInvoiceItem, StockAudit, StockAuditItem
from core.services.activity import create_activity


def serialize_audit(a: StockAudit, *, with_items: bool = True) -> dict:
    data = {
        'id': a.id,
        'pharmacyId': a.pharmacy_id,
        'auditDate': a.audit_date.isoformat(),
        'status': a.status,
        'totalItems': a.total_items,
        'itemsWithVariance': a.items_with_variance,
        'totalVarianceValue': float(a.total_variance_value or 0),
        'createdBy': a.created_by_id,
        'reviewedBy': a.reviewed_by_id,
        'reviewedAt': a.reviewed_at.isoformat() if a.reviewed_at else None,
        'reviewedNotes': a.reviewed_notes,
        'createdAt': a.created_at.isoformat() if a.created_at else None,
    }
    if with_items:
        data['items'] = [serialize_audit_item(i) for i in a.items.all()]
    return data


def serialize_audit_item(i: StockAuditItem) -> dict:
    return {
        'id': i.id,
        'inventoryItemId': i.inventory_item_id,
        'medicineName': i.medicine_name,
        'batchNumber': i.batch_number,
        'openingStock': i.opening_stock,
        'systemSales': i.system_sales,
        'manualBills': i.manual_bills,
        'totalSales': i.total_sales,
        'expectedClosingStock': i.expected_closing_stock,
        'actualClosingStock': i.actual_closing_stock,
        'variance': i.variance,
        'varianceReason': i.variance_reason,
    }


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = timezone.make_aware(datetime.combine(day, time.min))
    return start, start + timedelta(days=1)


@transaction.atomic
def create_daily_audit(pharmacy_id, day: date | None = None, *, user=None) -> StockAudit:
    day = day or timezone.localdate()
    if StockAudit.objects.filter(pharmacy_id=pharmacy_id, audit_date=day).exists():
        raise ApiError('Daily audit already exists for this date')

    start, end = _day_bounds(day)
    sales = dict(
        PharmacyInvoiceItem.objects.filter(
            invoice__pharmacy_id=pharmacy_id, invoice__bill_date__gte=start, invoice__bill_date__lt=end
        ).values('inventory_item_id').annotate(qty=Sum('quantity')).values_list('inventory_item_id', 'qty')
    )
    audit = StockAudit.objects.create(pharmacy_id=pharmacy_id, audit_date=day, created_by=user)
    rows = []
    for item in InventoryItem.objects.filter(pharmacy_id=pharmacy_id).order_by('medicine_name', 'id'):
        sold = int(sales.get(item.id) or 0)
        rows.append(StockAuditItem(
            audit=audit,
            inventory_item=item,
            medicine_name=item.medicine_name,
            batch_number=item.batch_number,
            unit_price=item.selling_price,
            opening_stock=item.quantity + sold,
            system_sales=sold,
            total_sales=sold,
            expected_closing_stock=item.quantity,
        ))
    StockAuditItem.objects.bulk_create(rows)
    audit.total_items = len(rows)
    audit.save(update_fields=['total_items', 'updated_at'])

    create_activity(
        'AUDIT_CREATED',
        'Daily audit created',
        f"Daily audit created for pharmacy #{pharmacy_id} on {day.isoformat()}",
        user_id=getattr(user, 'id', None),
        pharmacy_id=pharmacy_id,
        metadata={'auditId': audit.id, 'auditDate': day.isoformat()},
    )
    return audit


def _updates_by_item(updates: Iterable[dict]) -> dict:
    out = {}
    for u in updates:
        key = u.get('inventoryItemId')
        if key is None:
            raise ApiError('Each item needs an inventoryItemId')
        out[int(key)] = u
    return out


@transaction.atomic
def apply_manual_bills(audit: StockAudit, updates: Iterable[dict]) -> StockAudit:
    if audit.status == 'REVIEWED':
        raise ApiError('Audit has already been reviewed')
    by_item = _updates_by_item(updates)
    for item in audit.items.select_for_update():
        u = by_item.get(item.inventory_item_id)
        if u is None:
            continue
        item.manual_bills = int(u.get('manualBills') or 0)
        item.total_sales = item.system_sales + item.manual_bills
        item.expected_closing_stock = item.opening_stock - item.total_sales
        if item.actual_closing_stock is not None:
            item.variance = item.actual_closing_stock - item.expected_closing_stock
        item.save()
    _recalculate(audit)
    audit.save()
    return audit


@transaction.atomic
def apply_closing_stock(audit: StockAudit, updates: Iterable[dict], *, user=None) -> StockAudit:
    if audit.status == 'REVIEWED':
        raise ApiError('Audit has already been reviewed')
    by_item = _updates_by_item(updates)
    for item in audit.items.select_for_update():
        u = by_item.get(item.inventory_item_id)
        if u is None or u.get('actualClosingStock') is None:
            continue
        item.actual_closing_stock = int(u['actualClosingStock'])
        item.variance = item.actual_closing_stock - item.expected_closing_stock
        if u.get('varianceReason'):
            item.variance_reason = str(u['varianceReason'])[:255]
        item.save()
    _recalculate(audit)
    audit.status = 'COMPLETED'
    audit.save()

    if audit.items_with_variance:
        create_activity(
            'AUDIT_MISMATCH',
            'Audit mismatch detected',
            f"Audit {audit.id} for pharmacy #{audit.pharmacy_id} has {audit.items_with_variance} items with variance",
            user_id=getattr(user, 'id', None),
            pharmacy_id=audit.pharmacy_id,
            metadata={
                'auditId': audit.id,
                'itemsWithVariance': audit.items_with_variance,
                'totalVarianceValue': float(audit.total_variance_value),
            },
        )
    return audit


def _recalculate(audit: StockAudit) -> None:
    with_variance = [i for i in StockAuditItem.objects.filter(audit=audit) if i.variance]
    audit.items_with_variance = len(with_variance)
    audit.total_variance_value = sum((abs(i.variance) * i.unit_price for i in with_variance), Decimal('0'))


@transaction.atomic
def review_audit(audit: StockAudit, *, user, notes: str = '') -> StockAudit:
    if audit.status != 'COMPLETED':
        raise ApiError('Only completed audits can be reviewed')
    audit.status = 'REVIEWED'
    audit.reviewed_by = user
    audit.reviewed_at = timezone.now()
    audit.reviewed_notes = notes or ''
    audit.save()
    return audit
