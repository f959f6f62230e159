"""
Ledger aggregation.

Amounts are signed: positive rows count as revenue, negative rows as
expenses (reported as absolute values).  Sums are done in the database.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from django.db.models import Count, Q, QuerySet, Sum, Value, DecimalField
from django.db.models.functions import Abs, Coalesce, TruncDay, TruncMonth, TruncYear

from core.exceptions import ApiError
from core.models import FinanceEntry

ZERO = Value(Decimal('0'), output_field=DecimalField(max_digits=14, decimal_places=2))

PERIODS = {
    'DAILY': (TruncDay, '%Y-%m-%d'),
    'MONTHLY': (TruncMonth, '%Y-%m'),
    'YEARLY': (TruncYear, '%Y'),
}

UNIT_FIELDS = {'DOCTOR': 'doctor_id', 'PHARMACY': 'pharmacy_id', 'DISTRIBUTOR': 'distributor_id'}


def money(value) -> float:
    return float(value or 0)


def serialize_entry(e: FinanceEntry) -> dict:
    return {
        'id': e.id,
        'type': e.type,
        'amount': money(e.amount),
        'description': e.description,
        'occurredAt': e.occurred_at.isoformat() if e.occurred_at else None,
        'hospitalId': e.hospital_id,
        'pharmacyId': e.pharmacy_id,
        'distributorId': e.distributor_id,
        'doctorId': e.doctor_id,
        'patientId': e.patient_id,
        'metadata': e.metadata,
    }


def filter_entries(*, date_from=None, date_to=None, hospital_id=None, pharmacy_id=None, type_: Optional[str] = None,
                   **extra) -> QuerySet:
    qs = FinanceEntry.objects.all()
    if date_from:
        qs = qs.filter(occurred_at__gte=date_from)
    if date_to:
        qs = qs.filter(occurred_at__lte=date_to)
    if hospital_id:
        qs = qs.filter(hospital_id=hospital_id)
    if pharmacy_id:
        qs = qs.filter(pharmacy_id=pharmacy_id)
    if type_:
        qs = qs.filter(type=type_)
    if extra:
        qs = qs.filter(**extra)
    return qs


def totals(qs: QuerySet) -> dict:
    agg = qs.aggregate(
        total=Coalesce(Sum('amount'), ZERO),
        revenue=Coalesce(Sum('amount', filter=Q(amount__gt=0)), ZERO),
        expenses=Coalesce(Sum(Abs('amount'), filter=Q(amount__lt=0)), ZERO),
        count=Count('id'),
    )
    revenue, expenses = money(agg['revenue']), money(agg['expenses'])
    return {
        'total': money(agg['total']),
        'revenue': revenue,
        'expenses': expenses,
        'netProfit': revenue - expenses,
        'count': agg['count'],
    }


def unit_filter(unit_type: str, unit_id) -> dict:
    field = UNIT_FIELDS.get(unit_type)
    if field is None:
        raise ApiError(f"unit type must be one of {', '.join(UNIT_FIELDS)}")
    return {field: unit_id} if unit_id else {f'{field}__isnull': False}


def time_buckets(qs: QuerySet, period: str) -> list[dict]:
    if period not in PERIODS:
        raise ApiError(f"period must be one of {', '.join(PERIODS)}")
    trunc, fmt = PERIODS[period]
    rows = (
        qs.annotate(bucket=trunc('occurred_at'))
        .values('bucket')
        .annotate(
            revenue=Coalesce(Sum('amount', filter=Q(amount__gt=0)), ZERO),
            expenses=Coalesce(Sum(Abs('amount'), filter=Q(amount__lt=0)), ZERO),
            count=Count('id'),
        )
        .order_by('-bucket')
    )
    out = []
    for r in rows:
        revenue, expenses = money(r['revenue']), money(r['expenses'])
        out.append({
            'period': r['bucket'].strftime(fmt) if r['bucket'] else None,
            'revenue': revenue,
            'expenses': expenses,
            'netProfit': revenue - expenses,
            'count': r['count'],
        })
    return out
