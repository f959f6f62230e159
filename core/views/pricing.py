"""
Pricing rules.

``finalPrice = max(0, basePrice - basePrice * pct / 100 - discountAmount)``
"""
from __future__ import annotations

from datetime import datetime, time
from decimal import Decimal, ROUND_HALF_UP

from django.db.models import Q
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from core.models import PricingRule
from core.permissions import IsAdminOrReadOnly
from core.serializers.billing import PricingRuleSerializer
from core.services.activity import create_activity
from core.views.common import created, fail, flag, ok

FIELD_MAP = {
    'name': 'name',
    'serviceType': 'service_type',
    'description': 'description',
    'basePrice': 'base_price',
    'discountPercent': 'discount_percent',
    'discountAmount': 'discount_amount',
    'hospitalId': 'hospital_id',
    'pharmacyId': 'pharmacy_id',
    'isActive': 'is_active',
    'validFrom': 'valid_from',
    'validTo': 'valid_to',
}


def final_price(rule: PricingRule) -> Decimal:
    base = rule.base_price or Decimal('0')
    price = base - base * (rule.discount_percent or 0) / 100 - (rule.discount_amount or 0)
    return max(Decimal('0'), price).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


def serialize_rule(r: PricingRule) -> dict:
    return {
        'id': r.id,
        'name': r.name,
        'serviceType': r.service_type,
        'description': r.description,
        'basePrice': float(r.base_price),
        'discountPercent': float(r.discount_percent),
        'discountAmount': float(r.discount_amount),
        'finalPrice': float(final_price(r)),
        'hospitalId': r.hospital_id,
        'pharmacyId': r.pharmacy_id,
        'isActive': r.is_active,
        'validFrom': r.valid_from.isoformat() if r.valid_from else None,
        'validTo': r.valid_to.isoformat() if r.valid_to else None,
        'createdAt': r.created_at.isoformat() if r.created_at else None,
    }


def _active_on(value: str):
    moment = parse_datetime(value)
    if moment is None:
        day = parse_date(value)
        if day is None:
            return None
        moment = timezone.make_aware(datetime.combine(day, time.min))
    elif timezone.is_naive(moment):
        moment = timezone.make_aware(moment)
    return moment


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminOrReadOnly])
def pricing_collection(request):
    if request.method == 'POST':
        s = PricingRuleSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        rule = PricingRule.objects.create(**{FIELD_MAP[k]: v for k, v in s.validated_data.items()})
        create_activity('PRICING_RULE_CREATED', 'Pricing rule created', f"{rule.name} ({rule.service_type})",
                        user_id=request.user.id, hospital_id=rule.hospital_id, pharmacy_id=rule.pharmacy_id,
                        metadata={'pricingRuleId': rule.id})
        return created(serialize_rule(rule))

    qs = PricingRule.objects.all()
    qp = request.query_params
    if qp.get('serviceType'):
        qs = qs.filter(service_type=qp['serviceType'].upper())
    if qp.get('hospitalId'):
        qs = qs.filter(hospital_id=qp['hospitalId'])
    active = flag(qp.get('isActive'))
    if active is not None:
        qs = qs.filter(is_active=active)
    if qp.get('activeOn'):
        moment = _active_on(qp['activeOn'])
        if moment is None:
            return fail('activeOn must be a date or datetime')
        qs = qs.filter(Q(valid_from__isnull=True) | Q(valid_from__lte=moment),
                       Q(valid_to__isnull=True) | Q(valid_to__gte=moment))
    return ok([serialize_rule(r) for r in qs.order_by('service_type', 'name')])


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminOrReadOnly])
def pricing_detail(request, pk):
    rule = PricingRule.objects.filter(pk=pk).first()
    if not rule:
        return fail('Pricing rule not found', status.HTTP_404_NOT_FOUND)
    if request.method == 'GET':
        return ok(serialize_rule(rule))
    if request.method == 'DELETE':
        rule.delete()
        return ok({'id': pk})
    s = PricingRuleSerializer(rule, data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    for key, value in s.validated_data.items():
        setattr(rule, FIELD_MAP[key], value)
    rule.save()
    return ok(serialize_rule(rule))
