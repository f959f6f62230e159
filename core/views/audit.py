"""
Request audit trail and daily stock audits.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from core.models import AuditEvent, Pharmacy, StockAudit
from core.permissions import IsPharmacyRole, IsSuperAdmin, can_access_pharmacy, scoped_pharmacy_id
from core.serializers.pharmacy import (
    AuditReviewSerializer, DailyAuditSerializer, StockAuditQuerySerializer, StockLinesSerializer,
)
from core.services import stock_audit as svc
from core.views.common import created, fail, ok, paginate


def serialize_event(e: AuditEvent) -> dict:
    return {
        'id': e.id,
        'userId': e.user_id,
        'action': e.action,
        'method': e.method,
        'path': e.path,
        'objectType': e.object_type,
        'objectId': e.object_id,
        'statusCode': e.status_code,
        'detail': e.detail,
        'createdAt': e.created_at.isoformat() if e.created_at else None,
    }


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsSuperAdmin])
def audit_logs(request):
    qs = AuditEvent.objects.all().order_by('-created_at', '-id')
    qp = request.query_params
    if qp.get('userId'):
        qs = qs.filter(user_id=qp['userId'])
    if qp.get('action'):
        qs = qs.filter(action=qp['action'])
    if qp.get('method'):
        qs = qs.filter(method=qp['method'].upper())
    rows, pagination = paginate(qs, request, default_size=50, max_size=500)
    return ok([serialize_event(e) for e in rows], pagination=pagination)


def _load(request, pk):
    audit = StockAudit.objects.prefetch_related('items').filter(pk=pk).first()
    if audit and not can_access_pharmacy(request.user, audit.pharmacy_id):
        return None
    return audit


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPharmacyRole])
def stock_audit_list(request):
    q = StockAuditQuerySerializer(data={k: v for k, v in request.query_params.items() if v})
    q.is_valid(raise_exception=True)
    qp = q.validated_data
    qs = StockAudit.objects.prefetch_related('items').order_by('-audit_date')
    pinned = scoped_pharmacy_id(request.user)
    if pinned:
        qs = qs.filter(pharmacy_id=pinned)
    elif qp.get('pharmacyId'):
        qs = qs.filter(pharmacy_id=qp['pharmacyId'])
    if request.query_params.get('status'):
        qs = qs.filter(status=request.query_params['status'].upper())
    if qp.get('startDate'):
        qs = qs.filter(audit_date__gte=qp['startDate'])
    if qp.get('endDate'):
        qs = qs.filter(audit_date__lte=qp['endDate'])
    rows, pagination = paginate(qs, request, default_size=30, max_size=365)
    return ok([svc.serialize_audit(a, with_items=False) for a in rows], pagination=pagination)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsPharmacyRole])
def stock_audit_daily(request):
    s = DailyAuditSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    if not Pharmacy.objects.filter(pk=vd['pharmacyId']).exists():
        return fail('Pharmacy not found', status.HTTP_404_NOT_FOUND)
    if not can_access_pharmacy(request.user, vd['pharmacyId']):
        return fail('Not allowed for this pharmacy', status.HTTP_403_FORBIDDEN)
    audit = svc.create_daily_audit(vd['pharmacyId'], vd.get('auditDate'), user=request.user)
    return created(svc.serialize_audit(_load(request, audit.pk)))


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPharmacyRole])
def stock_audit_detail(request, pk):
    audit = _load(request, pk)
    if not audit:
        return fail('Audit not found', status.HTTP_404_NOT_FOUND)
    return ok(svc.serialize_audit(audit))


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, IsPharmacyRole])
def stock_audit_manual_bills(request, pk):
    audit = _load(request, pk)
    if not audit:
        return fail('Audit not found', status.HTTP_404_NOT_FOUND)
    s = StockLinesSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    svc.apply_manual_bills(audit, s.validated_data['items'])
    return ok(svc.serialize_audit(_load(request, pk)))


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, IsPharmacyRole])
def stock_audit_closing_stock(request, pk):
    audit = _load(request, pk)
    if not audit:
        return fail('Audit not found', status.HTTP_404_NOT_FOUND)
    s = StockLinesSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    svc.apply_closing_stock(audit, s.validated_data['items'], user=request.user)
    return ok(svc.serialize_audit(_load(request, pk)))


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, IsPharmacyRole])
def stock_audit_review(request, pk):
    audit = _load(request, pk)
    if not audit:
        return fail('Audit not found', status.HTTP_404_NOT_FOUND)
    s = AuditReviewSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    svc.review_audit(audit, user=request.user, notes=s.validated_data.get('reviewedNotes') or '')
    return ok(svc.serialize_audit(_load(request, pk)))
