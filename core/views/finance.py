"""
Ledger entries and financial reports.
"""
from __future__ import annotations

from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from core.models import FinanceEntry, User
from core.permissions import IsAdminRole
from core.serializers.billing import FinanceEntrySerializer, FinanceQuerySerializer
from core.services import finance as svc
from core.services.activity import create_activity
from core.views.common import created, ok, paginate

ENTRY_FIELDS = {
    'type': 'type',
    'amount': 'amount',
    'description': 'description',
    'occurredAt': 'occurred_at',
    'hospitalId': 'hospital_id',
    'pharmacyId': 'pharmacy_id',
    'distributorId': 'distributor_id',
    'doctorId': 'doctor_id',
    'patientId': 'patient_id',
    'metadata': 'metadata',
}


def _query(request) -> dict:
    q = FinanceQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    hospital_id = vd.get('hospitalId')
    # hospital admins only ever see their own hospital's ledger
    if request.user.role == User.HOSPITAL_ADMIN and request.user.hospital_id:
        hospital_id = request.user.hospital_id
    return {
        'date_from': vd.get('from'),
        'date_to': vd.get('to'),
        'hospital_id': hospital_id,
        'pharmacy_id': vd.get('pharmacyId'),
        'type_': vd.get('type'),
        'id': vd.get('id'),
        'period': vd.get('period') or 'MONTHLY',
    }


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def finance_collection(request):
    if request.method == 'POST':
        s = FinanceEntrySerializer(data=request.data)
        s.is_valid(raise_exception=True)
        values = {ENTRY_FIELDS[k]: v for k, v in s.validated_data.items()}
        values.setdefault('occurred_at', timezone.now())
        entry = FinanceEntry.objects.create(**values)
        create_activity('FINANCE_ENTRY_CREATED', 'Finance entry recorded',
                        f"{entry.type} of {entry.amount} recorded",
                        user_id=request.user.id, hospital_id=entry.hospital_id, pharmacy_id=entry.pharmacy_id,
                        distributor_id=entry.distributor_id, metadata={'financeEntryId': entry.id})
        return created(svc.serialize_entry(entry))

    q = _query(request)
    qs = svc.filter_entries(date_from=q['date_from'], date_to=q['date_to'], hospital_id=q['hospital_id'],
                            pharmacy_id=q['pharmacy_id'], type_=q['type_'])
    rows, pagination = paginate(qs.order_by('-occurred_at'), request)
    return ok([svc.serialize_entry(e) for e in rows], pagination=pagination)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def finance_summary(request):
    q = _query(request)
    qs = svc.filter_entries(date_from=q['date_from'], date_to=q['date_to'], hospital_id=q['hospital_id'],
                            pharmacy_id=q['pharmacy_id'])
    t = svc.totals(qs)
    return ok({'total': t['total'], 'count': t['count']})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def finance_reports(request):
    q = _query(request)
    qs = svc.filter_entries(date_from=q['date_from'], date_to=q['date_to'], hospital_id=q['hospital_id'],
                            pharmacy_id=q['pharmacy_id'], type_=q['type_'])
    return ok(svc.totals(qs))


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def finance_hospital_report(request, hospital_id):
    q = _query(request)
    if request.user.role == User.HOSPITAL_ADMIN and request.user.hospital_id:
        hospital_id = request.user.hospital_id
    qs = svc.filter_entries(date_from=q['date_from'], date_to=q['date_to'], hospital_id=hospital_id,
                            type_=q['type_'])
    return ok({'hospitalId': int(hospital_id), **svc.totals(qs)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def finance_unit_report(request, unit_type):
    q = _query(request)
    unit_type = unit_type.upper()
    extra = svc.unit_filter(unit_type, q['id'])
    qs = svc.filter_entries(date_from=q['date_from'], date_to=q['date_to'], hospital_id=q['hospital_id'],
                            type_=q['type_'], **extra)
    return ok({'unitType': unit_type, 'unitId': q['id'], **svc.totals(qs)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def finance_time_report(request):
    q = _query(request)
    qs = svc.filter_entries(date_from=q['date_from'], date_to=q['date_to'], hospital_id=q['hospital_id'],
                            pharmacy_id=q['pharmacy_id'], type_=q['type_'])
    return ok({'period': q['period'], 'buckets': svc.time_buckets(qs, q['period']), 'totals': svc.totals(qs)})
