"""
Notification endpoints.
"""
from __future__ import annotations

from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from core.models import Notification, User
from core.permissions import IsAdminRole, IsClinicalRole
from core.serializers.billing import NotificationCreateSerializer, SendReportBillSerializer, SendToPatientSerializer
from core.services.notifications import create_notification, serialize_notification
from core.views.common import created, fail, ok, paginate

REPORT_BILL_TITLES = {
    'MEDICAL_BILL': 'Medical bill',
    'REPORT': 'Report sent',
    'DOCUMENT': 'Document sent',
}


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def notification_collection(request):
    if request.method == 'POST':
        s = NotificationCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = s.validated_data
        user = User.objects.filter(pk=vd['userId']).first()
        if not user:
            return fail('User not found', status.HTTP_404_NOT_FOUND)
        n = create_notification(user, vd['title'], vd['message'], channel=vd['channel'],
                                metadata=vd.get('metadata'))
        return created(serialize_notification(n))

    qs = Notification.objects.all().order_by('-created_at', '-id')
    qp = request.query_params
    if qp.get('userId'):
        qs = qs.filter(user_id=qp['userId'])
    if qp.get('channel'):
        qs = qs.filter(channel=qp['channel'].upper())
    if qp.get('status'):
        qs = qs.filter(status=qp['status'].upper())
    rows, pagination = paginate(qs, request)
    return ok([serialize_notification(n) for n in rows], pagination=pagination)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_notifications(request):
    qs = Notification.objects.filter(user=request.user).order_by('-created_at', '-id')
    if request.query_params.get('status'):
        qs = qs.filter(status=request.query_params['status'].upper())
    rows, pagination = paginate(qs, request)
    return ok([serialize_notification(n) for n in rows], pagination=pagination)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated])
def mark_read(request, pk):
    n = Notification.objects.filter(pk=pk).first()
    if not n:
        return fail('Notification not found', status.HTTP_404_NOT_FOUND)
    if n.user_id != request.user.id:
        return fail('Not your notification', status.HTTP_403_FORBIDDEN)
    if n.status != 'READ':
        n.status = 'READ'
        n.read_at = timezone.now()
        n.save(update_fields=['status', 'read_at'])
    return ok(serialize_notification(n))


def _patient(patient_id):
    return User.objects.filter(pk=patient_id, role=User.PATIENT).first()


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicalRole])
def send_to_patient(request):
    s = SendToPatientSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    patient = _patient(vd['patientId'])
    if not patient:
        return fail('Patient not found', status.HTTP_404_NOT_FOUND)
    metadata = {**(vd.get('metadata') or {}), 'senderId': request.user.id}
    n = create_notification(patient, vd['title'], vd['message'], channel=vd['channel'], metadata=metadata)
    return created(serialize_notification(n))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicalRole])
def send_report_bill(request):
    s = SendReportBillSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    patient = _patient(vd['patientId'])
    if not patient:
        return fail('Patient not found', status.HTTP_404_NOT_FOUND)
    title = REPORT_BILL_TITLES[vd['kind']]
    message = vd.get('message') or f"{title} from {request.user.display_name}"
    metadata = {**(vd.get('metadata') or {}), 'kind': vd['kind'], 'senderId': request.user.id}
    if vd.get('documentUrl'):
        metadata['documentUrl'] = vd['documentUrl']
    n = create_notification(patient, title, message, channel=vd['channel'], metadata=metadata)
    return created(serialize_notification(n))
