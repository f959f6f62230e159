"""
Appointment endpoints.
"""
from __future__ import annotations

import bleach
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from core.models import Appointment, User
from core.permissions import ADMIN_ROLES
from core.serializers.clinical import (
    AppointmentCreateSerializer, AppointmentStatusSerializer, CancelSerializer, RescheduleSerializer,
)
from core.services import appointments as svc
from core.views.common import created, fail, ok


def _get_visible(request, pk):
    return svc.scope_for(request.user, Appointment.objects.all()).filter(pk=pk).first()


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def appointment_collection(request):
    if request.method == 'POST':
        s = AppointmentCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = s.validated_data
        role = request.user.role
        if role == User.PATIENT and vd['patientId'] != request.user.id:
            return fail('Patients can only book for themselves', status.HTTP_403_FORBIDDEN)
        if role == User.DOCTOR and vd['doctorId'] != request.user.id:
            return fail('Doctors can only book into their own schedule', status.HTTP_403_FORBIDDEN)
        if role not in ADMIN_ROLES | {User.PATIENT, User.DOCTOR}:
            return fail('Not allowed to book appointments', status.HTTP_403_FORBIDDEN)
        appointment = svc.create_appointment(
            hospital_id=vd['hospitalId'], doctor_id=vd['doctorId'], patient_id=vd['patientId'],
            scheduled_at=vd['scheduledAt'], reason=bleach.clean(vd.get('reason') or '', strip=True),
            channel=vd['channel'], actor=request.user,
        )
        return created(svc.serialize_appointment(appointment))

    qs = svc.scope_for(request.user, Appointment.objects.all())
    qp = request.query_params
    for key, field in (('doctorId', 'doctor_id'), ('patientId', 'patient_id'), ('hospitalId', 'hospital_id')):
        if qp.get(key):
            qs = qs.filter(**{field: qp[key]})
    if qp.get('status'):
        qs = qs.filter(status=qp['status'].upper())
    rows = qs.order_by('scheduled_at')[:100]
    return ok([svc.serialize_appointment(a) for a in rows])


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def appointment_detail(request, pk):
    appointment = _get_visible(request, pk)
    if not appointment:
        return fail('Appointment not found', status.HTTP_404_NOT_FOUND)
    return ok(svc.serialize_appointment(appointment))


@api_view(['PATCH'])
@permission_classes([IsAuthenticated])
def appointment_status(request, pk):
    appointment = _get_visible(request, pk)
    if not appointment:
        return fail('Appointment not found', status.HTTP_404_NOT_FOUND)
    if request.user.role == User.PATIENT:
        return fail('Patients may only reschedule or cancel', status.HTTP_403_FORBIDDEN)
    s = AppointmentStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appointment = svc.set_status(appointment, s.validated_data['status'], actor=request.user)
    return ok(svc.serialize_appointment(appointment))


@api_view(['PATCH'])
@permission_classes([IsAuthenticated])
def appointment_reschedule(request, pk):
    appointment = _get_visible(request, pk)
    if not appointment:
        return fail('Appointment not found', status.HTTP_404_NOT_FOUND)
    s = RescheduleSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appointment = svc.reschedule(appointment, s.validated_data['scheduledAt'], actor=request.user)
    return ok(svc.serialize_appointment(appointment))


@api_view(['PATCH'])
@permission_classes([IsAuthenticated])
def appointment_cancel(request, pk):
    appointment = _get_visible(request, pk)
    if not appointment:
        return fail('Appointment not found', status.HTTP_404_NOT_FOUND)
    s = CancelSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    reason = bleach.clean(s.validated_data['cancellationReason'], strip=True)
    appointment = svc.cancel(appointment, reason, actor=request.user)
    return ok(svc.serialize_appointment(appointment))
