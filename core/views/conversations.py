"""
Consultation conversation endpoints.
"""
from __future__ import annotations

import bleach
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from core.models import Appointment, Conversation, Prescription, User
from core.serializers.clinical import ConversationCreateSerializer, ConversationUpdateSerializer, MessageSerializer
from core.services.appointments import scope_for
from core.services.conversations import (
    add_message, can_access, serialize_conversation, serialize_message, start_for_appointment,
)
from core.views.common import created, fail, flag, ok


def _scoped(user):
    qs = Conversation.objects.all()
    if user.role == User.DOCTOR:
        return qs.filter(doctor=user)
    if user.role == User.PATIENT:
        return qs.filter(patient=user)
    if user.role == User.HOSPITAL_ADMIN and user.hospital_id:
        return qs.filter(appointment__hospital_id=user.hospital_id)
    if user.role == User.SUPER_ADMIN:
        return qs
    return qs.none()


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def conversation_collection(request):
    if request.method == 'POST':
        s = ConversationCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        appointment = scope_for(request.user, Appointment.objects.all()).filter(
            pk=s.validated_data['appointmentId']).first()
        if not appointment:
            return fail('Appointment not found', status.HTTP_404_NOT_FOUND)
        conversation = start_for_appointment(appointment, actor=request.user)
        return created(serialize_conversation(conversation, with_messages=True))

    qs = _scoped(request.user)
    qp = request.query_params
    if qp.get('doctorId'):
        qs = qs.filter(doctor_id=qp['doctorId'])
    if qp.get('patientId'):
        qs = qs.filter(patient_id=qp['patientId'])
    active = flag(qp.get('isActive'))
    if active is not None:
        qs = qs.filter(is_active=active)
    return ok([serialize_conversation(c) for c in qs.order_by('-started_at')[:100]])


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def conversation_by_appointment(request, appointment_id):
    conversation = _scoped(request.user).filter(appointment_id=appointment_id).order_by(
        '-is_active', '-started_at').first()
    if not conversation:
        return fail('No conversation for this appointment', status.HTTP_404_NOT_FOUND)
    return ok(serialize_conversation(conversation, with_messages=True))


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
def conversation_detail(request, pk):
    conversation = Conversation.objects.filter(pk=pk).first()
    if not conversation:
        return fail('Conversation not found', status.HTTP_404_NOT_FOUND)
    if not can_access(request.user, conversation):
        return fail('Not a participant of this conversation', status.HTTP_403_FORBIDDEN)
    if request.method == 'GET':
        return ok(serialize_conversation(conversation, with_messages=True))

    s = ConversationUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    if 'summary' in vd:
        conversation.summary = bleach.clean(vd['summary'], strip=True)
    if 'prescriptionId' in vd:
        pid = vd['prescriptionId']
        if pid is not None and not Prescription.objects.filter(pk=pid, patient_id=conversation.patient_id).exists():
            return fail('Prescription not found', status.HTTP_404_NOT_FOUND)
        conversation.prescription_id = pid
    if 'isActive' in vd:
        conversation.is_active = vd['isActive']
        conversation.ended_at = None if vd['isActive'] else (conversation.ended_at or timezone.now())
    conversation.save()
    return ok(serialize_conversation(conversation))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def conversation_messages(request, pk):
    conversation = Conversation.objects.filter(pk=pk).first()
    if not conversation:
        return fail('Conversation not found', status.HTTP_404_NOT_FOUND)
    s = MessageSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    msg = add_message(conversation, request.user, vd['content'], message_type=vd['messageType'],
                      metadata=vd.get('metadata'))
    return created(serialize_message(msg))
