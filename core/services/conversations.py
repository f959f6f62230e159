from typing import Optional

import bleach
from django.db import transaction
from django.utils import timezone

from core.exceptions import ApiError
from core.models import Appointment, Conversation, ConversationMessage, User
from core.services.activity import create_activity
from core.services.realtime import emit_to_user


def serialize_conversation(c: Conversation, *, with_messages: bool = False) -> dict:
    data = {
        'id': c.id,
        'appointmentId': c.appointment_id,
        'doctorId': c.doctor_id,
        'patientId': c.patient_id,
        'consultationType': c.consultation_type,
        'isActive': c.is_active,
        'startedAt': c.started_at.isoformat() if c.started_at else None,
        'endedAt': c.ended_at.isoformat() if c.ended_at else None,
        'summary': c.summary,
        'prescriptionId': c.prescription_id,
    }
    if with_messages:
        data['messages'] = [serialize_message(m) for m in c.messages.all()]
    return data


def serialize_message(m: ConversationMessage) -> dict:
    return {
        'id': m.id,
        'conversationId': m.conversation_id,
        'senderId': m.sender_id,
        'senderRole': m.sender_role,
        'messageType': m.message_type,
        'content': m.content,
        'metadata': m.metadata,
        'timestamp': m.created_at.isoformat() if m.created_at else None,
    }


def can_access(user: User, c: Conversation) -> bool:
    if user.role in (User.SUPER_ADMIN, User.HOSPITAL_ADMIN):
        return True
    return user.id in (c.doctor_id, c.patient_id)


@transaction.atomic
def start_for_appointment(appointment: Appointment, *, actor: Optional[User] = None) -> Conversation:
    """Return the active conversation for ``appointment``, creating one if needed."""
    existing = appointment.conversations.filter(is_active=True).order_by('-started_at').first()
    if existing:
        return existing
    ctype = Conversation.TYPE_ONLINE if appointment.channel == Appointment.CHANNEL_VIDEO else Conversation.TYPE_OFFLINE
    conversation = Conversation.objects.create(
        appointment=appointment,
        doctor_id=appointment.doctor_id,
        patient_id=appointment.patient_id,
        consultation_type=ctype,
    )
    create_activity(
        'CONVERSATION_STARTED',
        'Consultation started',
        f"{ctype.lower()} consultation opened for appointment {appointment.id}",
        user_id=getattr(actor, 'id', None),
        hospital_id=appointment.hospital_id,
        doctor_id=appointment.doctor_id,
        patient_id=appointment.patient_id,
        metadata={'conversationId': conversation.id, 'appointmentId': appointment.id},
    )
    return conversation


def end_for_appointment(appointment: Appointment) -> int:
    return appointment.conversations.filter(is_active=True).update(
        is_active=False, ended_at=timezone.now(), updated_at=timezone.now()
    )


def add_message(conversation: Conversation, sender: User, content: str, *, message_type: str = 'TEXT',
                metadata: Optional[dict] = None) -> ConversationMessage:
    if sender.id == conversation.doctor_id:
        sender_role, recipient = 'DOCTOR', conversation.patient_id
    elif sender.id == conversation.patient_id:
        sender_role, recipient = 'PATIENT', conversation.doctor_id
    else:
        raise ApiError('Only the doctor or the patient may post in this conversation', 403)
    if not conversation.is_active:
        raise ApiError('Conversation has ended')

    content = bleach.clean((content or '').strip(), strip=True)
    if not content:
        raise ApiError('Message content is required')

    msg = ConversationMessage.objects.create(
        conversation=conversation,
        sender=sender,
        sender_role=sender_role,
        message_type=message_type,
        content=content,
        metadata=metadata or {},
    )
    Conversation.objects.filter(pk=conversation.pk).update(updated_at=timezone.now())
    emit_to_user(recipient, 'conversation:message', serialize_message(msg))
    return msg
