"""
Appointment lifecycle.

Status changes drive the consultation: confirming opens (or reuses) the
appointment's conversation, completing or cancelling closes it.  Once an
appointment is COMPLETED or CANCELLED its status is final.
"""
from __future__ import annotations

from datetime import timedelta

from django.db import transaction

from core.exceptions import ApiError
from core.models import Appointment, Hospital, User
from core.services.activity import create_activity
from core.services.conversations import end_for_appointment, start_for_appointment
from core.services.notifications import create_notification
from core.services.realtime import emit_to_users

FINAL_STATUSES = (Appointment.STATUS_COMPLETED, Appointment.STATUS_CANCELLED)
REMINDER_LEAD = timedelta(hours=1)


def serialize_appointment(a: Appointment) -> dict:
    return {
        'id': a.id,
        'hospitalId': a.hospital_id,
        'doctorId': a.doctor_id,
        'patientId': a.patient_id,
        'scheduledAt': a.scheduled_at.isoformat() if a.scheduled_at else None,
        'status': a.status,
        'reason': a.reason,
        'channel': a.channel,
        'createdAt': a.created_at.isoformat() if a.created_at else None,
        'updatedAt': a.updated_at.isoformat() if a.updated_at else None,
    }


def scope_for(user: User, qs):
    """Restrict an appointment queryset to what ``user`` may see."""
    if user.role == User.SUPER_ADMIN:
        return qs
    if user.role == User.HOSPITAL_ADMIN:
        return qs.filter(hospital_id=user.hospital_id) if user.hospital_id else qs.none()
    if user.role == User.DOCTOR:
        return qs.filter(doctor=user)
    if user.role == User.PATIENT:
        return qs.filter(patient=user)
    return qs.none()


def _emit(a: Appointment, event: str) -> None:
    emit_to_users([a.doctor_id, a.patient_id], event, serialize_appointment(a))


def _user_with_role(user_id, role: str, label: str) -> User:
    user = User.objects.filter(pk=user_id, is_active=True).first()
    if user is None:
        raise ApiError(f"{label} not found", 404)
    if user.role != role:
        raise ApiError(f"User {user_id} is not a {role}")
    return user


@transaction.atomic
def create_appointment(*, hospital_id, doctor_id, patient_id, scheduled_at, reason: str = '',
                       channel: str = Appointment.CHANNEL_PHYSICAL, actor: User) -> Appointment:
    if not Hospital.objects.filter(pk=hospital_id).exists():
        raise ApiError('Hospital not found', 404)
    doctor = _user_with_role(doctor_id, User.DOCTOR, 'Doctor')
    patient = _user_with_role(patient_id, User.PATIENT, 'Patient')
    appointment = Appointment.objects.create(
        hospital_id=hospital_id, doctor=doctor, patient=patient, scheduled_at=scheduled_at,
        reason=reason, channel=channel,
    )
    create_activity(
        'APPOINTMENT_CREATED',
        'Appointment booked',
        f"{patient.display_name} with Dr. {doctor.display_name} at {scheduled_at:%Y-%m-%d %H:%M}",
        user_id=actor.id,
        hospital_id=hospital_id,
        doctor_id=doctor.id,
        patient_id=patient.id,
        metadata={'appointmentId': appointment.id},
    )
    create_notification(
        patient, 'Appointment reminder',
        f"You have an appointment with Dr. {doctor.display_name} at {scheduled_at:%Y-%m-%d %H:%M}.",
        metadata={'appointmentId': appointment.id, 'remindAt': (scheduled_at - REMINDER_LEAD).isoformat()},
    )
    _emit(appointment, 'appointment:created')
    return appointment


@transaction.atomic
def set_status(appointment: Appointment, new_status: str, *, actor: User) -> Appointment:
    if appointment.status in FINAL_STATUSES and new_status != appointment.status:
        raise ApiError(f"Appointment is already {appointment.status}")
    previous = appointment.status
    appointment.status = new_status
    appointment.save(update_fields=['status', 'updated_at'])

    if new_status == Appointment.STATUS_CONFIRMED:
        start_for_appointment(appointment, actor=actor)
    elif new_status in FINAL_STATUSES:
        end_for_appointment(appointment)

    create_activity(
        'APPOINTMENT_STATUS_UPDATED',
        'Appointment status updated',
        f"Appointment {appointment.id} moved from {previous} to {new_status}",
        user_id=actor.id,
        hospital_id=appointment.hospital_id,
        doctor_id=appointment.doctor_id,
        patient_id=appointment.patient_id,
        metadata={'appointmentId': appointment.id, 'from': previous, 'to': new_status},
    )
    _emit(appointment, 'appointment:statusUpdated')
    return appointment


@transaction.atomic
def reschedule(appointment: Appointment, scheduled_at, *, actor: User) -> Appointment:
    if appointment.status in FINAL_STATUSES:
        raise ApiError(f"Cannot reschedule a {appointment.status.lower()} appointment")
    previous = appointment.scheduled_at
    appointment.scheduled_at = scheduled_at
    appointment.status = Appointment.STATUS_PENDING
    appointment.save(update_fields=['scheduled_at', 'status', 'updated_at'])
    create_activity(
        'APPOINTMENT_RESCHEDULED',
        'Appointment rescheduled',
        f"Appointment {appointment.id} moved to {scheduled_at:%Y-%m-%d %H:%M}",
        user_id=actor.id,
        hospital_id=appointment.hospital_id,
        doctor_id=appointment.doctor_id,
        patient_id=appointment.patient_id,
        metadata={'appointmentId': appointment.id, 'previous': previous.isoformat() if previous else None},
    )
    _emit(appointment, 'appointment:rescheduled')
    return appointment


@transaction.atomic
def cancel(appointment: Appointment, reason: str, *, actor: User) -> Appointment:
    if appointment.status in FINAL_STATUSES:
        raise ApiError(f"Appointment is already {appointment.status}")
    appointment.status = Appointment.STATUS_CANCELLED
    appointment.reason = reason
    appointment.save(update_fields=['status', 'reason', 'updated_at'])
    end_for_appointment(appointment)
    create_activity(
        'APPOINTMENT_CANCELLED',
        'Appointment cancelled',
        f"Appointment {appointment.id} cancelled: {reason}",
        user_id=actor.id,
        hospital_id=appointment.hospital_id,
        doctor_id=appointment.doctor_id,
        patient_id=appointment.patient_id,
        metadata={'appointmentId': appointment.id},
    )
    _emit(appointment, 'appointment:cancelled')
    return appointment
