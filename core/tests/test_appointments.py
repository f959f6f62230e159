"""
Appointment lifecycle and the consultation it drives.
"""
from datetime import timedelta

import pytest
from django.urls import reverse
from django.utils import timezone
from rest_framework import status

from core.models import Activity, Appointment, Conversation, Notification, User

pytestmark = pytest.mark.django_db


def in_hours(hours):
    return (timezone.now() + timedelta(hours=hours)).isoformat()


@pytest.fixture
def booking(hospital, doctor, patient):
    return {"hospitalId": hospital.id, "doctorId": doctor.id, "patientId": patient.id,
            "scheduledAt": in_hours(48), "reason": "<b>Headache</b>"}


@pytest.fixture
def appointment(hospital, doctor, patient):
    return Appointment.objects.create(hospital=hospital, doctor=doctor, patient=patient,
                                      scheduled_at=timezone.now() + timedelta(days=1), channel="VIDEO")


def test_patient_books_for_self(api, patient, booking):
    r = api(patient).post(reverse("appointments"), booking, format="json")
    assert r.status_code == status.HTTP_201_CREATED
    data = r.data["data"]
    assert data["status"] == "PENDING"
    assert data["reason"] == "Headache"
    assert Activity.objects.filter(type="APPOINTMENT_CREATED").count() == 1

    reminder = Notification.objects.get(user=patient)
    assert reminder.channel == "PUSH"
    scheduled = Appointment.objects.get(pk=data["id"]).scheduled_at
    assert reminder.metadata["remindAt"] == (scheduled - timedelta(hours=1)).isoformat()


def test_past_date_is_rejected(api, patient, booking):
    booking["scheduledAt"] = in_hours(-2)
    r = api(patient).post(reverse("appointments"), booking, format="json")
    assert r.status_code == 400
    assert r.data["error"]["code"] == "validation_error"


def test_patient_cannot_book_for_someone_else(api, make_user, booking):
    stranger = make_user(User.PATIENT)
    r = api(stranger).post(reverse("appointments"), booking, format="json")
    assert r.status_code == 403


def test_doctor_id_must_be_a_doctor(api, super_admin, booking, make_user):
    booking["doctorId"] = make_user(User.PATIENT).id
    r = api(super_admin).post(reverse("appointments"), booking, format="json")
    assert r.status_code == 400


def test_unknown_doctor_is_not_found(api, super_admin, booking):
    booking["doctorId"] = 99999
    r = api(super_admin).post(reverse("appointments"), booking, format="json")
    assert r.status_code == 404
    assert r.data["error"]["code"] == "not_found"


def test_list_is_scoped_per_role(api, appointment, make_user, patient, doctor):
    other_patient = make_user(User.PATIENT)
    Appointment.objects.create(doctor=doctor, patient=other_patient, scheduled_at=timezone.now())

    mine = api(patient).get(reverse("appointments")).data["data"]
    assert [a["id"] for a in mine] == [appointment.id]
    assert len(api(doctor).get(reverse("appointments")).data["data"]) == 2
    assert api(make_user(User.DISTRIBUTOR)).get(reverse("appointments")).data["data"] == []


def test_detail_hidden_from_other_patients(api, appointment, make_user):
    r = api(make_user(User.PATIENT)).get(reverse("appointment_detail", args=[appointment.id]))
    assert r.status_code == 404


def test_confirm_opens_online_conversation_then_complete_closes_it(api, doctor, appointment):
    client = api(doctor)
    r = client.patch(reverse("appointment_status", args=[appointment.id]), {"status": "CONFIRMED"}, format="json")
    assert r.status_code == 200
    conv = Conversation.objects.get(appointment=appointment)
    assert conv.is_active and conv.consultation_type == "ONLINE"
    assert Activity.objects.filter(type="CONVERSATION_STARTED").exists()

    # confirming again reuses the open conversation
    client.patch(reverse("appointment_status", args=[appointment.id]), {"status": "CONFIRMED"}, format="json")
    assert Conversation.objects.filter(appointment=appointment).count() == 1

    client.patch(reverse("appointment_status", args=[appointment.id]), {"status": "COMPLETED"}, format="json")
    conv.refresh_from_db()
    assert not conv.is_active and conv.ended_at is not None
    assert Activity.objects.filter(type="APPOINTMENT_STATUS_UPDATED").count() == 3


def test_final_status_cannot_change(api, doctor, appointment):
    appointment.status = "COMPLETED"
    appointment.save()
    r = api(doctor).patch(reverse("appointment_status", args=[appointment.id]), {"status": "PENDING"},
                          format="json")
    assert r.status_code == 400


def test_unknown_status_is_validation_error(api, doctor, appointment):
    r = api(doctor).patch(reverse("appointment_status", args=[appointment.id]), {"status": "LOST"}, format="json")
    assert r.status_code == 400


def test_patient_cannot_set_status(api, patient, appointment):
    r = api(patient).patch(reverse("appointment_status", args=[appointment.id]), {"status": "CONFIRMED"},
                           format="json")
    assert r.status_code == 403


def test_reschedule_resets_to_pending(api, patient, appointment):
    appointment.status = "CONFIRMED"
    appointment.save()
    r = api(patient).patch(reverse("appointment_reschedule", args=[appointment.id]),
                           {"scheduledAt": in_hours(72)}, format="json")
    assert r.status_code == 200
    assert r.data["data"]["status"] == "PENDING"
    assert Activity.objects.filter(type="APPOINTMENT_RESCHEDULED").exists()


def test_cancel_requires_reason_and_ends_conversation(api, patient, appointment):
    Conversation.objects.create(appointment=appointment, doctor=appointment.doctor, patient=patient)
    url = reverse("appointment_cancel", args=[appointment.id])
    assert api(patient).patch(url, {}, format="json").status_code == 400

    r = api(patient).patch(url, {"cancellationReason": "Feeling better"}, format="json")
    assert r.status_code == 200
    assert r.data["data"]["status"] == "CANCELLED"
    assert r.data["data"]["reason"] == "Feeling better"
    assert not Conversation.objects.filter(appointment=appointment, is_active=True).exists()
    assert Activity.objects.filter(type="APPOINTMENT_CANCELLED").exists()
