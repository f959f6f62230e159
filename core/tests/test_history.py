"""
Doctor and patient consultation history.
"""
from datetime import timedelta

import pytest
from django.urls import reverse
from django.utils import timezone

from core.models import Appointment, Prescription, PrescriptionItem, ReportRequest, User

pytestmark = pytest.mark.django_db


@pytest.fixture
def visits(hospital, doctor, patient):
    now = timezone.now()
    done = Appointment.objects.create(hospital=hospital, doctor=doctor, patient=patient,
                                      scheduled_at=now - timedelta(days=3), status="COMPLETED")
    Appointment.objects.create(hospital=hospital, doctor=doctor, patient=patient,
                               scheduled_at=now + timedelta(days=2))
    rx = Prescription.objects.create(appointment=done, doctor=doctor, patient=patient, notes="rest")
    PrescriptionItem.objects.create(prescription=rx, medicine_name="Amoxicillin", dosage="500mg",
                                    frequency="twice daily", duration="for 5 days")
    ReportRequest.objects.create(doctor=doctor, patient=patient, appointment=done, title="CBC")
    # distinct timestamps keep the ordering deterministic
    Prescription.objects.update(created_at=now - timedelta(hours=2))
    ReportRequest.objects.update(created_at=now - timedelta(hours=1))
    return done


def test_doctor_timeline_is_newest_first(api, doctor, visits):
    data = api(doctor).get(reverse("doctor_history")).data["data"]
    assert [e["type"] for e in data] == ["APPOINTMENT", "REPORT_REQUEST", "PRESCRIPTION", "APPOINTMENT"]
    rx = data[2]
    assert rx["prescriptionItems"][0]["medicineName"] == "Amoxicillin"
    assert rx["patient"]["name"] == "Jane Roe"
    assert api(doctor).get(reverse("doctor_history"), {"limit": 2}).data["data"][1]["type"] == "REPORT_REQUEST"


def test_doctor_stats_and_patient_count(api, doctor, make_user, hospital, visits):
    other = make_user(User.PATIENT)
    Appointment.objects.create(hospital=hospital, doctor=doctor, patient=other, scheduled_at=timezone.now())
    stats = api(doctor).get(reverse("doctor_history_stats")).data["data"]
    assert stats["totalPatients"] == 2
    assert stats["totalAppointments"] == 3
    assert stats["completedAppointments"] == 1
    assert stats["upcomingAppointments"] == 1
    assert stats["totalPrescriptions"] == 1
    assert stats["pendingReportRequests"] == 1
    count = api(doctor).get(reverse("doctor_patient_count")).data["data"]
    assert count == {"totalPatients": 2}


def test_doctor_sees_one_patient_only_if_treated(api, doctor, patient, make_user, visits):
    data = api(doctor).get(reverse("doctor_patient_history", args=[patient.id])).data["data"]
    assert len(data) == 4
    stranger = make_user(User.PATIENT)
    assert api(doctor).get(reverse("doctor_patient_history", args=[stranger.id])).status_code == 404


def test_other_doctors_history_is_separate(api, make_user, hospital, visits):
    colleague = make_user(User.DOCTOR, hospital=hospital)
    assert api(colleague).get(reverse("doctor_history")).data["data"] == []


def test_uploaded_report_shows_as_received(api, doctor, patient, visits):
    report = ReportRequest.objects.get()
    report.status = ReportRequest.STATUS_UPLOADED
    report.uploaded_at = timezone.now()
    report.save()
    data = api(patient).get(reverse("patient_history")).data["data"]
    assert data[1]["type"] == "REPORT_RECEIVED"
    assert data[1]["doctor"]["name"] == "Gregory House"


def test_patient_stats(api, patient, visits):
    stats = api(patient).get(reverse("patient_history_stats")).data["data"]
    assert stats == {"totalConsultations": 1, "totalAppointments": 2, "totalPrescriptions": 1,
                     "totalReportRequests": 1, "totalDoctors": 1}


def test_history_is_role_gated(api, doctor, patient):
    assert api(patient).get(reverse("doctor_history")).status_code == 403
    assert api(doctor).get(reverse("patient_history")).status_code == 403
