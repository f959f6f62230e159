"""
Prescriptions: creation, dictation parsing, edits and document rendering.
"""
import pytest
from django.urls import reverse
from django.utils import timezone

from core.models import Activity, Appointment, Conversation, Notification, Prescription, Template, User
from core.services.prescriptions import parse_voice_text

ITEM = {"medicineName": "Amoxicillin", "dosage": "500mg", "frequency": "twice daily", "duration": "5 days"}


@pytest.fixture
def appointment(db, hospital, doctor, patient):
    return Appointment.objects.create(hospital=hospital, doctor=doctor, patient=patient,
                                      scheduled_at=timezone.now(), status="CONFIRMED")


class TestVoiceParsing:
    def test_full_sentence(self):
        items = parse_voice_text("Amoxicillin 500mg twice daily for 5 days")
        assert items == [{
            "medicineName": "Amoxicillin",
            "dosage": "500mg",
            "frequency": "twice daily",
            "duration": "for 5 days",
            "notes": "Amoxicillin 500mg twice daily for 5 days",
        }]

    def test_defaults_when_nothing_matches(self):
        (item,) = parse_voice_text("take vitamins regularly")
        assert item["medicineName"] == "take"
        assert item["dosage"] == "As directed"
        assert item["frequency"] == "As needed"
        assert item["duration"] == "As directed"

    def test_splits_and_skips_short_fragments(self):
        items = parse_voice_text("Ibuprofen 200 mg 3 daily; ok. Cetirizine 10mg once daily for 1 week")
        assert [i["medicineName"] for i in items] == ["Ibuprofen", "Cetirizine"]
        assert items[0]["dosage"] == "200 mg"
        assert items[0]["frequency"] == "3 daily"
        assert items[1]["duration"] == "for 1 week"


@pytest.mark.django_db
def test_doctor_creates_prescription_linked_to_conversation(api, doctor, patient, appointment):
    conv = Conversation.objects.create(appointment=appointment, doctor=doctor, patient=patient)
    r = api(doctor).post(reverse("prescriptions"), {"appointmentId": appointment.id, "items": [ITEM]},
                         format="json")
    assert r.status_code == 201
    data = r.data["data"]
    assert data["patientId"] == patient.id
    assert data["conversationId"] == conv.id
    assert data["items"][0]["medicineName"] == "Amoxicillin"
    conv.refresh_from_db()
    assert conv.prescription_id == data["id"]
    assert Activity.objects.filter(type="PRESCRIPTION_CREATED").exists()
    assert Notification.objects.filter(user=patient, title="New prescription").exists()


@pytest.mark.django_db
def test_items_are_required(api, doctor, patient):
    r = api(doctor).post(reverse("prescriptions"), {"patientId": patient.id, "items": []}, format="json")
    assert r.status_code == 400
    r = api(doctor).post(reverse("prescriptions"),
                         {"patientId": patient.id, "items": [{"medicineName": "X", "dosage": "1"}]}, format="json")
    assert r.status_code == 400


@pytest.mark.django_db
def test_patient_cannot_prescribe(api, patient):
    r = api(patient).post(reverse("prescriptions"), {"patientId": patient.id, "items": [ITEM]}, format="json")
    assert r.status_code == 403


@pytest.mark.django_db
def test_voice_endpoint(api, doctor, patient):
    r = api(doctor).post(reverse("prescription_voice"),
                         {"patientId": patient.id, "voiceText": "Metformin 500mg twice daily for 30 days"},
                         format="json")
    assert r.status_code == 201
    item = r.data["data"]["items"][0]
    assert (item["medicineName"], item["dosage"], item["duration"]) == ("Metformin", "500mg", "for 30 days")


@pytest.mark.django_db
def test_visibility_and_edit(api, doctor, patient, make_user):
    p = api(doctor).post(reverse("prescriptions"), {"patientId": patient.id, "items": [ITEM]},
                         format="json").data["data"]
    other_patient = make_user(User.PATIENT)
    assert api(patient).get(reverse("prescription_detail", args=[p["id"]])).status_code == 200
    assert api(other_patient).get(reverse("prescription_detail", args=[p["id"]])).status_code == 404
    assert len(api(patient).get(reverse("prescriptions_by_patient", args=[patient.id])).data["data"]) == 1

    new_items = [dict(ITEM, medicineName="Azithromycin"), dict(ITEM, medicineName="Zinc")]
    r = api(doctor).put(reverse("prescription_detail", args=[p["id"]]),
                        {"items": new_items, "reportStatus": "FINALIZED"}, format="json")
    assert r.status_code == 200
    assert [i["medicineName"] for i in r.data["data"]["items"]] == ["Azithromycin", "Zinc"]
    assert r.data["data"]["reportStatus"] == "FINALIZED"

    other_doctor = make_user(User.DOCTOR)
    assert api(other_doctor).put(reverse("prescription_detail", args=[p["id"]]), {"notes": "x"},
                                 format="json").status_code == 404


@pytest.mark.django_db
def test_document_prefers_hospital_template(api, doctor, patient, appointment, hospital):
    Template.objects.create(name="Global", type="PRESCRIPTION", content="GLOBAL {{patientName}}", is_default=True)
    Template.objects.create(name="Local", type="PRESCRIPTION", hospital=hospital, is_default=True,
                            content="<h1>{{hospitalName}}</h1><p>{{patientName}}</p>{{medicines}}")
    p = Prescription.objects.create(doctor=doctor, patient=patient, appointment=appointment)
    p.items.create(medicine_name="<Aspirin>", dosage="75mg", frequency="once daily", duration="30 days")

    r = api(patient).get(reverse("prescription_document", args=[p.id]))
    assert r.status_code == 200
    html = r.data["data"]["rendered"]
    assert html.startswith("<h1>City Hospital</h1><p>Jane Roe</p>")
    assert '<table class="medicines">' in html
    assert "&lt;Aspirin&gt;" in html
    assert r.data["data"]["template"]["name"] == "Local"


@pytest.mark.django_db
def test_document_without_template_is_404(api, doctor, patient):
    p = Prescription.objects.create(doctor=doctor, patient=patient)
    assert api(doctor).get(reverse("prescription_document", args=[p.id])).status_code == 404


@pytest.mark.django_db
def test_conversation_messages_between_participants(api, doctor, patient, appointment, make_user):
    created = api(patient).post(reverse("conversations"), {"appointmentId": appointment.id}, format="json")
    assert created.status_code == 201
    conv_id = created.data["data"]["id"]
    again = api(doctor).post(reverse("conversations"), {"appointmentId": appointment.id}, format="json")
    assert again.data["data"]["id"] == conv_id

    url = reverse("conversation_messages", args=[conv_id])
    r = api(patient).post(url, {"content": "<script>x</script>Hello doctor"}, format="json")
    assert r.status_code == 201
    assert r.data["data"]["senderRole"] == "PATIENT"
    assert "<script>" not in r.data["data"]["content"]

    assert api(make_user(User.PATIENT)).post(url, {"content": "hi"}, format="json").status_code == 403

    api(doctor).patch(reverse("conversation_detail", args=[conv_id]), {"isActive": False, "summary": "done"},
                      format="json")
    closed = api(doctor).get(reverse("conversation_by_appointment", args=[appointment.id])).data["data"]
    assert closed["isActive"] is False and closed["endedAt"]
    assert len(closed["messages"]) == 1
