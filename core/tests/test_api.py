"""
End-to-end tests for the CareHub API.

A patient books a consultation, the doctor confirms it and prescribes,
the patient orders the medicine and the order travels through the admin
desk to the pharmacy, which bills the sale.  The tests use Django REST
Framework's APIClient within the APITestCase base class.
"""
from datetime import timedelta

from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from core.models import (
    Activity, Appointment, Conversation, FinanceEntry, Hospital, InventoryItem, Order, Pharmacy, User,
)


class CareFlowAPITests(APITestCase):
    def setUp(self) -> None:
        self.hospital = Hospital.objects.create(name="City Hospital")
        self.pharmacy = Pharmacy.objects.create(name="Central Pharmacy")
        self.admin = self._user("root@example.com", User.SUPER_ADMIN, "Root Admin")
        self.doctor = self._user("house@example.com", User.DOCTOR, "Gregory House", hospital=self.hospital)
        self.patient = self._user("jane@example.com", User.PATIENT, "Jane Roe")
        self.pharmacist = self._user("paula@example.com", User.PHARMACY_STAFF, "Paula Pharm",
                                     pharmacy=self.pharmacy)
        self.stock = InventoryItem.objects.create(
            pharmacy=self.pharmacy, medicine_name="Amoxicillin", batch_number="A-1",
            expiry_date=timezone.localdate() + timedelta(days=365), quantity=30, threshold=5,
            selling_price="4.00",
        )

    def _user(self, email, role, name, **extra):
        return User.objects.create_user(username=email, email=email, password="Secret123!", role=role,
                                        first_name=name, **extra)

    def _as(self, user):
        self.client.force_authenticate(user=user)

    def test_consultation_to_pharmacy_sale(self):
        # patient books
        self._as(self.patient)
        scheduled = (timezone.now() + timedelta(days=2)).isoformat()
        resp = self.client.post(reverse("appointments"), {
            "hospitalId": self.hospital.id, "doctorId": self.doctor.id, "patientId": self.patient.id,
            "scheduledAt": scheduled, "channel": "VIDEO",
        }, format="json")
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        appointment_id = resp.data["data"]["id"]

        # doctor confirms and prescribes
        self._as(self.doctor)
        resp = self.client.patch(reverse("appointment_status", args=[appointment_id]),
                                 {"status": "CONFIRMED"}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        conversation = Conversation.objects.get(appointment_id=appointment_id)
        self.assertTrue(conversation.is_active)
        resp = self.client.post(reverse("prescriptions"), {
            "appointmentId": appointment_id, "pharmacyId": self.pharmacy.id,
            "items": [{"medicineName": "Amoxicillin", "dosage": "500mg", "frequency": "twice daily",
                       "duration": "5 days"}],
        }, format="json")
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        self.assertEqual(resp.data["data"]["conversationId"], conversation.id)

        # patient orders the medicine
        self._as(self.patient)
        resp = self.client.post(reverse("orders"), {
            "pharmacyId": self.pharmacy.id, "items": [{"medicineName": "Amoxicillin", "quantity": 10}],
        }, format="json")
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        order = Order.objects.get(pk=resp.data["data"]["id"])

        # admin desk forwards it
        self._as(self.admin)
        for step in ("admin-accept", "admin-receive-medicine", "admin-send-to-pharmacy"):
            resp = self.client.patch(reverse("order_admin_step", args=[order.id, step]), format="json")
            self.assertEqual(resp.status_code, status.HTTP_200_OK, step)

        # pharmacy fulfils and bills
        self._as(self.pharmacist)
        for new_status in ("ACCEPTED", "DELIVERED"):
            resp = self.client.patch(reverse("order_status", args=[order.id]), {"status": new_status},
                                     format="json")
            self.assertEqual(resp.status_code, status.HTTP_200_OK, new_status)
        resp = self.client.post(reverse("invoices"), {
            "pharmacyId": self.pharmacy.id, "patientId": self.patient.id,
            "items": [{"inventoryItemId": self.stock.id, "quantity": 10}],
        }, format="json")
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)

        self.stock.refresh_from_db()
        self.assertEqual(self.stock.quantity, 20)
        self.assertEqual(FinanceEntry.objects.filter(type="PHARMACY_SALE", patient=self.patient).count(), 1)
        order.refresh_from_db()
        self.assertEqual(order.status, "DELIVERED")

        # the patient's feed shows the whole story
        self._as(self.patient)
        types = {a["type"] for a in self.client.get(reverse("activities"), {"limit": 200}).data["data"]}
        self.assertTrue({"APPOINTMENT_CREATED", "ORDER_CREATED", "ORDER_STATUS_UPDATED"} <= types)

    def test_tenant_isolation_between_pharmacies(self):
        other = Pharmacy.objects.create(name="Zeta Pharmacy")
        rival = self._user("rival@example.com", User.PHARMACY_STAFF, "Rita Rival", pharmacy=other)
        order = Order.objects.create(patient=self.patient, pharmacy=self.pharmacy)

        self._as(rival)
        listed = self.client.get(reverse("inventory")).data["data"]
        self.assertEqual(listed, [])
        resp = self.client.patch(reverse("inventory_detail", args=[self.stock.id]), {"quantity": 1},
                                 format="json")
        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)
        resp = self.client.get(reverse("order_detail", args=[order.id]))
        self.assertIn(resp.status_code, (status.HTTP_403_FORBIDDEN, status.HTTP_404_NOT_FOUND))

    def test_patient_cannot_reach_admin_surfaces(self):
        self._as(self.patient)
        for name in ("users", "admin_dashboard", "audit_logs"):
            resp = self.client.get(reverse(name))
            self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN, name)
        self.assertFalse(Appointment.objects.exists())
        self.assertFalse(Activity.objects.filter(type="USER_UPDATED").exists())
