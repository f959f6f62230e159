"""
Master data, the public directory, the dashboard and housekeeping commands.
"""
from io import StringIO

import pytest
from django.core.management import call_command
from django.urls import reverse

from core.models import Activity, Hospital, InventoryItem, Order, Pharmacy, Template, User

pytestmark = pytest.mark.django_db


def test_health_endpoints(client):
    assert client.get(reverse("healthz")).json() == {"ok": True, "db": True}
    assert client.get(reverse("api_health")).json() == {"status": "ok"}


class TestMasterData:

    def test_admin_creates_updates_and_deletes(self, api, super_admin):
        client = api(super_admin)
        r = client.post(reverse("master_units", args=["pharmacies"]), {"name": "North", "phone": "555"},
                        format="json")
        assert r.status_code == 201
        pk = r.data["data"]["id"]
        r = client.patch(reverse("master_unit_detail", args=["pharmacies", pk]), {"isActive": False}, format="json")
        assert r.data["data"]["isActive"] is False
        assert client.delete(reverse("master_unit_detail", args=["pharmacies", pk])).status_code == 200
        assert not Pharmacy.objects.filter(pk=pk).exists()
        types = list(Activity.objects.order_by("id").values_list("type", flat=True))
        assert types == ["PHARMACY_CREATED", "PHARMACY_UPDATED", "PHARMACY_DELETED"]

    def test_non_admins_read_only(self, api, doctor, hospital):
        client = api(doctor)
        assert client.get(reverse("master_units", args=["hospitals"]), {"q": "city"}).data["data"][0]["id"] == hospital.id
        assert client.post(reverse("master_units", args=["hospitals"]), {"name": "X"}, format="json").status_code == 403

    def test_unknown_kind(self, api, super_admin):
        assert api(super_admin).get(reverse("master_units", args=["clinics"])).status_code == 404


class TestPublicDirectory:

    def test_units_and_doctors_are_public(self, client, hospital, doctor):
        Hospital.objects.create(name="Closed", is_active=False)
        names = [h["name"] for h in client.get(reverse("public_units", args=["hospitals"])).json()["data"]]
        assert names == ["City Hospital"]
        doctors = client.get(reverse("public_doctors"), {"hospitalId": hospital.id}).json()["data"]
        assert doctors == [{"id": doctor.id, "name": "Gregory House", "hospitalId": hospital.id,
                            "hospitalName": "City Hospital"}]
        assert client.get(reverse("public_units", args=["distributors"])).status_code == 404

    def test_medicines_in_stock_only(self, client, stock_item, pharmacy):
        InventoryItem.objects.create(pharmacy=pharmacy, medicine_name="Paracetamol syrup", batch_number="S",
                                     expiry_date=stock_item.expiry_date, quantity=0)
        body = client.get(reverse("public_medicines"), {"q": "para"}).json()
        assert [m["id"] for m in body["data"]] == [stock_item.id]
        assert body["data"][0]["pharmacyName"] == "Central Pharmacy"


class TestDashboard:

    def test_counters_are_cached(self, api, super_admin, patient, pharmacy):
        client = api(super_admin)
        first = client.get(reverse("admin_dashboard")).data["data"]
        assert first["pharmacies"] == 1
        assert first["usersByRole"][User.PATIENT] == 1
        Order.objects.create(patient=patient, pharmacy=pharmacy)
        assert client.get(reverse("admin_dashboard")).data["data"]["pendingOrders"] == 0

        call_command("refresh_caches", stdout=StringIO())
        assert client.get(reverse("admin_dashboard")).data["data"]["pendingOrders"] == 1

    def test_admin_only(self, api, doctor):
        assert api(doctor).get(reverse("admin_dashboard")).status_code == 403


def test_seed_templates_is_idempotent():
    call_command("seed_templates", stdout=StringIO())
    call_command("seed_templates", stdout=StringIO())
    assert Template.objects.count() == 4
    assert Template.objects.filter(is_default=True, hospital__isnull=True).count() == 4


def test_ensure_demo_users():
    out = StringIO()
    call_command("ensure_demo_users", "--password", "pw-123", stdout=out)
    call_command("ensure_demo_users", stdout=StringIO())
    assert User.objects.count() == 6
    assert User.objects.get(email="doctor@carehub.local").hospital.name == "Demo Hospital"
    assert "All demo users ensured." in out.getvalue()
