"""
Patient orders: admin steps, pharmacy fulfilment and cancellation.
"""
import pytest
from django.urls import reverse

from core.models import Activity, Order, Pharmacy, User

pytestmark = pytest.mark.django_db


@pytest.fixture
def order(patient, pharmacy):
    o = Order.objects.create(patient=patient, pharmacy=pharmacy)
    o.items.create(medicine_name="Paracetamol", quantity=2)
    return o


def step(client, order, name):
    return client.patch(reverse("order_admin_step", args=[order.id, name]), format="json")


def set_status(client, order, new_status, **extra):
    return client.patch(reverse("order_status", args=[order.id]), {"status": new_status, **extra}, format="json")


def test_patient_places_order(api, patient, pharmacy):
    body = {"pharmacyId": pharmacy.id, "deliveryType": "DELIVERY", "address": "<i>12 Main St</i>",
            "items": [{"medicineName": "Paracetamol", "quantity": 2}]}
    r = api(patient).post(reverse("orders"), body, format="json")
    assert r.status_code == 201
    data = r.data["data"]
    assert data["status"] == "PENDING"
    assert data["address"] == "12 Main St"
    assert data["items"][0]["quantity"] == 2
    assert Activity.objects.filter(type="ORDER_CREATED", patient=patient).exists()


def test_only_patients_place_orders(api, pharmacist, pharmacy):
    body = {"pharmacyId": pharmacy.id, "items": [{"medicineName": "X", "quantity": 1}]}
    assert api(pharmacist).post(reverse("orders"), body, format="json").status_code == 403


@pytest.mark.parametrize("body", [
    {"items": [{"medicineName": "X", "quantity": 1}]},
    {"pharmacyId": 1, "items": []},
    {"pharmacyId": 1, "deliveryType": "DELIVERY", "items": [{"medicineName": "X", "quantity": 1}]},
])
def test_order_validation(api, patient, pharmacy, body):
    if "pharmacyId" in body:
        body["pharmacyId"] = pharmacy.id
    assert api(patient).post(reverse("orders"), body, format="json").status_code == 400


def test_inactive_pharmacy_is_not_found(api, patient):
    closed = Pharmacy.objects.create(name="Closed", is_active=False)
    body = {"pharmacyId": closed.id, "items": [{"medicineName": "X", "quantity": 1}]}
    assert api(patient).post(reverse("orders"), body, format="json").status_code == 404


def test_full_workflow(api, super_admin, pharmacist, patient, order):
    admin = api(super_admin)
    assert step(admin, order, "admin-accept").data["data"]["status"] == "ORDER_RECEIVED"
    assert step(admin, order, "admin-receive-medicine").data["data"]["status"] == "MEDICINE_RECEIVED"
    data = step(admin, order, "admin-send-to-pharmacy").data["data"]
    assert data["status"] == "SENT_TO_PHARMACY"
    assert data["adminApprovedAt"] and data["medicineReceivedAt"] and data["sentToPharmacyAt"]

    staff = api(pharmacist)
    assert set_status(staff, order, "ACCEPTED").status_code == 200
    assert set_status(staff, order, "PACKED").status_code == 200
    data = set_status(staff, order, "OUT_FOR_DELIVERY", deliveryPersonName="Sam",
                      deliveryPersonPhone="555").data["data"]
    assert data["deliveryPersonName"] == "Sam"
    data = set_status(staff, order, "DELIVERED").data["data"]
    assert data["status"] == "DELIVERED"
    assert data["deliveredAt"]

    assert Activity.objects.filter(type="ORDER_STATUS_UPDATED").count() == 7
    out = Activity.objects.get(type="ORDER_STATUS_UPDATED", metadata__status="OUT_FOR_DELIVERY")
    assert "Sam" in out.description

    assert api(patient).get(reverse("order_detail", args=[order.id])).data["data"]["status"] == "DELIVERED"


def test_admin_steps_are_ordered(api, super_admin, order):
    r = step(api(super_admin), order, "admin-send-to-pharmacy")
    assert r.status_code == 400
    assert "MEDICINE_RECEIVED" in r.data["error"]["message"]


def test_unknown_admin_step(api, super_admin, order):
    assert step(api(super_admin), order, "admin-teleport").status_code == 404


def test_admin_steps_need_super_admin(api, pharmacist, order):
    assert step(api(pharmacist), order, "admin-accept").status_code == 403


def test_pharmacy_accepts_only_when_sent(api, pharmacist, order):
    r = set_status(api(pharmacist), order, "ACCEPTED")
    assert r.status_code == 400
    order.refresh_from_db()
    assert order.status == "PENDING"


def test_pharmacy_cannot_set_admin_statuses(api, pharmacist, order):
    assert set_status(api(pharmacist), order, "ORDER_RECEIVED").status_code == 400


def test_other_pharmacy_staff_refused(api, make_user, order):
    outsider = make_user(User.PHARMACY_STAFF, pharmacy=Pharmacy.objects.create(name="Elsewhere"))
    assert set_status(api(outsider), order, "ACCEPTED").status_code == 403
    assert api(outsider).get(reverse("order_detail", args=[order.id])).status_code == 404


def test_patient_cancels_own_order(api, patient, order):
    r = api(patient).patch(reverse("order_cancel", args=[order.id]), {"reason": "changed my mind"}, format="json")
    assert r.status_code == 200
    assert r.data["data"]["status"] == "CANCELLED"
    assert r.data["data"]["cancellationReason"] == "changed my mind"
    assert Activity.objects.filter(type="ORDER_STATUS_UPDATED", metadata__status="CANCELLED").exists()


def test_cancel_refused_for_others_and_late_orders(api, make_user, super_admin, order):
    r = api(make_user(User.PATIENT)).patch(reverse("order_cancel", args=[order.id]), {}, format="json")
    assert r.status_code == 403

    order.status = Order.STATUS_OUT_FOR_DELIVERY
    order.save()
    r = api(super_admin).patch(reverse("order_cancel", args=[order.id]), {}, format="json")
    assert r.status_code == 400


def test_listing_is_scoped(api, patient, pharmacist, make_user, order):
    other = make_user(User.PATIENT)
    Order.objects.create(patient=other, pharmacy=Pharmacy.objects.create(name="Elsewhere"))

    assert [o["id"] for o in api(patient).get(reverse("orders_my")).data["data"]] == [order.id]
    assert [o["id"] for o in api(pharmacist).get(reverse("orders")).data["data"]] == [order.id]
    assert api(make_user(User.DOCTOR)).get(reverse("orders")).data["data"] == []
