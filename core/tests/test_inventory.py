"""
Stock levels, the auto-restock rule and distributor orders.
"""
from datetime import timedelta

import pytest
from django.urls import reverse
from django.utils import timezone

from core.models import (
    Activity, AuditEvent, Distributor, DistributorOrder, InventoryItem, Notification, Pharmacy, User,
)

pytestmark = pytest.mark.django_db


def test_pharmacist_adds_stock(api, pharmacist, pharmacy, distributor):
    body = {"pharmacyId": pharmacy.id, "medicineName": "Amoxicillin", "batchNumber": "A-1",
            "expiryDate": (timezone.localdate() + timedelta(days=90)).isoformat(), "quantity": 20,
            "distributorId": distributor.id, "sellingPrice": "12.50"}
    r = api(pharmacist).post(reverse("inventory"), body, format="json")
    assert r.status_code == 201
    assert r.data["data"]["threshold"] == 10
    assert r.data["data"]["sellingPrice"] == 12.5
    assert Activity.objects.filter(type="INVENTORY_ADDED", pharmacy=pharmacy).exists()


def test_staff_cannot_write_to_another_pharmacy(api, pharmacist):
    other = Pharmacy.objects.create(name="Elsewhere")
    body = {"pharmacyId": other.id, "medicineName": "X", "batchNumber": "1",
            "expiryDate": "2030-01-01", "quantity": 1}
    assert api(pharmacist).post(reverse("inventory"), body, format="json").status_code == 403


def test_patients_read_but_do_not_write(api, patient, stock_item):
    client = api(patient)
    assert client.get(reverse("inventory_detail", args=[stock_item.id])).status_code == 200
    r = client.patch(reverse("inventory_detail", args=[stock_item.id]), {"quantity": 1}, format="json")
    assert r.status_code == 403


def test_listing_is_pinned_to_staff_pharmacy(api, pharmacist, stock_item):
    other = Pharmacy.objects.create(name="Elsewhere")
    InventoryItem.objects.create(pharmacy=other, medicine_name="Other", batch_number="O",
                                 expiry_date=timezone.localdate(), quantity=1)
    r = api(pharmacist).get(reverse("inventory"), {"pharmacyId": other.id})
    assert [i["id"] for i in r.data["data"]] == [stock_item.id]
    assert r.data["pagination"]["total"] == 1


def test_low_stock_filter(api, pharmacist, stock_item, pharmacy):
    low = InventoryItem.objects.create(pharmacy=pharmacy, medicine_name="Zinc", batch_number="Z",
                                       expiry_date=timezone.localdate(), quantity=3, threshold=5)
    r = api(pharmacist).get(reverse("inventory"), {"lowStock": "true"})
    assert [i["id"] for i in r.data["data"]] == [low.id]
    assert r.data["data"][0]["isLowStock"] is True


def test_consume_above_threshold_creates_no_order(api, pharmacist, stock_item):
    r = api(pharmacist).post(reverse("inventory_consume", args=[stock_item.id]), {"quantity": 5}, format="json")
    assert r.status_code == 200
    assert r.data["data"]["quantity"] == 45
    assert r.data["restockOrder"] is None
    assert not DistributorOrder.objects.exists()


def test_consume_to_threshold_places_one_restock_order(api, pharmacist, stock_item, super_admin, make_user,
                                                       distributor):
    rep = make_user(User.DISTRIBUTOR, distributor=distributor)
    client = api(pharmacist)
    r = client.post(reverse("inventory_consume", args=[stock_item.id]), {"quantity": 40}, format="json")
    assert r.data["data"]["quantity"] == 10
    order = r.data["restockOrder"]
    assert order["quantity"] == 30
    assert order["status"] == "PENDING"
    assert order["autoCreated"] is True

    assert Activity.objects.filter(type="INVENTORY_LOW_STOCK").count() == 1
    assert Notification.objects.filter(user=rep, title="Restock requested").exists()
    assert Notification.objects.filter(user=super_admin, title="Restock requested").exists()

    # still open, so a further drop does not order again
    r = client.post(reverse("inventory_consume", args=[stock_item.id]), {"quantity": 3}, format="json")
    assert r.data["restockOrder"] is None
    assert DistributorOrder.objects.filter(inventory_item=stock_item).count() == 1


def test_consume_clamps_at_zero(api, pharmacist, stock_item):
    r = api(pharmacist).post(reverse("inventory_consume", args=[stock_item.id]), {"quantity": 500}, format="json")
    assert r.data["data"]["quantity"] == 0


def test_consume_needs_positive_quantity(api, pharmacist, stock_item):
    r = api(pharmacist).post(reverse("inventory_consume", args=[stock_item.id]), {"quantity": 0}, format="json")
    assert r.status_code == 400


def test_item_without_distributor_never_restocks(api, pharmacist, stock_item):
    stock_item.distributor = None
    stock_item.save()
    r = api(pharmacist).post(reverse("inventory_consume", args=[stock_item.id]), {"quantity": 49}, format="json")
    assert r.data["restockOrder"] is None


def test_patch_decrease_runs_low_stock_check(api, pharmacist, stock_item):
    r = api(pharmacist).patch(reverse("inventory_detail", args=[stock_item.id]), {"quantity": 2}, format="json")
    assert r.status_code == 200
    assert DistributorOrder.objects.filter(inventory_item=stock_item, auto_created=True).count() == 1


def test_patch_increase_does_not_order(api, pharmacist, stock_item):
    stock_item.quantity = 1
    stock_item.save()
    api(pharmacist).patch(reverse("inventory_detail", args=[stock_item.id]), {"quantity": 5}, format="json")
    assert not DistributorOrder.objects.exists()


class TestDistributorOrders:

    @pytest.fixture
    def order(self, distributor, pharmacy, stock_item):
        return DistributorOrder.objects.create(distributor=distributor, pharmacy=pharmacy, inventory_item=stock_item,
                                               medicine_name=stock_item.medicine_name, quantity=25)

    @pytest.fixture
    def rep(self, make_user, distributor):
        return make_user(User.DISTRIBUTOR, distributor=distributor)

    def move(self, client, order, new_status, **extra):
        return client.patch(reverse("distributor_order_detail", args=[order.id]),
                            {"status": new_status, **extra}, format="json")

    def test_pharmacist_places_order(self, api, pharmacist, pharmacy, distributor):
        body = {"distributorId": distributor.id, "pharmacyId": pharmacy.id, "medicineName": "Insulin",
                "quantity": 4}
        r = api(pharmacist).post(reverse("distributor_orders"), body, format="json")
        assert r.status_code == 201
        assert r.data["data"]["autoCreated"] is False
        assert Activity.objects.filter(type="DISTRIBUTOR_ORDER_CREATED").count() == 1

    def test_patient_cannot_place_order(self, api, patient, pharmacy, distributor):
        body = {"distributorId": distributor.id, "pharmacyId": pharmacy.id, "medicineName": "Insulin",
                "quantity": 4}
        assert api(patient).post(reverse("distributor_orders"), body, format="json").status_code == 403

    def test_delivery_restocks_inventory(self, api, rep, order, stock_item):
        client = api(rep)
        assert self.move(client, order, "ACCEPTED").status_code == 200
        assert self.move(client, order, "DISPATCHED", deliveryOtp="4321").data["data"]["deliveryOtp"] == "4321"
        r = self.move(client, order, "DELIVERED")
        assert r.data["data"]["status"] == "DELIVERED"
        stock_item.refresh_from_db()
        assert stock_item.quantity == 75
        types = set(Activity.objects.values_list("type", flat=True))
        assert {"DISTRIBUTOR_ORDER_DISPATCHED", "DISTRIBUTOR_ORDER_DELIVERED"} <= types

    def test_cannot_skip_steps(self, api, rep, order):
        r = self.move(api(rep), order, "DELIVERED")
        assert r.status_code == 400
        assert "PENDING" in r.data["detail"]

    def test_delivered_is_final(self, api, rep, order):
        order.status = "DELIVERED"
        order.save()
        assert self.move(api(rep), order, "CANCELLED").status_code == 400

    def test_distributor_sees_only_own_orders(self, api, rep, order, pharmacy):
        other = Pharmacy.objects.create(name="Other")
        stranger = DistributorOrder.objects.create(distributor=Distributor.objects.create(name="Rival"),
                                                   pharmacy=other, medicine_name="X", quantity=1)
        ids = [o["id"] for o in api(rep).get(reverse("distributor_orders")).data["data"]]
        assert ids == [order.id]
        assert api(rep).get(reverse("distributor_order_detail", args=[stranger.id])).status_code == 404

    def test_delivery_otp_is_redacted_in_audit_trail(self, api, rep, order):
        self.move(api(rep), order, "ACCEPTED", deliveryOtp="9999")
        event = AuditEvent.objects.get(action="patch:distributor_order_detail")
        assert event.detail["body"]["deliveryOtp"] == "***"


class TestBrandSearch:

    @pytest.fixture
    def brands(self, pharmacy, stock_item):
        today = timezone.localdate()
        stock_item.brand_name, stock_item.composition = "Crocin", "Paracetamol 500mg"
        stock_item.save()
        soon = InventoryItem.objects.create(pharmacy=pharmacy, medicine_name="Paracetamol", brand_name="Dolo",
                                            composition="Paracetamol 500mg", batch_number="D-1", quantity=5,
                                            expiry_date=today + timedelta(days=12), purchase_price="3.00",
                                            selling_price="4.00", rack_number="R2")
        InventoryItem.objects.create(pharmacy=pharmacy, medicine_name="Paracetamol", brand_name="Calpol",
                                     composition="Paracetamol 500mg", batch_number="C-0", quantity=0,
                                     expiry_date=today + timedelta(days=5))
        InventoryItem.objects.create(pharmacy=pharmacy, medicine_name="Cetirizine", batch_number="Z-1",
                                     quantity=9, expiry_date=today + timedelta(days=400))
        return soon

    def test_search_groups_brands_by_composition(self, api, pharmacist, brands):
        data = api(pharmacist).get(reverse("inventory_search"), {"query": "dolo"}).data["data"]
        assert data["totalBrands"] == 1
        data = api(pharmacist).get(reverse("inventory_search"), {"query": "paracetamol"}).data["data"]
        assert data["totalCompositions"] == 1
        group = data["results"][0]
        assert group["composition"] == "Paracetamol 500mg"
        assert [b["brandName"] for b in group["brands"]] == ["Calpol", "Dolo", "Crocin"]
        assert group["brands"][1]["isExpiringSoon"] is True
        assert group["brands"][1]["rackNumber"] == "R2"
        assert group["brands"][2]["margin"] == 3.0

    def test_items_without_composition_group_by_name(self, api, pharmacist, brands):
        data = api(pharmacist).get(reverse("inventory_search"), {"query": "cetirizine"}).data["data"]
        assert data["results"][0]["medicineName"] == "Cetirizine"
        assert data["results"][0]["brands"][0]["brandName"] == "Generic"

    def test_brands_by_composition_skips_empty_stock(self, api, patient, pharmacy, brands):
        r = api(patient).get(reverse("inventory_brands_by_composition"),
                             {"pharmacyId": pharmacy.id, "composition": "paracetamol"})
        assert r.status_code == 200
        brands_ = r.data["data"]["brands"]
        assert [b["brandName"] for b in brands_] == ["Dolo", "Crocin"]
        assert brands_[0]["expiryWarning"] == "Expiring in 12 days"
        assert api(patient).get(reverse("inventory_brands_by_composition"),
                                {"pharmacyId": pharmacy.id}).status_code == 400

    def test_expiry_risk_values_stock_at_cost(self, api, pharmacist, super_admin, pharmacy, brands):
        data = api(pharmacist).get(reverse("inventory_expiry_risk")).data["data"]
        assert [i["brandName"] for i in data["riskItems"]] == ["Dolo"]
        assert data["totalValue"] == 15.0
        wide = api(pharmacist).get(reverse("inventory_expiry_risk"), {"days": 365}).data["data"]
        assert wide["totalItems"] == 2
        assert api(super_admin).get(reverse("inventory_expiry_risk")).status_code == 400

    def test_staff_search_stays_in_own_pharmacy(self, api, make_user, brands):
        other = Pharmacy.objects.create(name="Elsewhere")
        staff = make_user(User.PHARMACY_STAFF, pharmacy=other)
        data = api(staff).get(reverse("inventory_search"), {"query": "paracetamol"}).data["data"]
        assert data["results"] == []
