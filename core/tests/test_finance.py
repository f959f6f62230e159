"""
Pharmacy invoices and the finance ledger reports.
"""
from datetime import datetime
from decimal import Decimal

import pytest
from django.urls import reverse
from django.utils import timezone

from core.models import (
    Activity, DistributorOrder, FinanceEntry, Hospital, InventoryItem, Notification, Pharmacy, PharmacyInvoice,
    User,
)
from core.services.invoices import price_line

pytestmark = pytest.mark.django_db


def at(year, month, day):
    return timezone.make_aware(datetime(year, month, day, 12, 0))


def test_price_line_rounds_to_cents():
    line = price_line(Decimal("5.00"), 4, Decimal("10"), Decimal("18"))
    assert line == {"discount_amount": Decimal("2.00"), "subtotal": Decimal("18.00"),
                    "tax_amount": Decimal("3.24"), "total": Decimal("21.24")}
    assert price_line(Decimal("3.33"), 1, Decimal("0"), Decimal("5"))["tax_amount"] == Decimal("0.17")


class TestInvoices:

    def create(self, client, pharmacy, *lines, **extra):
        return client.post(reverse("invoices"), {"pharmacyId": pharmacy.id, "items": list(lines), **extra},
                           format="json")

    def test_sale_prices_lines_and_books_revenue(self, api, pharmacist, pharmacy, patient, stock_item):
        r = self.create(api(pharmacist), pharmacy,
                        {"inventoryItemId": stock_item.id, "quantity": 4, "discount": "10"},
                        patientId=patient.id, paymentMethod="CASH")
        assert r.status_code == 201
        data = r.data["data"]
        today = timezone.localdate().strftime("%Y%m%d")
        assert data["invoiceNumber"] == f"INV-{pharmacy.id}-{today}-0001"
        assert data["subtotal"] == 18.0
        assert data["totalDiscount"] == 2.0
        assert data["totalTax"] == 3.24
        assert data["grandTotal"] == 21.24
        assert data["items"][0]["mrp"] == 5.0

        stock_item.refresh_from_db()
        assert stock_item.quantity == 46
        entry = FinanceEntry.objects.get(type="PHARMACY_SALE")
        assert entry.amount == Decimal("21.24")
        assert entry.patient_id == patient.id
        assert Activity.objects.filter(type="PHARMACY_INVOICE_CREATED").count() == 1

        second = self.create(api(pharmacist), pharmacy, {"inventoryItemId": stock_item.id, "quantity": 1})
        assert second.data["data"]["invoiceNumber"].endswith("-0002")

    def test_insufficient_stock_rolls_back(self, api, pharmacist, pharmacy, stock_item):
        r = self.create(api(pharmacist), pharmacy, {"inventoryItemId": stock_item.id, "quantity": 60})
        assert r.status_code == 400
        assert "Available: 50" in r.data["error"]["message"]
        assert not PharmacyInvoice.objects.exists()
        assert not FinanceEntry.objects.exists()
        stock_item.refresh_from_db()
        assert stock_item.quantity == 50

    def test_sale_can_trigger_restock(self, api, pharmacist, pharmacy, stock_item):
        self.create(api(pharmacist), pharmacy, {"inventoryItemId": stock_item.id, "quantity": 45})
        assert stock_item.restock_orders.filter(auto_created=True).count() == 1

    def test_restock_events_leave_after_commit(self, api, pharmacist, pharmacy, stock_item, sent_events,
                                               django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            r = self.create(api(pharmacist), pharmacy, {"inventoryItemId": stock_item.id, "quantity": 45})
        assert r.status_code == 201
        assert ("role.DISTRIBUTOR", "distributorOrder:created") in sent_events

    def test_failed_sale_sends_no_restock_events(self, api, pharmacist, pharmacy, distributor, stock_item,
                                                 make_user, sent_events, django_capture_on_commit_callbacks):
        make_user(User.DISTRIBUTOR, distributor=distributor)
        stock_item.quantity = 12
        stock_item.save()
        short = InventoryItem.objects.create(pharmacy=pharmacy, medicine_name="Ibuprofen", batch_number="I-1",
                                             expiry_date=stock_item.expiry_date, quantity=1)
        with django_capture_on_commit_callbacks(execute=True):
            r = self.create(api(pharmacist), pharmacy,
                            {"inventoryItemId": stock_item.id, "quantity": 5},
                            {"inventoryItemId": short.id, "quantity": 3})
        assert r.status_code == 400
        assert not DistributorOrder.objects.exists()
        assert not Notification.objects.exists()
        assert sent_events == []
        stock_item.refresh_from_db()
        assert stock_item.quantity == 12

    def test_patient_sees_only_own_invoices(self, api, pharmacist, pharmacy, patient, make_user, stock_item):
        client = api(pharmacist)
        mine = self.create(client, pharmacy, {"inventoryItemId": stock_item.id, "quantity": 1},
                           patientId=patient.id).data["data"]
        self.create(client, pharmacy, {"inventoryItemId": stock_item.id, "quantity": 1})
        listed = api(patient).get(reverse("invoices")).data["data"]
        assert [i["id"] for i in listed] == [mine["id"]]
        other = make_user(User.PATIENT)
        assert api(other).get(reverse("invoice_detail", args=[mine["id"]])).status_code == 404

    def test_bad_date_filters_are_rejected(self, api, pharmacist, super_admin):
        r = api(pharmacist).get(reverse("invoices"), {"from": "notadate"})
        assert r.status_code == 400
        assert r.data["error"]["code"] == "validation_error"
        assert api(pharmacist).get(reverse("invoices"), {"to": "2024-13-45"}).status_code == 400
        assert api(super_admin).get(reverse("finance_reports"), {"from": "yesterday"}).status_code == 400

    def test_date_filters_accept_days_and_timestamps(self, api, pharmacist, pharmacy, stock_item):
        self.create(api(pharmacist), pharmacy, {"inventoryItemId": stock_item.id, "quantity": 1})
        today = timezone.localdate().isoformat()
        client = api(pharmacist)
        assert len(client.get(reverse("invoices"), {"from": today}).data["data"]) == 1
        assert len(client.get(reverse("invoices"), {"to": f"{today}T23:59:59Z"}).data["data"]) == 1
        assert client.get(reverse("invoices"), {"from": "2999-01-01"}).data["data"] == []

    def test_payment_update(self, api, pharmacist, pharmacy, stock_item):
        invoice = self.create(api(pharmacist), pharmacy, {"inventoryItemId": stock_item.id, "quantity": 2},
                              taxRate="0").data["data"]
        url = reverse("invoice_payment", args=[invoice["id"]])
        r = api(pharmacist).patch(url, {"paymentStatus": "PARTIAL", "paidAmount": "5.00", "paymentMethod": "UPI"},
                                  format="json")
        assert r.status_code == 200
        assert (r.data["data"]["paymentStatus"], r.data["data"]["paidAmount"]) == ("PARTIAL", 5.0)
        r = api(pharmacist).patch(url, {"paymentStatus": "PAID"}, format="json")
        assert r.data["data"]["paidAmount"] == invoice["grandTotal"]
        assert r.data["data"]["paymentMethod"] == "UPI"
        assert api(pharmacist).patch(url, {"paidAmount": "9999"}, format="json").status_code == 400
        assert api(pharmacist).patch(url, {}, format="json").status_code == 400
        assert Activity.objects.filter(type="PHARMACY_INVOICE_PAYMENT_UPDATED").count() == 2

    def test_payment_update_is_pharmacy_scoped(self, api, pharmacist, pharmacy, patient, make_user, stock_item):
        invoice = self.create(api(pharmacist), pharmacy, {"inventoryItemId": stock_item.id, "quantity": 1},
                              patientId=patient.id).data["data"]
        url = reverse("invoice_payment", args=[invoice["id"]])
        rival = make_user(User.PHARMACY_STAFF, pharmacy=Pharmacy.objects.create(name="Rival"))
        assert api(rival).patch(url, {"paymentStatus": "PAID"}, format="json").status_code == 404
        assert api(patient).patch(url, {"paymentStatus": "PAID"}, format="json").status_code == 403

    def test_pdf_download(self, api, pharmacist, pharmacy, patient, make_user, stock_item):
        invoice = self.create(api(pharmacist), pharmacy, {"inventoryItemId": stock_item.id, "quantity": 3},
                              patientId=patient.id).data["data"]
        r = api(patient).get(reverse("invoice_pdf", args=[invoice["id"]]))
        assert r.status_code == 200
        assert r["Content-Type"] == "application/pdf"
        assert invoice["invoiceNumber"] in r["Content-Disposition"]
        assert r.content.startswith(b"%PDF")
        other = make_user(User.PATIENT)
        assert api(other).get(reverse("invoice_pdf", args=[invoice["id"]])).status_code == 404

    def test_patient_cannot_create_invoice(self, api, patient, pharmacy, stock_item):
        r = self.create(api(patient), pharmacy, {"inventoryItemId": stock_item.id, "quantity": 1})
        assert r.status_code == 403


class TestLedger:

    @pytest.fixture
    def ledger(self, hospital, pharmacy):
        other = Hospital.objects.create(name="Other Hospital")
        rows = [
            ("CONSULTATION", "100.00", at(2024, 1, 10), hospital),
            ("PHARMACY_SALE", "50.00", at(2024, 1, 20), None),
            ("SALARY", "-30.00", at(2024, 2, 5), hospital),
            ("CONSULTATION", "70.00", at(2024, 2, 6), other),
        ]
        for type_, amount, when, h in rows:
            FinanceEntry.objects.create(type=type_, amount=Decimal(amount), occurred_at=when, hospital=h,
                                        pharmacy=pharmacy if type_ == "PHARMACY_SALE" else None)
        return other

    def test_admin_only(self, api, doctor):
        assert api(doctor).get(reverse("finance")).status_code == 403

    def test_create_entry(self, api, super_admin, hospital):
        r = api(super_admin).post(reverse("finance"), {"type": "EXPENSE", "amount": "-12.50",
                                                       "hospitalId": hospital.id}, format="json")
        assert r.status_code == 201
        assert r.data["data"]["amount"] == -12.5
        assert r.data["data"]["occurredAt"]
        assert Activity.objects.filter(type="FINANCE_ENTRY_CREATED").exists()

    def test_reports_split_revenue_and_expenses(self, api, super_admin, ledger):
        data = api(super_admin).get(reverse("finance_reports")).data["data"]
        assert data == {"total": 190.0, "revenue": 220.0, "expenses": 30.0, "netProfit": 190.0, "count": 4}

    def test_date_and_type_filters(self, api, super_admin, ledger):
        client = api(super_admin)
        data = client.get(reverse("finance_reports"), {"from": "2024-02-01T00:00:00Z"}).data["data"]
        assert data["count"] == 2
        data = client.get(reverse("finance_reports"), {"type": "CONSULTATION"}).data["data"]
        assert data["revenue"] == 170.0
        summary = client.get(reverse("finance_summary"), {"to": "2024-01-31T23:59:59Z"}).data["data"]
        assert summary == {"total": 150.0, "count": 2}

    def test_hospital_admin_is_pinned_to_own_hospital(self, api, make_user, hospital, ledger):
        admin = make_user(User.HOSPITAL_ADMIN, hospital=hospital)
        data = api(admin).get(reverse("finance_reports"), {"hospitalId": ledger.id}).data["data"]
        assert data["count"] == 2
        assert data["netProfit"] == 70.0
        report = api(admin).get(reverse("finance_hospital_report", args=[ledger.id])).data["data"]
        assert report["hospitalId"] == hospital.id

    def test_monthly_buckets(self, api, super_admin, ledger):
        data = api(super_admin).get(reverse("finance_time_report")).data["data"]
        assert data["period"] == "MONTHLY"
        assert [b["period"] for b in data["buckets"]] == ["2024-02", "2024-01"]
        feb = data["buckets"][0]
        assert (feb["revenue"], feb["expenses"], feb["netProfit"], feb["count"]) == (70.0, 30.0, 40.0, 2)
        assert data["totals"]["count"] == 4

    def test_yearly_bucket(self, api, super_admin, ledger):
        data = api(super_admin).get(reverse("finance_time_report"), {"period": "YEARLY"}).data["data"]
        assert [b["period"] for b in data["buckets"]] == ["2024"]

    def test_unit_report(self, api, super_admin, pharmacy, ledger):
        client = api(super_admin)
        data = client.get(reverse("finance_unit_report", args=["pharmacy"]), {"id": pharmacy.id}).data["data"]
        assert data["unitType"] == "PHARMACY"
        assert data["revenue"] == 50.0
        assert client.get(reverse("finance_unit_report", args=["planet"])).status_code == 400
