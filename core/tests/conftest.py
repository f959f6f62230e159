import itertools
from datetime import timedelta

import pytest
from django.core.cache import cache
from django.utils import timezone
from rest_framework.test import APIClient

from core.models import Distributor, Hospital, InventoryItem, Pharmacy, User

_seq = itertools.count(1)


@pytest.fixture(autouse=True)
def _isolate(settings, tmp_path):
    # throttle counters and dashboard counters live in the cache
    cache.clear()
    settings.MEDIA_ROOT = tmp_path / "media"
    settings.NOTIFY_SMS_URL = ""
    settings.NOTIFY_WHATSAPP_URL = ""
    yield
    cache.clear()


@pytest.fixture
def hospital(db):
    return Hospital.objects.create(name="City Hospital")


@pytest.fixture
def pharmacy(db):
    return Pharmacy.objects.create(name="Central Pharmacy")


@pytest.fixture
def distributor(db):
    return Distributor.objects.create(name="MedSupply")


@pytest.fixture
def make_user(db):
    def make(role=User.PATIENT, name=None, **extra):
        n = next(_seq)
        email = extra.pop("email", f"{role.lower()}{n}@example.com")
        return User.objects.create_user(
            username=email, email=email, password="Secret123!", role=role,
            first_name=name or f"{role.title()} {n}", **extra,
        )
    return make


@pytest.fixture
def super_admin(make_user):
    return make_user(User.SUPER_ADMIN, name="Root Admin")


@pytest.fixture
def doctor(make_user, hospital):
    return make_user(User.DOCTOR, name="Gregory House", hospital=hospital)


@pytest.fixture
def patient(make_user):
    return make_user(User.PATIENT, name="Jane Roe", phone="+15550001")


@pytest.fixture
def pharmacist(make_user, pharmacy):
    return make_user(User.PHARMACY_STAFF, name="Paula Pharm", pharmacy=pharmacy)


@pytest.fixture
def api():
    def client_for(user=None):
        client = APIClient()
        if user is not None:
            client.force_authenticate(user=user)
        return client
    return client_for


@pytest.fixture
def stock_item(pharmacy, distributor):
    return InventoryItem.objects.create(
        pharmacy=pharmacy, distributor=distributor, medicine_name="Paracetamol", batch_number="B-100",
        expiry_date=timezone.localdate() + timedelta(days=200), quantity=50, threshold=10,
        purchase_price="2.00", selling_price="5.00",
    )


@pytest.fixture
def sent_events(monkeypatch):
    """(group, event) pairs handed to the channel layer after commit."""
    sent = []
    monkeypatch.setattr("core.services.realtime._group_send",
                        lambda group, message: sent.append((group, message["event"])))
    return sent
