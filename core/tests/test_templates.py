"""
Document templates and pricing rules.
"""
from datetime import datetime, timedelta

import pytest
from django.urls import reverse
from django.utils import timezone

from core.models import Hospital, PricingRule, Template, User
from core.services.templates import render_template, substitute

pytestmark = pytest.mark.django_db


class TestRendering:

    def test_substitute_leaves_unknown_tokens(self):
        assert substitute("Hi {{ name }}, {{other}}", {"name": "Ann"}) == "Hi Ann, {{other}}"

    def test_declared_variables_fall_back_to_defaults(self):
        tpl = Template(content="{{greeting}} {{patientName}} on {{date}}",
                       variables=[{"key": "greeting", "defaultValue": "Dear"}])
        now = timezone.make_aware(datetime(2024, 3, 9, 8, 30))
        assert render_template(tpl, {"patientName": "Jane"}, now=now) == "Dear Jane on 2024-03-09"

    def test_values_are_escaped(self):
        tpl = Template(content="<p>{{note}}</p>")
        assert render_template(tpl, {"note": "<b>x</b>"}) == "<p>&lt;b&gt;x&lt;/b&gt;</p>"


@pytest.fixture
def admin(super_admin):
    return super_admin


def make_template(client, **body):
    payload = {"name": "Rx", "type": "PRESCRIPTION", "content": "<h1>{{hospitalName}}</h1>"}
    payload.update(body)
    return client.post(reverse("templates"), payload, format="json")


def test_render_endpoint_requires_declared_variables(api, admin, patient):
    tpl = make_template(api(admin), content="Lab: {{test}}",
                        variables=[{"key": "test", "required": True}]).data["data"]
    url = reverse("template_render", args=[tpl["id"]])
    r = api(patient).post(url, {"data": {}}, format="json")
    assert r.status_code == 400
    assert "test" in r.data["error"]["message"]

    r = api(patient).post(url, {"data": {"test": "CBC"}}, format="json")
    assert r.data["data"]["rendered"] == "Lab: CBC"
    assert r.data["data"]["template"]["id"] == tpl["id"]


def test_new_default_clears_previous_one(api, admin, hospital):
    client = api(admin)
    first = make_template(client, hospitalId=hospital.id, isDefault=True).data["data"]
    second = make_template(client, hospitalId=hospital.id, isDefault=True).data["data"]
    make_template(client, isDefault=True)  # global default is a separate scope
    assert not Template.objects.get(pk=first["id"]).is_default
    assert Template.objects.get(pk=second["id"]).is_default
    assert Template.objects.filter(is_default=True).count() == 2


def test_default_lookup_prefers_hospital_then_global(api, admin, patient, hospital):
    client = api(admin)
    glob = make_template(client, isDefault=True).data["data"]
    url = reverse("template_default", args=["prescription"])
    assert api(patient).get(url, {"hospitalId": hospital.id}).data["data"]["id"] == glob["id"]

    local = make_template(client, hospitalId=hospital.id, isDefault=True).data["data"]
    assert api(patient).get(url, {"hospitalId": hospital.id}).data["data"]["id"] == local["id"]
    assert api(patient).get(reverse("template_default", args=["BILL"])).status_code == 404


def test_template_writes_are_admin_only(api, doctor):
    assert make_template(api(doctor)).status_code == 403


def test_hospital_admin_limited_to_own_hospital(api, make_user, hospital, admin):
    other = Hospital.objects.create(name="Other")
    hadmin = make_user(User.HOSPITAL_ADMIN, hospital=hospital)
    assert make_template(api(hadmin), hospitalId=other.id).status_code == 403
    foreign = make_template(api(admin), hospitalId=other.id).data["data"]
    assert api(hadmin).get(reverse("template_detail", args=[foreign["id"]])).status_code == 404
    assert make_template(api(hadmin), hospitalId=hospital.id).status_code == 201


def test_bad_variable_key_rejected(api, admin):
    assert make_template(api(admin), variables=[{"key": "1bad"}]).status_code == 400


class TestPricing:

    def rule(self, client, **body):
        payload = {"name": "Consult", "serviceType": "CONSULTATION", "basePrice": "500.00"}
        payload.update(body)
        return client.post(reverse("pricing"), payload, format="json")

    def test_final_price(self, api, admin):
        r = self.rule(api(admin), discountPercent="10", discountAmount="20")
        assert r.status_code == 201
        assert r.data["data"]["finalPrice"] == 430.0

    def test_final_price_never_negative(self, api, admin):
        r = self.rule(api(admin), basePrice="10", discountAmount="50")
        assert r.data["data"]["finalPrice"] == 0.0

    def test_validity_window(self, api, admin):
        now = timezone.now()
        r = self.rule(api(admin), validFrom=now.isoformat(), validTo=(now - timedelta(days=1)).isoformat())
        assert r.status_code == 400

    def test_active_on_filter(self, api, admin, patient):
        now = timezone.now()
        PricingRule.objects.create(name="Old", service_type="DELIVERY", base_price=5,
                                   valid_to=now - timedelta(days=10))
        current = PricingRule.objects.create(name="Now", service_type="DELIVERY", base_price=7,
                                             valid_from=now - timedelta(days=1))
        r = api(patient).get(reverse("pricing"), {"serviceType": "delivery",
                                                   "activeOn": timezone.localdate().isoformat()})
        assert [p["id"] for p in r.data["data"]] == [current.id]
        assert api(patient).get(reverse("pricing"), {"activeOn": "soon"}).status_code == 400

    def test_patch_and_permissions(self, api, admin, doctor):
        rule_id = self.rule(api(admin)).data["data"]["id"]
        url = reverse("pricing_detail", args=[rule_id])
        assert api(doctor).patch(url, {"basePrice": "1"}, format="json").status_code == 403
        r = api(admin).patch(url, {"discountPercent": "50"}, format="json")
        assert r.data["data"]["finalPrice"] == 250.0
