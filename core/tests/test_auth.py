import pytest
from django.urls import reverse
from rest_framework.test import APIClient

from core.models import Activity, AuditEvent, User

pytestmark = pytest.mark.django_db


def signup(client, **overrides):
    body = {"name": "Alice Patient", "email": "Alice@Example.com", "password": "P@ssw0rd1"}
    body.update(overrides)
    return client.post(reverse("signup"), body, format="json")


def test_signup_returns_tokens_and_records_activity():
    r = signup(APIClient())
    assert r.status_code == 201
    assert r.data["ok"] is True
    assert r.data["token"] and r.data["jwtAccess"] and r.data["jwtRefresh"]
    assert r.data["user"]["email"] == "alice@example.com"
    assert r.data["user"]["role"] == User.PATIENT
    assert Activity.objects.filter(type="USER_CREATED").count() == 1


def test_signup_rejects_duplicate_email():
    client = APIClient()
    assert signup(client).status_code == 201
    r = signup(client, email="alice@example.com")
    assert r.status_code == 400
    assert r.data["ok"] is False


def test_signup_cannot_self_assign_super_admin():
    r = signup(APIClient(), role=User.SUPER_ADMIN)
    assert r.status_code == 403
    assert not User.objects.filter(role=User.SUPER_ADMIN).exists()


def test_signup_with_unknown_hospital_is_404():
    r = signup(APIClient(), role=User.DOCTOR, hospitalId=999)
    assert r.status_code == 404


def test_login_by_email_and_audit(make_user):
    user = make_user(User.DOCTOR, email="doc@example.com")
    client = APIClient()
    r = client.post(reverse("login"), {"email": "DOC@example.com", "password": "Secret123!"}, format="json")
    assert r.status_code == 200
    assert r.data["user"]["id"] == user.id
    assert r.data["jwtAccess"]

    bad = client.post(reverse("login"), {"email": "doc@example.com", "password": "nope"}, format="json")
    assert bad.status_code == 401
    assert bad.data == {"ok": False, "detail": "Invalid email or password"}

    results = list(AuditEvent.objects.filter(action="login").values_list("detail", flat=True))
    assert sorted(d["result"] for d in results) == ["fail", "ok"]


def test_login_ignores_role_in_body(make_user):
    user = make_user(User.PATIENT, email="pat@example.com")
    r = APIClient().post(reverse("login"),
                         {"email": "pat@example.com", "password": "Secret123!", "role": "SUPER_ADMIN"},
                         format="json")
    assert r.status_code == 200
    user.refresh_from_db()
    assert user.role == User.PATIENT


def test_token_and_jwt_both_authenticate(make_user):
    make_user(User.PATIENT, email="both@example.com")
    login = APIClient().post(reverse("login"), {"email": "both@example.com", "password": "Secret123!"},
                             format="json")

    legacy = APIClient()
    legacy.credentials(HTTP_AUTHORIZATION=f"Token {login.data['token']}")
    assert legacy.get(reverse("users_me")).data["data"]["email"] == "both@example.com"

    bearer = APIClient()
    bearer.credentials(HTTP_AUTHORIZATION=f"Bearer {login.data['jwtAccess']}")
    assert bearer.get(reverse("users_me")).status_code == 200


def test_refresh_and_logout_blacklist(make_user):
    make_user(User.PATIENT, email="jwt@example.com")
    client = APIClient()
    login = client.post(reverse("login"), {"email": "jwt@example.com", "password": "Secret123!"}, format="json")
    refresh = login.data["jwtRefresh"]

    r = client.post(reverse("jwt_refresh"), {"refresh": refresh}, format="json")
    assert r.status_code == 200
    assert r.data["jwtAccess"]

    client.credentials(HTTP_AUTHORIZATION=f"Bearer {login.data['jwtAccess']}")
    out = client.post(reverse("jwt_logout"), {"refresh": refresh}, format="json")
    assert out.status_code == 200
    assert out.data["blacklisted"] == 1

    again = APIClient().post(reverse("jwt_refresh"), {"refresh": refresh}, format="json")
    assert again.status_code == 401


def test_me_requires_authentication():
    r = APIClient().get(reverse("users_me"))
    assert r.status_code == 401
    assert r.data["ok"] is False
    assert r.data["error"]["code"] == "not_authenticated"


def test_check_role_is_public(make_user):
    make_user(User.DOCTOR, email="known@example.com")
    client = APIClient()
    assert client.get(reverse("users_check_role", args=["known@example.com"])).data["data"] == {
        "exists": True, "role": User.DOCTOR,
    }
    assert client.get(reverse("users_check_role", args=["ghost@example.com"])).data["data"]["exists"] is False


def test_users_listing_is_admin_only(api, make_user, super_admin, patient):
    make_user(User.DOCTOR)
    assert api(patient).get(reverse("users")).status_code == 403
    r = api(super_admin).get(reverse("users"), {"role": "doctor"})
    assert r.status_code == 200
    assert [u["role"] for u in r.data["data"]] == [User.DOCTOR]
    assert r.data["pagination"]["total"] == 1


def test_user_detail_permissions(api, make_user, super_admin, patient):
    other = make_user(User.PATIENT)
    assert api(patient).get(reverse("user_detail", args=[patient.id])).status_code == 200
    assert api(patient).get(reverse("user_detail", args=[other.id])).status_code == 403

    r = api(super_admin).patch(reverse("user_detail", args=[other.id]), {"name": "Renamed"}, format="json")
    assert r.status_code == 200
    assert r.data["data"]["name"] == "Renamed"
    assert Activity.objects.filter(type="USER_UPDATED").exists()


def test_hospital_admin_cannot_delete_super_admin(api, make_user, super_admin, hospital):
    hadmin = make_user(User.HOSPITAL_ADMIN, hospital=hospital)
    r = api(hadmin).delete(reverse("user_detail", args=[super_admin.id]))
    assert r.status_code == 403
    assert User.objects.filter(pk=super_admin.id).exists()

    victim = make_user(User.PATIENT)
    assert api(super_admin).delete(reverse("user_detail", args=[victim.id])).status_code == 200
    assert Activity.objects.filter(type="USER_DELETED").exists()


def test_users_by_role_sorted_by_name(api, make_user, patient):
    make_user(User.DOCTOR, name="zed")
    make_user(User.DOCTOR, name="Amy")
    r = api(patient).get(reverse("users_by_role", args=["DOCTOR"]))
    assert [u["name"] for u in r.data["data"]] == ["Amy", "zed"]
    assert api(patient).get(reverse("users_by_role", args=["WIZARD"])).status_code == 400


def test_writes_are_audited_with_redacted_body(api, super_admin, make_user):
    target = make_user(User.PATIENT)
    api(super_admin).patch(reverse("user_detail", args=[target.id]), {"phone": "123", "password": "x"},
                           format="json")
    event = AuditEvent.objects.get(action="patch:user_detail")
    assert event.user_id == super_admin.id
    assert event.object_id == str(target.id)
    assert event.status_code == 200
    assert event.detail["body"]["phone"] == "123"
    assert event.detail["body"]["password"] != "x"


@pytest.mark.parametrize("role", [User.PHARMACY_STAFF, User.HOSPITAL_ADMIN, User.DISTRIBUTOR])
def test_signup_into_tenant_role_requires_tenant(role):
    r = signup(APIClient(), role=role)
    assert r.status_code == 400
    assert not User.objects.filter(role=role).exists()


def test_signup_pharmacy_staff_with_pharmacy(pharmacy):
    r = signup(APIClient(), role=User.PHARMACY_STAFF, pharmacyId=pharmacy.id)
    assert r.status_code == 201
    assert r.data["user"]["pharmacyId"] == pharmacy.id


def test_unpinned_accounts_are_refused_everywhere(api, make_user, pharmacy, stock_item, hospital):
    staff = make_user(User.PHARMACY_STAFF)
    body = {"pharmacyId": pharmacy.id, "medicineName": "Aspirin", "batchNumber": "X-1",
            "expiryDate": "2030-01-01", "quantity": 5}
    assert api(staff).post(reverse("inventory"), body, format="json").status_code == 403
    assert api(staff).get(reverse("invoices")).status_code == 403
    assert api(staff).get(reverse("stock_audits")).status_code == 403

    admin = make_user(User.HOSPITAL_ADMIN)
    assert api(admin).get(reverse("users")).status_code == 403
    assert api(admin).get(reverse("finance")).status_code == 403


def test_admin_cannot_move_user_into_tenant_role_without_tenant(api, super_admin, make_user, pharmacy):
    target = make_user(User.PATIENT)
    url = reverse("user_detail", args=[target.id])
    r = api(super_admin).patch(url, {"role": User.PHARMACY_STAFF}, format="json")
    assert r.status_code == 400
    target.refresh_from_db()
    assert target.role == User.PATIENT

    r = api(super_admin).patch(url, {"role": User.PHARMACY_STAFF, "pharmacyId": pharmacy.id}, format="json")
    assert r.status_code == 200
    assert r.data["data"]["pharmacyId"] == pharmacy.id
