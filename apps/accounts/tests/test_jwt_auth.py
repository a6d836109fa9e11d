import pytest
from django.contrib.auth import get_user_model
from django.urls import reverse
from rest_framework.test import APIClient

from apps.audit.models import AuditEvent
from apps.rbac.models import Role, RoleBinding


@pytest.mark.django_db
def test_jwt_login_and_whoami():
    U = get_user_model()
    user = U.objects.create_user(
        username="apiuser", password="pass12345!", display_name="Dr API", phone="+27820000000"
    )
    role = Role.objects.create(name="provider")
    RoleBinding.objects.create(user=user, role=role)

    client = APIClient()

    # 1) obtain token
    res = client.post(
        reverse("token_obtain_pair"), {"username": "apiuser", "password": "pass12345!"}, format="json"
    )
    assert res.status_code == 200, res.content
    access = res.json()["access"]

    # 2) bearer token on a protected endpoint
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {access}")
    r2 = client.get(reverse("accounts_api:whoami"))
    assert r2.status_code == 200, r2.content
    body = r2.json()
    assert body["username"] == "apiuser"
    assert body["display_name"] == "Dr API"
    assert body["roles"] == ["provider"]
    assert body["is_provider"] is False


@pytest.mark.django_db
def test_whoami_requires_authentication():
    r = APIClient().get(reverse("accounts_api:whoami"))
    assert r.status_code == 401


@pytest.mark.django_db
def test_failed_session_login_is_audited(client):
    get_user_model().objects.create_user(username="someone", password="right-pass-1")
    assert client.login(username="someone", password="wrong") is False
    ev = AuditEvent.objects.get(action="auth.login_failed")
    assert ev.object_id == "someone"
