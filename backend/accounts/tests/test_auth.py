import pytest
from django.contrib.auth import get_user_model
from django.urls import reverse
from rest_framework.test import APIClient

from accounts.models import Membership

User = get_user_model()


@pytest.fixture
def client():
    return APIClient()


@pytest.fixture
def user(db):
    return User.objects.create_user(
        username="dispatch@example.com",
        email="dispatch@example.com",
        password="examplepass",
        first_name="Dee",
        last_name="Spatcher",
    )


def _login(client, email="dispatch@example.com", password="examplepass"):
    return client.post(reverse("auth-login"), {"email": email, "password": password}, format="json")


def test_register_creates_user_and_returns_tokens(db, client):
    payload = {
        "email": "New@Example.com",
        "password": "password123",
        "first_name": "New",
        "last_name": "User",
    }
    response = client.post(reverse("auth-register"), payload, format="json")

    assert response.status_code == 201
    body = response.json()
    assert body["user"]["email"] == "new@example.com"
    assert body["user"]["display_name"] == "New User"
    assert body["user"]["active_organization"] is None
    assert "access" in body and "refresh" in body
    assert User.objects.filter(username="new@example.com").exists()


def test_register_with_existing_email_is_rejected(db, client, user):
    payload = {"email": "DISPATCH@example.com", "password": "password123"}
    response = client.post(reverse("auth-register"), payload, format="json")

    assert response.status_code == 400
    assert "email" in response.json()


def test_login_returns_tokens_and_user_payload(db, client, user):
    response = _login(client)

    assert response.status_code == 200
    data = response.json()
    assert set(data.keys()) == {"access", "refresh", "user"}
    assert data["user"]["email"] == "dispatch@example.com"


def test_login_with_wrong_password_fails(db, client, user):
    assert _login(client, password="nope").status_code == 401


def test_refresh_issues_new_access_token(db, client, user):
    refresh_token = _login(client).json()["refresh"]

    refresh_response = client.post(reverse("auth-refresh"), {"refresh": refresh_token}, format="json")

    assert refresh_response.status_code == 200
    assert "access" in refresh_response.json()


def test_me_endpoint_accepts_bearer_token(db, client, user):
    access = _login(client).json()["access"]

    client.credentials(HTTP_AUTHORIZATION=f"Bearer {access}")
    response = client.get(reverse("auth-me"))

    assert response.status_code == 200
    assert response.json()["email"] == "dispatch@example.com"


def test_me_endpoint_requires_authentication(db, client):
    assert client.get(reverse("auth-me")).status_code == 401


def test_memberships_list_only_active_memberships(
    client, make_member, organization, other_organization
):
    member = make_member(organization, Membership.DISPATCHER)
    Membership.objects.create(
        user=member, organization=other_organization, role=Membership.ADMIN, is_active=False
    )
    client.force_authenticate(member)

    response = client.get(reverse("auth-memberships"))

    assert response.status_code == 200
    assert [(row["organization_slug"], row["role"]) for row in response.json()] == [
        ("elite-cars", Membership.DISPATCHER)
    ]


def test_select_organization_switches_tenant(client, make_member, organization, other_organization):
    member = make_member(organization, Membership.ADMIN)
    Membership.objects.create(user=member, organization=other_organization, role=Membership.DISPATCHER)
    client.force_authenticate(member)

    response = client.post(
        reverse("auth-select-organization"), {"organization": other_organization.pk}, format="json"
    )

    assert response.status_code == 200
    assert response.json()["membership"]["role"] == Membership.DISPATCHER
    member.refresh_from_db()
    assert member.active_organization == other_organization


def test_select_organization_requires_membership(client, make_member, organization, other_organization):
    member = make_member(organization, Membership.ADMIN)
    client.force_authenticate(member)

    response = client.post(
        reverse("auth-select-organization"), {"organization": other_organization.pk}, format="json"
    )

    assert response.status_code == 403
    assert response.json()["code"] == "no_tenant"
    member.refresh_from_db()
    assert member.active_organization == organization
