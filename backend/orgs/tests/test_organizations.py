import pytest
from django.contrib.auth import get_user_model
from django.urls import reverse
from rest_framework.test import APIClient

from accounts.models import Membership
from orgs.models import Organization

User = get_user_model()


@pytest.fixture
def newcomer(db):
    return User.objects.create_user(
        username="founder@example.com",
        email="founder@example.com",
        password="examplepass",
    )


@pytest.mark.django_db
def test_create_organization_makes_caller_admin(newcomer, organization):
    client = APIClient()
    client.force_authenticate(newcomer)

    response = client.post(
        reverse("organization-create"),
        {"name": "Elite Cars", "contact_email": "hello@elite2.test"},
        format="json",
    )

    assert response.status_code == 201
    assert response.data["slug"] == "elite-cars-2"
    created = Organization.objects.get(pk=response.data["id"])
    membership = Membership.objects.get(user=newcomer, organization=created)
    assert membership.role == Membership.ADMIN
    newcomer.refresh_from_db()
    assert newcomer.active_organization == created


@pytest.mark.django_db
def test_members_can_read_current_organization(dispatcher_user, organization):
    client = APIClient()
    client.force_authenticate(dispatcher_user)

    response = client.get(reverse("organization-detail"))

    assert response.status_code == 200
    assert response.data["name"] == "Elite Cars"
    assert response.data["stripe_onboarding_complete"] is False


@pytest.mark.django_db
def test_only_admin_can_update_organization(auth_client, dispatcher_user, organization):
    url = reverse("organization-detail")
    dispatcher = APIClient()
    dispatcher.force_authenticate(dispatcher_user)

    refused = dispatcher.patch(url, {"phone": "+441234567890"}, format="json")
    updated = auth_client.patch(
        url, {"phone": "+441234567890", "slug": "hijack", "stripe_onboarding_complete": True}, format="json"
    )

    assert refused.status_code == 403
    assert updated.status_code == 200
    organization.refresh_from_db()
    assert organization.phone == "+441234567890"
    assert organization.slug == "elite-cars"
    assert organization.stripe_onboarding_complete is False


@pytest.mark.django_db
def test_user_without_organization_gets_no_tenant(newcomer):
    client = APIClient()
    client.force_authenticate(newcomer)

    response = client.get(reverse("organization-detail"))

    assert response.status_code == 403
    assert response.data["code"] == "no_tenant"
