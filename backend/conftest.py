from datetime import timedelta
from types import SimpleNamespace

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.models import Membership, User
from accounts.tenancy import resolve_tenant
from bookings.models import Booking, Driver
from messaging.models import WhatsAppConfig
from orgs.models import Organization, StripeAccount


class FakeTwilioClient:
    """Stands in for ``twilio.rest.Client``; records every ``messages.create`` call."""

    def __init__(self):
        self.sent = []
        self.fail_with = None
        self.messages = self

    def create(self, **params):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(params)
        return SimpleNamespace(sid=f"SM{len(self.sent):032d}")


@pytest.fixture
def organization(db):
    return Organization.objects.create(
        name="Elite Cars",
        slug="elite-cars",
        contact_email="ops@elitecars.test",
    )


@pytest.fixture
def other_organization(db):
    return Organization.objects.create(name="Rival Cabs", slug="rival-cabs")


@pytest.fixture
def make_member(db):
    def _make(organization, role=Membership.ADMIN, username=None, driver=None):
        username = username or f"{role.lower()}@{organization.slug}.test"
        user = User.objects.create_user(
            username=username,
            email=username,
            password="examplepass",
        )
        Membership.objects.create(
            user=user,
            organization=organization,
            role=role,
            driver=driver,
        )
        user.active_organization = organization
        user.save(update_fields=["active_organization"])
        return user

    return _make


@pytest.fixture
def admin_user(make_member, organization):
    return make_member(organization, Membership.ADMIN)


@pytest.fixture
def dispatcher_user(make_member, organization):
    return make_member(organization, Membership.DISPATCHER)


@pytest.fixture
def tenant(admin_user):
    return resolve_tenant(admin_user)


@pytest.fixture
def auth_client(admin_user):
    client = APIClient()
    client.force_authenticate(admin_user)
    return client


@pytest.fixture
def driver(organization):
    return Driver.objects.create(
        organization=organization,
        name="Dan Driver",
        phone="+447700900001",
        vehicle="Mercedes E-Class",
        vehicle_colour="Black",
        plate="EL1 TE",
    )


@pytest.fixture
def make_booking(organization):
    def _make(org=None, **overrides):
        fields = {
            "customer_name": "Carla Customer",
            "customer_phone": "+447700900100",
            "customer_email": "carla@example.com",
            "pickup_location": "Heathrow Terminal 5",
            "dropoff_location": "The Savoy, London",
            "pickup_time": timezone.now() + timedelta(days=2),
            "price_cents": 5000,
        }
        fields.update(overrides)
        return Booking.objects.create(organization=org or organization, **fields)

    return _make


@pytest.fixture
def whatsapp_config(organization):
    return WhatsAppConfig.objects.create(
        organization=organization,
        account_sid="AC" + "1" * 32,
        auth_token="secret-token-1234",
        whatsapp_number="+447700900999",
    )


@pytest.fixture
def fake_twilio(monkeypatch):
    client = FakeTwilioClient()
    monkeypatch.setattr("messaging.services.gateway.build_client", lambda config: client)
    return client


@pytest.fixture
def stripe_account(organization):
    organization.stripe_onboarding_complete = True
    organization.save(update_fields=["stripe_onboarding_complete"])
    return StripeAccount.objects.create(
        organization=organization,
        account_id="acct_elite",
        account_status=StripeAccount.STATUS_ACTIVE,
        charges_enabled=True,
        payouts_enabled=True,
        details_submitted=True,
    )
