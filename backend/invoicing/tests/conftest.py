from datetime import timedelta
from types import SimpleNamespace

import pytest
from django.utils import timezone

from bookings.models import Booking
from invoicing.models import AccountingConnection


class FakeXeroApi:
    """Stands in for ``xero.api_request``; queued responses are returned (or raised) in order."""

    def __init__(self):
        self.calls = []
        self.queued = []
        self.created = 0

    def queue(self, *responses):
        self.queued.extend(responses)

    def __call__(self, method, path, *, access_token, tenant_id, json=None, params=None):
        self.calls.append(
            SimpleNamespace(
                method=method,
                path=path,
                access_token=access_token,
                tenant_id=tenant_id,
                json=json,
                params=params,
            )
        )
        if self.queued:
            response = self.queued.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        if method == "POST" and path == "/Invoices":
            self.created += 1
            return {
                "Invoices": [
                    {
                        "InvoiceID": f"inv-{self.created}",
                        "InvoiceNumber": f"INV-{self.created:04d}",
                        "Status": "DRAFT",
                    }
                ]
            }
        return {}

    @property
    def invoice_posts(self):
        return [call for call in self.calls if call.method == "POST" and call.path == "/Invoices"]


@pytest.fixture
def xero_connection(organization, admin_user):
    return AccountingConnection.objects.create(
        organization=organization,
        xero_tenant_id="xero-tenant-1",
        xero_tenant_name="Elite Cars Ltd",
        access_token="access-1",
        refresh_token="refresh-1",
        expires_at=timezone.now() + timedelta(minutes=30),
        connected_by=admin_user,
    )


@pytest.fixture
def fake_xero(monkeypatch):
    api = FakeXeroApi()
    monkeypatch.setattr("invoicing.services.xero.api_request", api)
    return api


@pytest.fixture
def completed_booking(make_booking):
    def _make(**overrides):
        overrides.setdefault("status", Booking.COMPLETED)
        return make_booking(**overrides)

    return _make
