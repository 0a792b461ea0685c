from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import pytest
from django.urls import reverse
from django.utils import timezone
from rest_framework.test import APIClient

from core.exceptions import AccountingNotConnected, InvalidOAuthState
from invoicing.models import AccountingConnection, Invoice, OAuthState, XeroContact
from invoicing.services import oauth, xero
from invoicing.services.xero import TokenSet, XeroAuthError, XeroError


@pytest.fixture
def fake_identity(monkeypatch):
    calls = {"exchange": [], "refresh": []}

    def exchange_code(code):
        calls["exchange"].append(code)
        return TokenSet(access_token="access-new", refresh_token="refresh-new", expires_in=1800)

    def refresh_tokens(refresh_token):
        calls["refresh"].append(refresh_token)
        return TokenSet(access_token="access-refreshed", refresh_token="refresh-rotated", expires_in=1800)

    monkeypatch.setattr("invoicing.services.xero.exchange_code", exchange_code)
    monkeypatch.setattr("invoicing.services.xero.refresh_tokens", refresh_tokens)
    monkeypatch.setattr(
        "invoicing.services.xero.list_tenants",
        lambda access_token: [{"tenant_id": "xero-tenant-9", "tenant_name": "Elite Cars Ltd"}],
    )
    return calls


def _state_from(url):
    return parse_qs(urlparse(url).query)["state"][0]


@pytest.mark.django_db
def test_authorization_url_carries_single_use_state(tenant):
    url = oauth.start_authorization(tenant)

    query = parse_qs(urlparse(url).query)
    assert url.startswith("https://login.xero.com/identity/connect/authorize?")
    assert query["client_id"] == ["xero-client"]
    assert query["redirect_uri"] == ["https://api.dispatch.test/api/xero/callback/"]
    assert "offline_access" in query["scope"][0]
    stored = OAuthState.objects.get()
    assert stored.state_hash != query["state"][0]
    assert len(stored.state_hash) == 64
    assert stored.organization == tenant.organization


@pytest.mark.django_db
def test_state_cannot_be_replayed(tenant, fake_identity):
    state = _state_from(oauth.start_authorization(tenant))

    connection = oauth.complete_authorization(state, "code-1")

    assert connection.xero_tenant_id == "xero-tenant-9"
    assert connection.access_token == "access-new"
    assert connection.connected_by == tenant.user
    with pytest.raises(InvalidOAuthState):
        oauth.complete_authorization(state, "code-1")
    assert fake_identity["exchange"] == ["code-1"]
    assert AccountingConnection.objects.count() == 1


@pytest.mark.django_db
def test_expired_state_is_rejected(tenant, fake_identity):
    state = _state_from(oauth.start_authorization(tenant))
    OAuthState.objects.update(expires_at=timezone.now() - timedelta(seconds=1))

    with pytest.raises(InvalidOAuthState):
        oauth.complete_authorization(state, "code-1")
    assert fake_identity["exchange"] == []


@pytest.mark.django_db
def test_reconnect_overwrites_existing_connection(tenant, xero_connection, fake_identity):
    state = _state_from(oauth.start_authorization(tenant))

    oauth.complete_authorization(state, "code-2")

    connection = AccountingConnection.objects.get()
    assert connection.pk == xero_connection.pk
    assert connection.xero_tenant_id == "xero-tenant-9"
    assert connection.refresh_token == "refresh-new"


@pytest.mark.django_db
def test_token_near_expiry_is_refreshed(xero_connection, fake_identity):
    xero_connection.expires_at = timezone.now() + timedelta(minutes=2)
    xero_connection.save()

    token = oauth.get_valid_access_token(xero_connection)

    assert token == "access-refreshed"
    assert fake_identity["refresh"] == ["refresh-1"]
    xero_connection.refresh_from_db()
    assert xero_connection.refresh_token == "refresh-rotated"
    assert xero_connection.expires_at > timezone.now() + timedelta(minutes=25)


@pytest.mark.django_db
def test_fresh_token_is_used_as_is(xero_connection, fake_identity):
    assert oauth.get_valid_access_token(xero_connection) == "access-1"
    assert fake_identity["refresh"] == []


@pytest.mark.django_db
def test_failed_refresh_means_not_connected(monkeypatch, xero_connection):
    def refuse(refresh_token):
        raise XeroError("Token exchange failed", status_code=400)

    monkeypatch.setattr("invoicing.services.xero.refresh_tokens", refuse)
    xero_connection.expires_at = timezone.now() - timedelta(minutes=1)
    xero_connection.save()

    with pytest.raises(AccountingNotConnected):
        oauth.get_valid_access_token(xero_connection)


@pytest.mark.django_db
def test_rejected_token_is_refreshed_and_retried_once(xero_connection, fake_identity, fake_xero):
    fake_xero.queue(XeroAuthError("Xero authentication failed. Please reconnect.", status_code=401))

    oauth.authorized_request(xero_connection, "GET", "/Organisation")

    assert [call.access_token for call in fake_xero.calls] == ["access-1", "access-refreshed"]
    assert fake_identity["refresh"] == ["refresh-1"]


@pytest.mark.django_db
def test_second_rejection_is_not_retried_again(xero_connection, fake_identity, fake_xero):
    rejected = XeroAuthError("Xero authentication failed. Please reconnect.", status_code=401)
    fake_xero.queue(rejected, rejected)

    with pytest.raises(XeroAuthError):
        oauth.authorized_request(xero_connection, "GET", "/Organisation")

    assert len(fake_xero.calls) == 2
    assert len(fake_identity["refresh"]) == 1


@pytest.mark.django_db
def test_callback_redirects_to_frontend(auth_client, fake_identity):
    url = auth_client.get(reverse("xero-connect")).data["url"]
    state = _state_from(url)
    client = APIClient()

    response = client.get(reverse("xero-callback"), {"code": "code-1", "state": state})
    replay = client.get(reverse("xero-callback"), {"code": "code-1", "state": state})

    assert response.status_code == 302
    assert response["Location"] == "https://app.dispatch.test?xero_connected=true"
    assert replay.status_code == 302
    assert "xero_error=" in replay["Location"]
    assert AccountingConnection.objects.count() == 1


@pytest.mark.django_db
def test_callback_reports_consent_error():
    response = APIClient().get(
        reverse("xero-callback"), {"error": "access_denied", "error_description": "User cancelled"}
    )

    assert response.status_code == 302
    assert response["Location"] == "https://app.dispatch.test?xero_error=User+cancelled"


class _RawResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self.text = text
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload


@pytest.mark.parametrize(
    "response",
    [
        _RawResponse(text="<html>Service Unavailable</html>"),
        _RawResponse(payload={"access_token": "access-only"}),
        _RawResponse(payload=["not", "a", "token"]),
    ],
)
def test_malformed_token_response_raises_xero_error(monkeypatch, response):
    monkeypatch.setattr("invoicing.services.xero.requests.post", lambda *args, **kwargs: response)

    with pytest.raises(XeroError) as excinfo:
        xero.exchange_code("code-1")

    assert excinfo.value.status_code == 200


def test_non_json_api_response_raises_xero_error(monkeypatch):
    monkeypatch.setattr(
        "invoicing.services.xero.requests.request",
        lambda *args, **kwargs: _RawResponse(text="<html>gateway</html>"),
    )

    with pytest.raises(XeroError) as excinfo:
        xero.api_request("GET", "/Organisation", access_token="access", tenant_id="xero-tenant-1")

    assert not isinstance(excinfo.value, XeroAuthError)
    assert excinfo.value.status_code == 200


@pytest.mark.django_db
def test_callback_with_malformed_token_response_redirects_with_error(auth_client, monkeypatch):
    state = _state_from(auth_client.get(reverse("xero-connect")).data["url"])
    monkeypatch.setattr(
        "invoicing.services.xero.requests.post",
        lambda *args, **kwargs: _RawResponse(payload={"token_type": "Bearer"}),
    )

    response = APIClient().get(reverse("xero-callback"), {"code": "code-1", "state": state})

    assert response.status_code == 302
    assert "xero_error=" in response["Location"]
    assert AccountingConnection.objects.count() == 0


@pytest.mark.django_db
def test_dispatcher_cannot_connect_xero(dispatcher_user):
    client = APIClient()
    client.force_authenticate(dispatcher_user)

    response = client.get(reverse("xero-connect"))

    assert response.status_code == 403
    assert OAuthState.objects.count() == 0


@pytest.mark.django_db
def test_disconnect_keeps_invoices(auth_client, organization, xero_connection):
    XeroContact.objects.create(organization=organization, xero_contact_id="contact-1", name="Acme")
    Invoice.objects.create(
        organization=organization,
        xero_invoice_id="inv-1",
        xero_contact_id="contact-1",
        contact_name="Acme",
        invoice_date=timezone.localdate(),
        due_date=timezone.localdate(),
    )

    response = auth_client.post(reverse("xero-disconnect"))

    assert response.status_code == 200
    assert response.data == {"success": True}
    assert AccountingConnection.objects.count() == 0
    assert XeroContact.objects.count() == 0
    assert Invoice.objects.count() == 1


@pytest.mark.django_db
def test_status_reports_connection(auth_client, xero_connection):
    response = auth_client.get(reverse("xero-status"))

    assert response.status_code == 200
    assert response.data["connected"] is True
    assert response.data["tenant_name"] == "Elite Cars Ltd"
    assert response.data["is_expired"] is False
    assert response.data["can_invoice"] is True


@pytest.mark.django_db
def test_status_when_disconnected(auth_client):
    response = auth_client.get(reverse("xero-status"))

    assert response.data["connected"] is False
    assert response.data["can_invoice"] is False
    assert response.data["reason"] == "Xero not connected"
