"""
Thin HTTP layer over Xero's identity and accounting endpoints.

Nothing here touches the database; token storage and refresh policy live in
``invoicing.services.oauth``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import urlencode

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://login.xero.com/identity/connect/authorize"
TOKEN_URL = "https://identity.xero.com/connect/token"
CONNECTIONS_URL = "https://api.xero.com/connections"
API_BASE = "https://api.xero.com/api.xro/2.0"
INVOICE_DEEP_LINK = "https://go.xero.com/AccountsReceivable/View.aspx?InvoiceID={invoice_id}"

SCOPES = " ".join(
    [
        "openid",
        "profile",
        "email",
        "accounting.transactions",
        "accounting.contacts.read",
        "accounting.settings.read",
        "offline_access",
    ]
)


class XeroError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class XeroAuthError(XeroError):
    """Xero rejected the access token (HTTP 401)."""


@dataclass
class TokenSet:
    access_token: str
    refresh_token: str
    expires_in: int
    scope: str = ""


def _timeout() -> int:
    return getattr(settings, "XERO_REQUEST_TIMEOUT", 20)


def _json_body(response, context: str):
    try:
        return response.json()
    except ValueError:
        logger.warning("%s returned a non-JSON body (%s)", context, response.status_code)
        raise XeroError(
            f"{context} returned an unreadable response", status_code=response.status_code
        )


def build_authorize_url(state: str) -> str:
    params = {
        "response_type": "code",
        "client_id": settings.XERO_CLIENT_ID,
        "redirect_uri": settings.XERO_REDIRECT_URI,
        "scope": SCOPES,
        "state": state,
    }
    return f"{AUTHORIZE_URL}?{urlencode(params)}"


def _token_request(data: dict) -> TokenSet:
    try:
        response = requests.post(
            TOKEN_URL,
            data=data,
            auth=(settings.XERO_CLIENT_ID, settings.XERO_CLIENT_SECRET),
            timeout=_timeout(),
        )
    except requests.RequestException as exc:
        raise XeroError(f"Token request failed: {exc}")
    if not response.ok:
        logger.warning("Xero token request failed (%s): %s", response.status_code, response.text)
        raise XeroError("Token exchange failed", status_code=response.status_code)
    payload = _json_body(response, "Xero token endpoint")
    try:
        return TokenSet(
            access_token=payload["access_token"],
            refresh_token=payload["refresh_token"],
            expires_in=int(payload.get("expires_in", 1800)),
            scope=payload.get("scope", ""),
        )
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise XeroError(f"Token response was missing fields: {exc}", status_code=response.status_code)


def exchange_code(code: str) -> TokenSet:
    return _token_request(
        {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": settings.XERO_REDIRECT_URI,
        }
    )


def refresh_tokens(refresh_token: str) -> TokenSet:
    return _token_request({"grant_type": "refresh_token", "refresh_token": refresh_token})


def list_tenants(access_token: str) -> list[dict]:
    try:
        response = requests.get(
            CONNECTIONS_URL,
            headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
            timeout=_timeout(),
        )
    except requests.RequestException as exc:
        raise XeroError(f"Failed to list Xero organizations: {exc}")
    if not response.ok:
        raise XeroError("Failed to list Xero organizations", status_code=response.status_code)
    return [
        {"tenant_id": item.get("tenantId", ""), "tenant_name": item.get("tenantName", "")}
        for item in _json_body(response, "Xero connections endpoint")
        if item.get("tenantType", "ORGANISATION") == "ORGANISATION"
    ]


def _error_message(response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}
    elements = payload.get("Elements") or []
    for element in elements:
        for error in element.get("ValidationErrors") or []:
            if error.get("Message"):
                return error["Message"]
    return payload.get("Message") or payload.get("message") or f"Xero API error: {response.status_code}"


def api_request(
    method: str,
    path: str,
    *,
    access_token: str,
    tenant_id: str,
    json: dict | None = None,
    params: dict | None = None,
) -> dict:
    try:
        response = requests.request(
            method,
            f"{API_BASE}{path}",
            headers={
                "Authorization": f"Bearer {access_token}",
                "xero-tenant-id": tenant_id,
                "Accept": "application/json",
            },
            json=json,
            params=params,
            timeout=_timeout(),
        )
    except requests.RequestException as exc:
        raise XeroError(str(exc) or "Network error")

    if response.status_code == 401:
        raise XeroAuthError("Xero authentication failed. Please reconnect.", status_code=401)
    if response.status_code == 429:
        raise XeroError("Xero rate limit exceeded. Please try again later.", status_code=429)
    if not response.ok:
        raise XeroError(_error_message(response), status_code=response.status_code)
    return _json_body(response, "Xero API")
