"""
Xero connection lifecycle for an organization.

disconnected -> authorizing (state issued) -> connected -> expired -> disconnected.

The authorization state is a random token bound to the initiating organization
and user. Only its hash is stored, it lives for ``OAUTH_STATE_TTL_MINUTES`` and
is consumed with a conditional update so a replayed callback cannot succeed.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from accounts.models import Membership
from accounts.tenancy import TenantContext
from core.exceptions import AccountingNotConnected, InvalidOAuthState, RoleNotPermitted
from invoicing.models import AccountingConnection, OAuthState, XeroContact

from . import xero

logger = logging.getLogger(__name__)

REFRESH_BUFFER = timedelta(minutes=5)


def _hash_state(state: str) -> str:
    return hashlib.sha256(state.encode("utf-8")).hexdigest()


def _require_admin(tenant: TenantContext) -> None:
    if tenant.role != Membership.ADMIN:
        raise RoleNotPermitted()


def get_connection(organization) -> AccountingConnection | None:
    return AccountingConnection.objects.filter(organization=organization).first()


def start_authorization(tenant: TenantContext) -> str:
    """Issue a single-use state for the caller and return the Xero consent URL."""
    _require_admin(tenant)
    if not settings.XERO_CLIENT_ID or not settings.XERO_REDIRECT_URI:
        raise AccountingNotConnected(
            "Xero OAuth not configured. Set XERO_CLIENT_ID and XERO_REDIRECT_URI."
        )
    state = secrets.token_hex(32)
    OAuthState.objects.create(
        state_hash=_hash_state(state),
        organization=tenant.organization,
        user=tenant.user,
        expires_at=timezone.now() + timedelta(minutes=settings.OAUTH_STATE_TTL_MINUTES),
    )
    return xero.build_authorize_url(state)


def consume_state(state: str) -> OAuthState:
    now = timezone.now()
    state_hash = _hash_state(state or "")
    claimed = OAuthState.objects.filter(
        state_hash=state_hash,
        used_at__isnull=True,
        expires_at__gt=now,
    ).update(used_at=now)
    if claimed != 1:
        raise InvalidOAuthState()
    return OAuthState.objects.select_related("organization", "user").get(state_hash=state_hash)


def complete_authorization(state: str, code: str) -> AccountingConnection:
    """
    Finish the consent flow: consume the state, exchange the code and store the connection.

    The state is consumed before the code exchange, so a failed exchange still
    burns it and the user has to start again.
    """
    oauth_state = consume_state(state)
    tokens = xero.exchange_code(code)
    tenants = xero.list_tenants(tokens.access_token)
    if not tenants:
        raise xero.XeroError(
            "No Xero organizations found. Please ensure you have access to at least one organization."
        )
    xero_tenant = tenants[0]

    connection, _ = AccountingConnection.objects.update_or_create(
        organization=oauth_state.organization,
        defaults={
            "xero_tenant_id": xero_tenant["tenant_id"],
            "xero_tenant_name": xero_tenant["tenant_name"],
            "access_token": tokens.access_token,
            "refresh_token": tokens.refresh_token,
            "expires_at": timezone.now() + timedelta(seconds=tokens.expires_in),
            "scope": tokens.scope,
            "connected_at": timezone.now(),
            "connected_by": oauth_state.user,
        },
    )
    logger.info(
        "Xero organization %s connected for organization %s",
        connection.xero_tenant_id,
        connection.organization_id,
    )
    return connection


def refresh_connection(connection: AccountingConnection) -> AccountingConnection:
    tokens = xero.refresh_tokens(connection.refresh_token)
    connection.access_token = tokens.access_token
    connection.refresh_token = tokens.refresh_token
    connection.expires_at = timezone.now() + timedelta(seconds=tokens.expires_in)
    connection.save(update_fields=["access_token", "refresh_token", "expires_at", "updated_at"])
    return connection


def get_valid_access_token(connection: AccountingConnection) -> str:
    if connection.expires_at <= timezone.now() + REFRESH_BUFFER:
        try:
            refresh_connection(connection)
        except xero.XeroError as exc:
            logger.warning(
                "Xero token refresh failed for organization %s: %s", connection.organization_id, exc
            )
            raise AccountingNotConnected()
    return connection.access_token


def authorized_request(connection: AccountingConnection, method: str, path: str, **kwargs) -> dict:
    """Call the accounting API, refreshing once if Xero rejects a token it had not yet expired."""
    access_token = get_valid_access_token(connection)
    try:
        return xero.api_request(
            method, path, access_token=access_token, tenant_id=connection.xero_tenant_id, **kwargs
        )
    except xero.XeroAuthError:
        try:
            refresh_connection(connection)
        except xero.XeroError as exc:
            logger.warning("Xero token refresh after 401 failed: %s", exc)
            raise AccountingNotConnected()
        return xero.api_request(
            method,
            path,
            access_token=connection.access_token,
            tenant_id=connection.xero_tenant_id,
            **kwargs,
        )


def disconnect(tenant: TenantContext) -> None:
    """Forget the tokens and cached contacts; invoices already created are kept."""
    _require_admin(tenant)
    with transaction.atomic():
        AccountingConnection.objects.filter(organization=tenant.organization).delete()
        XeroContact.objects.filter(organization=tenant.organization).delete()
    logger.info("Xero disconnected for organization %s", tenant.organization_id)


def connection_status(tenant: TenantContext) -> dict:
    connection = get_connection(tenant.organization)
    if connection is None:
        return {
            "connected": False,
            "tenant_name": None,
            "connected_at": None,
            "expires_at": None,
            "is_expired": False,
        }
    return {
        "connected": True,
        "tenant_name": connection.xero_tenant_name,
        "connected_at": connection.connected_at,
        "expires_at": connection.expires_at,
        "is_expired": connection.is_expired,
    }
