from __future__ import annotations

import logging
import re

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from accounts.tenancy import TenantContext
from bookings.services import ledger
from core.exceptions import AccountingNotConnected, ProviderUnavailable
from invoicing.models import XeroContact

from . import oauth, xero

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 20
_UNSAFE_QUERY_CHARS = re.compile(r"[^a-zA-Z0-9\s\-_.,']")


def _default_phone(contact: dict) -> str:
    for phone in contact.get("Phones") or []:
        if phone.get("PhoneType") == "DEFAULT":
            return phone.get("PhoneNumber") or ""
    return ""


def _connection(tenant: TenantContext):
    connection = oauth.get_connection(tenant.organization)
    if connection is None:
        raise AccountingNotConnected()
    return connection


def sync_contacts(tenant: TenantContext) -> int:
    """Replace the cached customer contacts with Xero's current list."""
    ledger.require_staff(tenant)
    connection = _connection(tenant)
    try:
        response = oauth.authorized_request(
            connection, "GET", "/Contacts", params={"where": "IsCustomer==true"}
        )
    except xero.XeroError as exc:
        logger.warning("Xero contact sync failed for organization %s: %s", tenant.organization_id, exc)
        raise ProviderUnavailable()

    contacts = response.get("Contacts") or []
    now = timezone.now()
    with transaction.atomic():
        XeroContact.objects.filter(organization=tenant.organization).delete()
        XeroContact.objects.bulk_create(
            [
                XeroContact(
                    organization=tenant.organization,
                    xero_contact_id=contact["ContactID"],
                    name=contact.get("Name") or "",
                    email=contact.get("EmailAddress") or "",
                    phone=_default_phone(contact),
                    account_number=contact.get("AccountNumber") or "",
                    is_customer=contact.get("IsCustomer", True),
                    cached_at=now,
                )
                for contact in contacts
                if contact.get("ContactID")
            ]
        )
    logger.info("Synced %s Xero contacts for organization %s", len(contacts), tenant.organization_id)
    return len(contacts)


def search_cached_contacts(tenant: TenantContext, query: str = ""):
    ledger.require_staff(tenant)
    queryset = XeroContact.objects.filter(organization=tenant.organization)
    if query:
        queryset = queryset.filter(
            Q(name__icontains=query) | Q(email__icontains=query) | Q(account_number__icontains=query)
        )
    return queryset[:SEARCH_LIMIT]


def search_xero_contacts(tenant: TenantContext, query: str) -> list[dict]:
    """Search Xero directly by name for results fresher than the cache."""
    ledger.require_staff(tenant)
    sanitized = _UNSAFE_QUERY_CHARS.sub("", query or "").strip()[:100]
    if not sanitized:
        return []
    connection = _connection(tenant)
    try:
        response = oauth.authorized_request(
            connection,
            "GET",
            "/Contacts",
            params={"where": f'Name.Contains("{sanitized}") AND IsCustomer==true'},
        )
    except xero.XeroError as exc:
        logger.warning("Xero contact search failed: %s", exc)
        raise ProviderUnavailable()
    return [
        {
            "xero_contact_id": contact.get("ContactID", ""),
            "name": contact.get("Name", ""),
            "email": contact.get("EmailAddress") or "",
            "phone": _default_phone(contact),
        }
        for contact in (response.get("Contacts") or [])[:SEARCH_LIMIT]
    ]
