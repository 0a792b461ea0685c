from __future__ import annotations

import logging
from datetime import datetime, timezone

import stripe

from accounts.models import Membership
from accounts.tenancy import TenantContext
from core.exceptions import PaymentsNotConfigured, ProviderUnavailable, RoleNotPermitted
from orgs.models import Organization, StripeAccount, derive_account_status

from . import stripe_gateway

logger = logging.getLogger(__name__)


def get_account(organization: Organization) -> StripeAccount | None:
    try:
        return organization.stripe_account
    except StripeAccount.DoesNotExist:
        return None


def get_ready_account(organization: Organization) -> StripeAccount:
    account = get_account(organization)
    if account is None or not account.charges_enabled:
        raise PaymentsNotConfigured()
    return account


def sync_account_from_stripe(local_account: StripeAccount, stripe_account) -> None:
    changed_fields: list[str] = []
    for field in ("livemode", "charges_enabled", "payouts_enabled", "details_submitted"):
        value = bool(getattr(stripe_account, field, False))
        if getattr(local_account, field) != value:
            setattr(local_account, field, value)
            changed_fields.append(field)

    default_currency = getattr(stripe_account, "default_currency", "") or ""
    if local_account.default_currency != default_currency:
        local_account.default_currency = default_currency
        changed_fields.append("default_currency")

    email = getattr(stripe_account, "email", "") or ""
    if local_account.account_email != email:
        local_account.account_email = email
        changed_fields.append("account_email")

    requirements = getattr(stripe_account, "requirements", None)
    if requirements is not None:
        currently_due = list(getattr(requirements, "currently_due", None) or [])
        if local_account.currently_due != currently_due:
            local_account.currently_due = currently_due
            changed_fields.append("currently_due")

    account_status = derive_account_status(
        charges_enabled=local_account.charges_enabled,
        details_submitted=local_account.details_submitted,
    )
    if local_account.account_status != account_status:
        local_account.account_status = account_status
        changed_fields.append("account_status")

    if changed_fields:
        changed_fields.append("updated_at")
        local_account.save(update_fields=changed_fields)

    organization = local_account.organization
    if organization.stripe_onboarding_complete != local_account.is_ready:
        organization.stripe_onboarding_complete = local_account.is_ready
        organization.save(update_fields=["stripe_onboarding_complete"])


def _require_admin(tenant: TenantContext) -> None:
    if tenant.role != Membership.ADMIN:
        raise RoleNotPermitted()


def create_onboarding_link(tenant: TenantContext) -> dict:
    """Create (or refresh) an onboarding link, creating the Express account on first use."""
    _require_admin(tenant)
    organization = tenant.organization
    account = get_account(organization)
    try:
        if account is None:
            stripe_account = stripe_gateway.create_connect_account(email=organization.contact_email)
            account = StripeAccount.objects.create(
                organization=organization,
                account_id=stripe_account.id,
                livemode=bool(stripe_account.livemode),
                charges_enabled=bool(stripe_account.charges_enabled),
                payouts_enabled=bool(stripe_account.payouts_enabled),
                details_submitted=bool(stripe_account.details_submitted),
                default_currency=stripe_account.default_currency or "",
                account_email=stripe_account.email or "",
                created_by=tenant.user,
            )
            logger.info("Stripe account %s created for organization %s", account.account_id, organization.pk)
        else:
            stripe_account = stripe_gateway.retrieve_account(account.account_id)
            if stripe_account is not None:
                sync_account_from_stripe(account, stripe_account)
        link = stripe_gateway.create_account_link(account.account_id)
    except stripe.StripeError as exc:
        logger.exception("Failed to create Stripe onboarding link: %s", exc)
        raise ProviderUnavailable(str(exc))

    expires_at = datetime.fromtimestamp(link.expires_at, tz=timezone.utc)
    account.onboarding_link_url = link.url
    account.onboarding_expires_at = expires_at
    account.save(update_fields=["onboarding_link_url", "onboarding_expires_at", "updated_at"])
    return {"url": link.url, "expires_at": expires_at}


def refresh_account_status(tenant: TenantContext) -> StripeAccount | None:
    account = get_account(tenant.organization)
    if account is None:
        return None
    try:
        stripe_account = stripe_gateway.retrieve_account(account.account_id)
        if stripe_account is not None:
            sync_account_from_stripe(account, stripe_account)
    except stripe.StripeError as exc:
        logger.warning("Failed to refresh Stripe account %s: %s", account.account_id, exc)
    return account
