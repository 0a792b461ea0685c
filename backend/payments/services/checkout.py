"""
Collecting money for bookings: widget checkout sessions and staff payment links.

Neither path marks anything as paid. The booking only moves to PAID when the
matching ``checkout.session.completed`` event is reconciled.
"""

from __future__ import annotations

import logging

import stripe
from django.db import transaction
from django.utils import timezone

from accounts.models import Membership
from accounts.tenancy import TenantContext
from bookings.models import Booking
from bookings.services import ledger
from core.exceptions import PaymentNotAllowed, ProviderUnavailable, RoleNotPermitted
from payments.models import Payment, PaymentLink

from . import stripe_gateway
from .connect import get_ready_account
from .reconciliation import PENDING_PAYMENT_MARKER

logger = logging.getLogger(__name__)

PAYMENT_LINK_MARKER = "[Payment Link Sent]"


def start_widget_checkout(organization, *, success_url: str, cancel_url: str, **fields):
    """
    Create a booking from the public widget and open a checkout session for it.

    Returns ``(checkout_url, session_id, booking)``.
    """
    account = get_ready_account(organization)

    notes = fields.pop("notes", "") or ""
    fields["notes"] = f"{notes} {PENDING_PAYMENT_MARKER}".strip()
    booking = ledger.create_widget_booking(organization, **fields)
    ledger.mark_payment_status(booking, Booking.PAYMENT_PROCESSING)

    try:
        session = stripe_gateway.create_checkout_session(
            booking=booking,
            account_id=account.account_id,
            success_url=success_url,
            cancel_url=cancel_url,
        )
    except stripe.StripeError as exc:
        logger.exception("Checkout session failed for booking %s: %s", booking.pk, exc)
        ledger.mark_payment_status(booking, Booking.PAYMENT_FAILED)
        raise ProviderUnavailable("Failed to create checkout session.")

    with transaction.atomic():
        booking.stripe_checkout_session = session.id
        booking.save(update_fields=["stripe_checkout_session", "updated_at"])
        Payment.objects.create(
            organization=organization,
            booking=booking,
            stripe_checkout_session=session.id,
            amount_cents=booking.price_cents,
            currency=booking.currency,
            status=Payment.PENDING,
            source=Payment.SOURCE_WIDGET,
            customer_email=booking.customer_email,
        )
    logger.info("Checkout session %s opened for booking %s", session.id, booking.pk)
    return session.url, session.id, booking


def list_payments(tenant: TenantContext, booking_id=None):
    ledger.require_staff(tenant)
    queryset = Payment.objects.filter(organization=tenant.organization).select_related("booking")
    if booking_id is not None:
        queryset = queryset.filter(booking_id=booking_id)
    return queryset


def list_payment_links(tenant: TenantContext, booking_id=None):
    ledger.require_staff(tenant)
    queryset = PaymentLink.objects.filter(organization=tenant.organization)
    if booking_id is not None:
        queryset = queryset.filter(booking_id=booking_id)
    return queryset


def create_payment_link(tenant: TenantContext, booking_id) -> PaymentLink:
    ledger.require_staff(tenant)
    booking = ledger.get_booking(tenant, booking_id)
    if booking.payment_status == Booking.PAYMENT_PAID:
        raise PaymentNotAllowed("Booking is already paid.")
    if booking.price_cents <= 0:
        raise PaymentNotAllowed("Booking has no price to collect.")
    account = get_ready_account(tenant.organization)

    try:
        stripe_link = stripe_gateway.create_payment_link(booking=booking, account_id=account.account_id)
    except stripe.StripeError as exc:
        logger.exception("Payment link failed for booking %s: %s", booking.pk, exc)
        raise ProviderUnavailable("Failed to create payment link.")

    link = PaymentLink.objects.create(
        organization=tenant.organization,
        booking=booking,
        stripe_payment_link_id=stripe_link.id,
        url=stripe_link.url,
        amount_cents=booking.price_cents,
        currency=booking.currency,
        created_by=tenant.user,
    )
    if PAYMENT_LINK_MARKER not in (booking.notes or ""):
        booking.notes = f"{booking.notes} {PAYMENT_LINK_MARKER}".strip()
        booking.save(update_fields=["notes", "updated_at"])
    return link


def deactivate_payment_link(tenant: TenantContext, link_id) -> PaymentLink:
    if tenant.role != Membership.ADMIN:
        raise RoleNotPermitted()
    link = PaymentLink.objects.filter(organization=tenant.organization, pk=link_id).first()
    if link is None:
        raise PaymentNotAllowed("Payment link not found.")
    if not link.active:
        return link
    account = get_ready_account(tenant.organization)
    try:
        stripe_gateway.deactivate_payment_link(
            link_id=link.stripe_payment_link_id, account_id=account.account_id
        )
    except stripe.StripeError as exc:
        logger.exception("Failed to deactivate payment link %s: %s", link.pk, exc)
        raise ProviderUnavailable("Failed to deactivate payment link.")
    link.active = False
    link.deactivated_at = timezone.now()
    link.save(update_fields=["active", "deactivated_at"])
    return link
