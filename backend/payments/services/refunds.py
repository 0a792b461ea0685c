from __future__ import annotations

import logging

import stripe

from accounts.models import Membership
from accounts.tenancy import TenantContext
from bookings.services import ledger
from core.exceptions import PaymentNotAllowed, ProviderUnavailable, RoleNotPermitted
from payments.models import Payment

from . import stripe_gateway
from .connect import get_ready_account
from .reconciliation import ReconciliationResult, record_refund

logger = logging.getLogger(__name__)

STRIPE_REFUND_REASONS = {"duplicate", "fraudulent"}


def refundable_payment(booking) -> Payment | None:
    for payment in booking.payments.filter(status=Payment.SUCCEEDED).exclude(stripe_payment_intent=""):
        if payment.remaining_cents > 0:
            return payment
    return None


def issue_refund(
    tenant: TenantContext,
    booking_id,
    amount_cents: int | None = None,
    reason: str = "",
) -> ReconciliationResult:
    """Refund all or part of the booking's latest settled payment."""
    if tenant.role != Membership.ADMIN:
        raise RoleNotPermitted()
    booking = ledger.get_booking(tenant, booking_id)
    payment = refundable_payment(booking)
    if payment is None:
        raise PaymentNotAllowed("No refundable payment for this booking.")

    amount = payment.remaining_cents if amount_cents is None else amount_cents
    if amount <= 0 or amount > payment.remaining_cents:
        raise PaymentNotAllowed(
            f"Refund amount must be between 1 and {payment.remaining_cents}."
        )
    account = get_ready_account(tenant.organization)
    refunded_before = payment.refunded_amount_cents
    stripe_reason = reason if reason in STRIPE_REFUND_REASONS else "requested_by_customer"

    try:
        refund = stripe_gateway.create_refund(
            payment_intent=payment.stripe_payment_intent,
            amount_cents=amount,
            reason=stripe_reason,
            account_id=account.account_id,
        )
    except stripe.StripeError as exc:
        logger.exception("Refund failed for payment %s: %s", payment.pk, exc)
        raise ProviderUnavailable("Failed to process refund.")

    logger.info("Refund %s of %s issued for booking %s", refund.id, amount, booking.pk)
    return record_refund(
        payment,
        refund_id=refund.id,
        amount_cents=amount,
        refunded_before=refunded_before,
        reason=reason,
        user=tenant.user,
    )
