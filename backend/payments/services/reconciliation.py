"""
Reconcile Stripe webhook events against local payments and bookings.

Stripe delivers events at least once, in any order, and sometimes for
sessions or accounts this system never created. Every handler is therefore
idempotent, reports a missing local record as ``not_found`` instead of
raising, and never moves a succeeded or refunded payment backwards.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from django.db import transaction
from django.utils import timezone

from bookings.models import Booking
from bookings.services.ledger import mark_payment_status
from core.money import format_money
from orgs.models import StripeAccount, derive_account_status
from payments.models import Payment, PaymentLink, Refund

from .events import (
    AccountUpdated,
    ChargeRefunded,
    CheckoutSessionCompleted,
    CheckoutSessionExpired,
    StripeEvent,
    UnhandledEvent,
)

logger = logging.getLogger(__name__)

APPLIED = "applied"
NOOP = "noop"
NOT_FOUND = "not_found"
IGNORED = "ignored"

PENDING_PAYMENT_MARKER = "[Pending Payment]"
_PENDING_MARKER_PATTERN = re.compile(r"\s*\[Pending Payment\]\s*")
TERMINAL_PAYMENT_STATUSES = (Payment.SUCCEEDED, Payment.REFUNDED)


@dataclass
class ReconciliationResult:
    outcome: str
    detail: str = ""
    payment_id: int | None = None
    booking_id: int | None = None


def dispatch_event(event: StripeEvent) -> ReconciliationResult:
    if isinstance(event, CheckoutSessionCompleted):
        result = handle_checkout_completed(event)
    elif isinstance(event, CheckoutSessionExpired):
        result = handle_checkout_expired(event)
    elif isinstance(event, AccountUpdated):
        result = handle_account_updated(event)
    elif isinstance(event, ChargeRefunded):
        result = handle_charge_refunded(event)
    elif isinstance(event, UnhandledEvent):
        result = ReconciliationResult(outcome=IGNORED, detail=event.type)
    else:
        raise TypeError(f"Unsupported event: {event!r}")
    logger.info(
        "Stripe event %s (%s): %s %s",
        getattr(event, "event_id", ""),
        event.__class__.__name__,
        result.outcome,
        result.detail,
    )
    return result


def _clear_pending_marker(booking: Booking) -> None:
    cleaned = _PENDING_MARKER_PATTERN.sub(" ", booking.notes or "").strip()
    if cleaned != booking.notes:
        booking.notes = cleaned
        booking.save(update_fields=["notes", "updated_at"])


def _mark_booking_paid(booking: Booking) -> None:
    _clear_pending_marker(booking)
    mark_payment_status(booking, Booking.PAYMENT_PAID)


def handle_checkout_completed(event: CheckoutSessionCompleted) -> ReconciliationResult:
    with transaction.atomic():
        payment = (
            Payment.objects.select_for_update()
            .select_related("booking")
            .filter(stripe_checkout_session=event.session_id)
            .first()
        )
        if payment is None:
            return _complete_unrecorded_session(event)

        if payment.status in TERMINAL_PAYMENT_STATUSES:
            return ReconciliationResult(
                outcome=NOOP,
                detail="already processed",
                payment_id=payment.pk,
                booking_id=payment.booking_id,
            )

        booking = payment.booking
        if event.payment_status != "paid":
            payment.status = Payment.FAILED
            payment.failure_message = f"Payment status: {event.payment_status}"
            payment.save(update_fields=["status", "failure_message", "updated_at"])
            mark_payment_status(booking, Booking.PAYMENT_FAILED)
            return ReconciliationResult(
                outcome=APPLIED,
                detail="payment failed",
                payment_id=payment.pk,
                booking_id=booking.pk,
            )

        payment.status = Payment.SUCCEEDED
        payment.stripe_payment_intent = event.payment_intent or payment.stripe_payment_intent
        payment.customer_email = event.customer_email or payment.customer_email
        payment.failure_code = ""
        payment.failure_message = ""
        payment.save(
            update_fields=[
                "status",
                "stripe_payment_intent",
                "customer_email",
                "failure_code",
                "failure_message",
                "updated_at",
            ]
        )
        _mark_booking_paid(booking)
    return ReconciliationResult(
        outcome=APPLIED, detail="paid", payment_id=payment.pk, booking_id=booking.pk
    )


def _complete_unrecorded_session(event: CheckoutSessionCompleted) -> ReconciliationResult:
    """A paid session with no Payment row: bound to a booking directly or via a payment link."""
    source = Payment.SOURCE_WIDGET
    booking = (
        Booking.objects.select_for_update(of=("self",))
        .filter(stripe_checkout_session=event.session_id)
        .first()
    )
    if booking is None and event.payment_link:
        link = (
            PaymentLink.objects.select_related("booking")
            .filter(stripe_payment_link_id=event.payment_link)
            .first()
        )
        if link is not None:
            booking = link.booking
            source = Payment.SOURCE_LINK

    if booking is None or event.payment_status != "paid":
        logger.info("No payment record found for checkout session %s", event.session_id)
        return ReconciliationResult(outcome=NOT_FOUND, detail="payment not found")

    payment = Payment.objects.create(
        organization=booking.organization,
        booking=booking,
        stripe_checkout_session=event.session_id,
        stripe_payment_intent=event.payment_intent,
        amount_cents=event.amount_total if event.amount_total is not None else booking.price_cents,
        currency=event.currency or booking.currency,
        status=Payment.SUCCEEDED,
        source=source,
        customer_email=event.customer_email,
    )
    _mark_booking_paid(booking)
    return ReconciliationResult(
        outcome=APPLIED,
        detail=f"paid via {source}",
        payment_id=payment.pk,
        booking_id=booking.pk,
    )


def handle_checkout_expired(event: CheckoutSessionExpired) -> ReconciliationResult:
    with transaction.atomic():
        payment = (
            Payment.objects.select_for_update()
            .select_related("booking")
            .filter(stripe_checkout_session=event.session_id)
            .first()
        )
        if payment is None:
            return ReconciliationResult(outcome=NOT_FOUND, detail="payment not found")
        if payment.status in TERMINAL_PAYMENT_STATUSES:
            return ReconciliationResult(
                outcome=NOOP,
                detail="already succeeded",
                payment_id=payment.pk,
                booking_id=payment.booking_id,
            )
        if payment.status == Payment.FAILED and payment.failure_code == "expired":
            return ReconciliationResult(
                outcome=NOOP,
                detail="already expired",
                payment_id=payment.pk,
                booking_id=payment.booking_id,
            )

        payment.status = Payment.FAILED
        payment.failure_code = "expired"
        payment.failure_message = "Checkout session expired"
        payment.save(update_fields=["status", "failure_code", "failure_message", "updated_at"])
        mark_payment_status(payment.booking, Booking.PAYMENT_FAILED, note=" [Checkout Expired]")
    return ReconciliationResult(
        outcome=APPLIED, detail="expired", payment_id=payment.pk, booking_id=payment.booking_id
    )


def handle_account_updated(event: AccountUpdated) -> ReconciliationResult:
    account = (
        StripeAccount.objects.select_related("organization")
        .filter(account_id=event.account_id)
        .first()
    )
    if account is None:
        logger.info("No Stripe account found for %s", event.account_id)
        return ReconciliationResult(outcome=NOT_FOUND, detail="account not found")

    account.account_status = derive_account_status(
        charges_enabled=event.charges_enabled,
        details_submitted=event.details_submitted,
    )
    account.charges_enabled = event.charges_enabled
    account.payouts_enabled = event.payouts_enabled
    account.details_submitted = event.details_submitted
    account.currently_due = list(event.currently_due)
    account.last_webhook_received_at = timezone.now()
    account.last_webhook_error_at = None
    account.last_webhook_error_message = ""
    account.save()

    organization = account.organization
    onboarding_complete = account.is_ready
    if organization.stripe_onboarding_complete != onboarding_complete:
        organization.stripe_onboarding_complete = onboarding_complete
        organization.save(update_fields=["stripe_onboarding_complete"])
    return ReconciliationResult(outcome=APPLIED, detail=account.account_status)


def handle_charge_refunded(event: ChargeRefunded) -> ReconciliationResult:
    """
    Bring the payment up to the charge's cumulative ``amount_refunded``.

    Stripe's running total is authoritative, so the same money reported by a
    webhook and by ``record_refund`` is only counted once whichever lands first.
    """
    with transaction.atomic():
        payment = (
            Payment.objects.select_for_update()
            .select_related("booking")
            .filter(stripe_payment_intent=event.payment_intent)
            .order_by("-created_at", "-id")
            .first()
        )
        if payment is None:
            logger.info("No payment found for refunded intent %s", event.payment_intent)
            return ReconciliationResult(outcome=NOT_FOUND, detail="payment not found")

        known = set(
            Refund.objects.filter(
                stripe_refund_id__in=[line.refund_id for line in event.refunds]
            ).values_list("stripe_refund_id", flat=True)
        )
        for line in event.refunds:
            if line.refund_id not in known:
                _store_refund_line(payment, line.refund_id, line.amount_cents)

        target = min(max(payment.refunded_amount_cents, event.amount_refunded), payment.amount_cents)
        increase = target - payment.refunded_amount_cents
        if increase <= 0:
            return ReconciliationResult(
                outcome=NOOP,
                detail="refund already recorded",
                payment_id=payment.pk,
                booking_id=payment.booking_id,
            )
        if not event.refunds:
            # Refund list not expanded; hold the increase until the refund id is known.
            Refund.objects.create(
                payment=payment,
                stripe_refund_id=f"{event.charge_id}:{event.amount_refunded}",
                amount_cents=increase,
                provisional=True,
            )
        return _apply_refunded_total(payment, target)


def record_refund(
    payment: Payment,
    *,
    refund_id: str,
    amount_cents: int,
    refunded_before: int,
    reason: str = "",
    user=None,
) -> ReconciliationResult:
    """
    Record a refund this system issued.

    ``refunded_before`` is the refunded total the refund was issued against, so
    the expected total is ``refunded_before + amount_cents``. A webhook that
    already brought the payment to that total leaves nothing more to count.
    """
    with transaction.atomic():
        payment = Payment.objects.select_for_update().select_related("booking").get(pk=payment.pk)
        if Refund.objects.filter(stripe_refund_id=refund_id).exists():
            return ReconciliationResult(
                outcome=NOOP,
                detail="refund already recorded",
                payment_id=payment.pk,
                booking_id=payment.booking_id,
            )
        _store_refund_line(payment, refund_id, amount_cents, reason=reason, created_by=user)

        target = min(
            max(payment.refunded_amount_cents, refunded_before + amount_cents),
            payment.amount_cents,
        )
        if target <= payment.refunded_amount_cents:
            return ReconciliationResult(
                outcome=NOOP,
                detail="refund already recorded",
                payment_id=payment.pk,
                booking_id=payment.booking_id,
            )
        return _apply_refunded_total(payment, target, reason=reason)


def _store_refund_line(payment: Payment, refund_id: str, amount_cents: int, **extra) -> Refund:
    """Save a refund by its Stripe id, taking over a provisional row for the same amount."""
    placeholder = (
        payment.refunds.filter(provisional=True, amount_cents=amount_cents)
        .order_by("created_at", "id")
        .first()
    )
    if placeholder is None:
        return Refund.objects.create(
            payment=payment, stripe_refund_id=refund_id, amount_cents=amount_cents, **extra
        )
    placeholder.stripe_refund_id = refund_id
    placeholder.provisional = False
    for name, value in extra.items():
        setattr(placeholder, name, value)
    placeholder.save()
    return placeholder


def _apply_refunded_total(payment: Payment, total: int, reason: str = "") -> ReconciliationResult:
    delta = total - payment.refunded_amount_cents
    full = total >= payment.amount_cents
    payment.refunded_amount_cents = total
    payment.status = Payment.REFUNDED if full else Payment.SUCCEEDED
    payment.save(update_fields=["refunded_amount_cents", "status", "updated_at"])

    reason_note = f" ({reason})" if reason else ""
    note = f" [Refund: {format_money(delta, payment.currency)}{reason_note}]"
    mark_payment_status(
        payment.booking,
        Booking.PAYMENT_REFUNDED if full else Booking.PAYMENT_PARTIALLY_REFUNDED,
        note=note,
    )
    return ReconciliationResult(
        outcome=APPLIED,
        detail="refunded" if full else "partially refunded",
        payment_id=payment.pk,
        booking_id=payment.booking_id,
    )
