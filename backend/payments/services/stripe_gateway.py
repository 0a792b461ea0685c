"""
Outbound Stripe calls for a connected account, with a stub mode for local work.

In stub mode (``STRIPE_USE_STUB`` or no secret key) nothing reaches Stripe;
predictable identifiers come back so bookings, payments and links behave as
if Stripe had answered. Real-mode failures surface as ``stripe.StripeError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

import stripe
from django.conf import settings

from bookings.models import Booking


@dataclass
class CheckoutSessionStub:
    id: str
    payment_intent: str
    payment_status: str
    url: str


@dataclass
class PaymentLinkStub:
    id: str
    url: str


@dataclass
class RefundStub:
    id: str
    amount: int


@dataclass
class AccountLinkStub:
    url: str
    expires_at: int


@dataclass
class AccountStub:
    id: str
    livemode: bool = False
    charges_enabled: bool = False
    payouts_enabled: bool = False
    details_submitted: bool = False
    default_currency: str = ""
    email: str = ""


def _get_stripe_api_key() -> Optional[str]:
    key = getattr(settings, "STRIPE_SECRET_KEY", "")
    return key or None


def should_use_stub() -> bool:
    if getattr(settings, "STRIPE_USE_STUB", False):
        return True
    return _get_stripe_api_key() is None


def configure_stripe():
    api_key = _get_stripe_api_key()
    if not api_key:
        raise RuntimeError("STRIPE_SECRET_KEY is not configured.")
    stripe.api_key = api_key


def build_checkout_preview_url(*, booking: Booking, session_id: str) -> str:
    return (
        f"{settings.FRONTEND_URL.rstrip('/')}/payments/preview?"
        f"booking={booking.pk}&amount={booking.price_cents}&session={session_id}"
    )


def _product_name(booking: Booking) -> str:
    return f"Chauffeur Booking - {booking.vehicle_class or 'Standard'}"


def _route(booking: Booking) -> str:
    return f"{booking.pickup_location} → {booking.dropoff_location}"


def create_checkout_session(*, booking: Booking, account_id: str, success_url: str, cancel_url: str):
    """Create a Checkout session charged directly to the connected account."""
    if should_use_stub():
        session_id = f"cs_test_{uuid4().hex}"
        return CheckoutSessionStub(
            id=session_id,
            payment_intent=f"pi_test_{uuid4().hex}",
            payment_status="unpaid",
            url=build_checkout_preview_url(booking=booking, session_id=session_id),
        )

    configure_stripe()
    return stripe.checkout.Session.create(
        mode="payment",
        payment_method_types=["card"],
        line_items=[
            {
                "quantity": 1,
                "price_data": {
                    "currency": booking.currency,
                    "unit_amount": booking.price_cents,
                    "product_data": {
                        "name": _product_name(booking),
                        "description": _route(booking),
                    },
                },
            }
        ],
        customer_email=booking.customer_email or None,
        success_url=f"{success_url}?session_id={{CHECKOUT_SESSION_ID}}&booking_id={booking.pk}",
        cancel_url=f"{cancel_url}?booking_id={booking.pk}",
        metadata={
            "organization_id": booking.organization_id,
            "booking_id": booking.pk,
            "customer_name": booking.customer_name,
            "pickup": booking.pickup_location[:100],
            "dropoff": booking.dropoff_location[:100],
        },
        stripe_account=account_id,
    )


def create_payment_link(*, booking: Booking, account_id: str):
    if should_use_stub():
        link_id = f"plink_test_{uuid4().hex}"
        return PaymentLinkStub(
            id=link_id,
            url=f"{settings.FRONTEND_URL.rstrip('/')}/payments/link?booking={booking.pk}&link={link_id}",
        )

    configure_stripe()
    price = stripe.Price.create(
        currency=booking.currency,
        unit_amount=booking.price_cents,
        product_data={"name": _product_name(booking)},
        stripe_account=account_id,
    )
    return stripe.PaymentLink.create(
        line_items=[{"price": price.id, "quantity": 1}],
        metadata={"organization_id": booking.organization_id, "booking_id": booking.pk},
        after_completion={
            "type": "redirect",
            "redirect": {
                "url": f"{settings.PUBLIC_APP_URL.rstrip('/')}/payment-success?booking={booking.pk}"
            },
        },
        stripe_account=account_id,
    )


def deactivate_payment_link(*, link_id: str, account_id: str) -> None:
    if should_use_stub():
        return
    configure_stripe()
    stripe.PaymentLink.modify(link_id, active=False, stripe_account=account_id)


def create_refund(*, payment_intent: str, amount_cents: int, reason: str, account_id: str):
    if should_use_stub():
        return RefundStub(id=f"re_test_{uuid4().hex}", amount=amount_cents)

    configure_stripe()
    return stripe.Refund.create(
        payment_intent=payment_intent,
        amount=amount_cents,
        reason=reason,
        stripe_account=account_id,
    )


def create_connect_account(*, email: str):
    if should_use_stub():
        return AccountStub(id=f"acct_test_{uuid4().hex[:16]}", email=email or "")
    configure_stripe()
    return stripe.Account.create(type="express", email=email or None)


def retrieve_account(account_id: str):
    """Fetch the account from Stripe; ``None`` in stub mode where there is nothing to sync."""
    if should_use_stub():
        return None
    configure_stripe()
    return stripe.Account.retrieve(account_id)


def create_account_link(account_id: str):
    return_url = settings.STRIPE_CONNECT_RETURN_URL or f"{settings.FRONTEND_URL.rstrip('/')}/settings/payments"
    refresh_url = settings.STRIPE_CONNECT_REFRESH_URL or return_url
    if should_use_stub():
        expires_at = datetime.now(tz=timezone.utc) + timedelta(minutes=5)
        return AccountLinkStub(
            url=f"{return_url}?stub_account={account_id}",
            expires_at=int(expires_at.timestamp()),
        )
    configure_stripe()
    return stripe.AccountLink.create(
        account=account_id,
        type="account_onboarding",
        refresh_url=refresh_url,
        return_url=return_url,
    )
