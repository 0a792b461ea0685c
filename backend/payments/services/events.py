"""
Stripe webhook events as explicit variants.

``parse_event`` validates the fields each handler consumes and rejects a
malformed payload with ``InvalidEventPayload``; event types we do not act on
come back as ``UnhandledEvent`` so they can be acknowledged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
CHECKOUT_SESSION_EXPIRED = "checkout.session.expired"
ACCOUNT_UPDATED = "account.updated"
CHARGE_REFUNDED = "charge.refunded"


class InvalidEventPayload(ValueError):
    pass


@dataclass(frozen=True)
class CheckoutSessionCompleted:
    event_id: str
    session_id: str
    payment_status: str
    payment_intent: str = ""
    customer_email: str = ""
    amount_total: int | None = None
    currency: str = ""
    payment_link: str = ""
    account_id: str = ""


@dataclass(frozen=True)
class CheckoutSessionExpired:
    event_id: str
    session_id: str
    account_id: str = ""


@dataclass(frozen=True)
class AccountUpdated:
    event_id: str
    account_id: str
    charges_enabled: bool
    payouts_enabled: bool
    details_submitted: bool
    currently_due: tuple = ()


@dataclass(frozen=True)
class RefundLine:
    refund_id: str
    amount_cents: int


@dataclass(frozen=True)
class ChargeRefunded:
    event_id: str
    charge_id: str
    payment_intent: str
    charge_amount: int
    amount_refunded: int
    refunds: tuple = field(default_factory=tuple)
    account_id: str = ""


@dataclass(frozen=True)
class UnhandledEvent:
    event_id: str
    type: str


StripeEvent = Union[
    CheckoutSessionCompleted,
    CheckoutSessionExpired,
    AccountUpdated,
    ChargeRefunded,
    UnhandledEvent,
]


def _require(obj: dict, key: str, event_type: str):
    value = obj.get(key)
    if value in (None, ""):
        raise InvalidEventPayload(f"{event_type} is missing '{key}'.")
    return value


def _amount(obj: dict, key: str, event_type: str) -> int:
    value = _require(obj, key, event_type)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidEventPayload(f"{event_type} has an invalid '{key}'.")
    return value


def _parse_checkout_completed(event_id, account_id, obj) -> CheckoutSessionCompleted:
    customer_details = obj.get("customer_details") or {}
    amount_total = obj.get("amount_total")
    return CheckoutSessionCompleted(
        event_id=event_id,
        session_id=_require(obj, "id", CHECKOUT_SESSION_COMPLETED),
        payment_status=_require(obj, "payment_status", CHECKOUT_SESSION_COMPLETED),
        payment_intent=obj.get("payment_intent") or "",
        customer_email=customer_details.get("email") or obj.get("customer_email") or "",
        amount_total=amount_total if isinstance(amount_total, int) else None,
        currency=obj.get("currency") or "",
        payment_link=obj.get("payment_link") or "",
        account_id=account_id,
    )


def _parse_account_updated(event_id, obj) -> AccountUpdated:
    requirements = obj.get("requirements") or {}
    return AccountUpdated(
        event_id=event_id,
        account_id=_require(obj, "id", ACCOUNT_UPDATED),
        charges_enabled=bool(obj.get("charges_enabled")),
        payouts_enabled=bool(obj.get("payouts_enabled")),
        details_submitted=bool(obj.get("details_submitted")),
        currently_due=tuple(requirements.get("currently_due") or ()),
    )


def _parse_charge_refunded(event_id, account_id, obj) -> ChargeRefunded:
    refund_list = (obj.get("refunds") or {}).get("data") or []
    refunds = []
    for refund in refund_list:
        refund_id = refund.get("id")
        amount = refund.get("amount")
        if not refund_id or not isinstance(amount, int):
            raise InvalidEventPayload(f"{CHARGE_REFUNDED} has a malformed refund entry.")
        refunds.append(RefundLine(refund_id=refund_id, amount_cents=amount))
    return ChargeRefunded(
        event_id=event_id,
        charge_id=_require(obj, "id", CHARGE_REFUNDED),
        payment_intent=_require(obj, "payment_intent", CHARGE_REFUNDED),
        charge_amount=_amount(obj, "amount", CHARGE_REFUNDED),
        amount_refunded=_amount(obj, "amount_refunded", CHARGE_REFUNDED),
        refunds=tuple(refunds),
        account_id=account_id,
    )


def parse_event(payload: dict) -> StripeEvent:
    if not isinstance(payload, dict):
        raise InvalidEventPayload("Event payload must be an object.")
    event_type = payload.get("type")
    if not event_type:
        raise InvalidEventPayload("Event is missing 'type'.")
    event_id = payload.get("id") or ""
    account_id = payload.get("account") or ""
    obj = (payload.get("data") or {}).get("object")

    if event_type not in (
        CHECKOUT_SESSION_COMPLETED,
        CHECKOUT_SESSION_EXPIRED,
        ACCOUNT_UPDATED,
        CHARGE_REFUNDED,
    ):
        return UnhandledEvent(event_id=event_id, type=event_type)
    if not isinstance(obj, dict):
        raise InvalidEventPayload(f"{event_type} is missing 'data.object'.")

    if event_type == CHECKOUT_SESSION_COMPLETED:
        return _parse_checkout_completed(event_id, account_id, obj)
    if event_type == CHECKOUT_SESSION_EXPIRED:
        return CheckoutSessionExpired(
            event_id=event_id,
            session_id=_require(obj, "id", event_type),
            account_id=account_id,
        )
    if event_type == ACCOUNT_UPDATED:
        return _parse_account_updated(event_id, obj)
    return _parse_charge_refunded(event_id, account_id, obj)
