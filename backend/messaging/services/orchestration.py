"""
Booking actions that carry WhatsApp notifications as best-effort side effects.

The ledger write commits first. Each notification then runs on its own and is
reported in ``side_effects``; a failed or crashing notification is logged and
recorded there but never undoes the primary action.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Callable

from accounts.tenancy import TenantContext
from bookings.models import Booking
from bookings.services import ledger
from messaging.models import Message
from orgs.models import Organization

from .notifications import NotificationResult, notify

logger = logging.getLogger(__name__)


@dataclass
class SideEffectResult:
    name: str
    success: bool
    error: str = ""
    message_id: int | None = None


@dataclass
class ActionResult:
    booking: Booking
    side_effects: list[SideEffectResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return True

    @property
    def notifications_succeeded(self) -> bool:
        return all(effect.success for effect in self.side_effects)

    def side_effect(self, name: str) -> SideEffectResult | None:
        return next((effect for effect in self.side_effects if effect.name == name), None)

    def as_dict(self) -> dict:
        return {
            "success": self.success,
            "booking": self.booking.pk,
            "side_effects": [asdict(effect) for effect in self.side_effects],
        }


def run_side_effect(name: str, send: Callable[[], NotificationResult]) -> SideEffectResult:
    try:
        result = send()
    except Exception as exc:
        logger.exception("Side effect %s raised", name)
        return SideEffectResult(name=name, success=False, error=str(exc) or exc.__class__.__name__)
    return SideEffectResult(
        name=name,
        success=result.success,
        error=result.error,
        message_id=result.message_id,
    )


def assign_driver_with_notification(
    tenant: TenantContext, booking_id, driver_id, send_whatsapp: bool = True
) -> ActionResult:
    booking = ledger.assign_driver(tenant, booking_id, driver_id)
    result = ActionResult(booking=booking)
    if not send_whatsapp:
        return result

    organization = tenant.organization
    driver = booking.driver
    result.side_effects.append(
        run_side_effect(
            "driver_dispatch",
            lambda: notify(organization, Message.DRIVER_DISPATCHED, booking, driver),
        )
    )
    result.side_effects.append(
        run_side_effect(
            "customer_driver_assigned",
            lambda: notify(organization, Message.DRIVER_ASSIGNED, booking, driver),
        )
    )
    return result


def create_booking_with_notification(
    tenant: TenantContext, send_whatsapp: bool = True, **fields
) -> ActionResult:
    booking = ledger.create_booking(tenant, **fields)
    return _confirm_booking(tenant.organization, booking, send_whatsapp)


def _confirm_booking(organization: Organization, booking: Booking, send_whatsapp: bool) -> ActionResult:
    result = ActionResult(booking=booking)
    if send_whatsapp:
        result.side_effects.append(
            run_side_effect(
                "customer_booking_confirmed",
                lambda: notify(organization, Message.BOOKING_CONFIRMED, booking),
            )
        )
    return result


def send_driver_message(tenant: TenantContext, booking_id, driver_id, message: str) -> NotificationResult:
    ledger.require_staff(tenant)
    booking = ledger.get_booking(tenant, booking_id)
    driver = ledger.get_driver(tenant, driver_id)
    return notify(tenant.organization, Message.MANUAL, booking, driver=driver, body=message)


def send_customer_message(tenant: TenantContext, booking_id, message: str) -> NotificationResult:
    ledger.require_staff(tenant)
    booking = ledger.get_booking(tenant, booking_id)
    return notify(tenant.organization, Message.MANUAL, booking, body=message)
