from __future__ import annotations

from dataclasses import dataclass, field

from django.conf import settings
from django.utils import timezone

from bookings.models import Booking, Driver
from core.money import format_money
from messaging.models import Message

DISPATCH_FOOTER = [
    "━━━━━━━━━━━━━━━━━",
    "Reply *1* to ACCEPT",
    "Reply *2* to DECLINE",
    "━━━━━━━━━━━━━━━━━",
]


@dataclass
class MessageContent:
    body: str
    variables: dict = field(default_factory=dict)


def tracking_url(booking: Booking) -> str:
    return f"{settings.PUBLIC_APP_URL.rstrip('/')}/booking/{booking.pk}/status"


def _pickup(booking: Booking):
    return timezone.localtime(booking.pickup_time)


def _organization_name(booking: Booking, fallback: str) -> str:
    return booking.organization.name or fallback


def booking_confirmed(booking: Booking) -> MessageContent:
    pickup = _pickup(booking)
    body_lines = [
        f"Hi {booking.customer_name},",
        "",
        "Your booking has been confirmed!",
        "",
        f"📅 *{pickup:%A %d %B}*",
        f"🕐 *{pickup:%H:%M}*",
        "",
        f"📍 *Pickup:* {booking.pickup_location}",
        f"🏁 *Dropoff:* {booking.dropoff_location}",
        "",
        f"💷 *Total:* {format_money(booking.price_cents, booking.currency)}",
        "",
        "We'll notify you when your driver is assigned.",
        "",
        f"Thank you for choosing {_organization_name(booking, 'our service')}!",
    ]
    return MessageContent(
        "\n".join(body_lines),
        {
            "1": booking.customer_name,
            "2": f"{pickup:%A %d %B %H:%M}",
            "3": booking.pickup_location,
        },
    )


def driver_dispatched(booking: Booking, driver: Driver) -> MessageContent:
    pickup = _pickup(booking)
    body_lines = [
        "🚗 *NEW JOB REQUEST*",
        "",
        f"Hi {driver.name},",
        "",
        f"📅 {pickup:%a %d %b} at {pickup:%H:%M}",
        "",
        f"👤 *Customer:* {booking.customer_name}",
        f"📍 *Pickup:* {booking.pickup_location}",
        f"🏁 *Dropoff:* {booking.dropoff_location}",
        f"👥 *Passengers:* {booking.passengers}",
        f"💷 *Fare:* {format_money(booking.price_cents, booking.currency)}",
    ]
    if booking.notes:
        body_lines.append(f"📝 *Notes:* {booking.notes}")
    body_lines += [""] + DISPATCH_FOOTER
    return MessageContent(
        "\n".join(body_lines),
        {
            "1": driver.name,
            "2": f"{pickup:%a %d %b %H:%M}",
            "3": booking.pickup_location,
            "4": booking.dropoff_location,
        },
    )


def driver_assigned(booking: Booking, driver: Driver) -> MessageContent:
    pickup = _pickup(booking)
    vehicle = driver.vehicle
    if driver.vehicle_colour:
        vehicle = f"{vehicle} ({driver.vehicle_colour})"
    body_lines = [
        f"Hi {booking.customer_name},",
        "",
        "Your driver has been assigned!",
        "",
        f"🚗 *Driver:* {driver.name}",
        f"🚙 *Vehicle:* {vehicle}",
        f"🔢 *Plate:* {driver.plate}",
        "",
        f"⏰ *Pickup Time:* {pickup:%H:%M}",
        f"📍 *Location:* {booking.pickup_location}",
        "",
        "Your driver will confirm shortly.",
    ]
    return MessageContent(
        "\n".join(body_lines),
        {"1": booking.customer_name, "2": driver.name, "3": driver.plate},
    )


def driver_accepted(booking: Booking, driver: Driver) -> MessageContent:
    body_lines = [
        f"Great news, {booking.customer_name}!",
        "",
        f"✅ Your driver *{driver.name}* has confirmed your booking.",
        "",
        "They will arrive at your pickup location on time. "
        "We'll send you another message when they're on their way.",
    ]
    return MessageContent("\n".join(body_lines), {"1": booking.customer_name, "2": driver.name})


def driver_en_route(booking: Booking, driver: Driver) -> MessageContent:
    url = tracking_url(booking)
    body_lines = [
        f"Hi {booking.customer_name},",
        "",
        "🚗 *Your driver is on the way!*",
        "",
        f"{driver.name} has picked you up and is heading to your destination.",
        "",
        f"🏁 *Dropoff:* {booking.dropoff_location}",
        "",
        f"Track your trip: {url}",
    ]
    return MessageContent(
        "\n".join(body_lines),
        {"1": booking.customer_name, "2": driver.name, "3": url},
    )


def trip_completed(booking: Booking) -> MessageContent:
    body_lines = [
        f"Hi {booking.customer_name},",
        "",
        "✅ *Trip Complete!*",
        "",
        f"Thank you for travelling with {_organization_name(booking, 'us')}.",
        "",
        f"💷 *Total:* {format_money(booking.price_cents, booking.currency)}",
        "",
        "We hope you had a pleasant journey. See you next time!",
    ]
    return MessageContent(
        "\n".join(body_lines),
        {"1": booking.customer_name, "2": format_money(booking.price_cents, booking.currency)},
    )


def build_content(event: str, booking: Booking, driver: Driver | None, body: str | None) -> MessageContent:
    if event == Message.MANUAL:
        if not body:
            raise ValueError("A manual message needs a body.")
        return MessageContent(body, {"1": body})
    if event == Message.BOOKING_CONFIRMED:
        return booking_confirmed(booking)
    if event == Message.TRIP_COMPLETED:
        return trip_completed(booking)
    if driver is None:
        raise ValueError(f"{event} needs a driver.")
    builders = {
        Message.DRIVER_DISPATCHED: driver_dispatched,
        Message.DRIVER_ASSIGNED: driver_assigned,
        Message.DRIVER_ACCEPTED: driver_accepted,
        Message.DRIVER_EN_ROUTE: driver_en_route,
    }
    try:
        builder = builders[event]
    except KeyError:
        raise ValueError(f"Unknown notification event: {event}")
    return builder(booking, driver)
