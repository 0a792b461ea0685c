"""
Outbound WhatsApp notifications.

Every send writes a ``Message`` row whatever the provider says: QUEUED when
Twilio accepted it, FAILED otherwise. Failures are returned as a result and
never raised, so the business action that triggered a notification stands.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from django.utils import timezone

from bookings.models import Booking, Driver
from core.exceptions import BookingNotFound
from messaging.models import Conversation, Message, WhatsAppConfig
from orgs.models import Organization

from . import gateway
from .bodies import MessageContent, build_content

logger = logging.getLogger(__name__)

NOT_CONFIGURED = "WhatsApp not configured or disabled for this organization"
DRIVER_EVENTS = {Message.DRIVER_DISPATCHED}


@dataclass
class NotificationResult:
    success: bool
    message_id: int | None = None
    provider_sid: str = ""
    delivery_mode: str = Message.SESSION
    error: str = ""


def get_config(organization: Organization) -> WhatsAppConfig | None:
    try:
        return organization.whatsapp_config
    except WhatsAppConfig.DoesNotExist:
        return None


def find_conversation(organization: Organization, phone: str) -> Conversation | None:
    return (
        Conversation.objects.filter(
            organization=organization,
            phone__in=gateway.phone_variants(phone),
        )
        .order_by("-last_inbound_at")
        .first()
    )


def choose_delivery_mode(
    config: WhatsAppConfig,
    message_type: str,
    conversation: Conversation | None,
    now=None,
) -> tuple[str, str]:
    """
    Free-form text only while the recipient's 24h window is open.

    Outside the window the approved template for the message type is used. With
    no template configured the free-form body is still submitted and Twilio
    decides whether to deliver it.
    """
    if conversation is not None and conversation.session_open(now):
        return Message.SESSION, ""
    template_sid = config.template_for(message_type)
    if template_sid:
        return Message.TEMPLATE, template_sid
    logger.warning(
        "No approved template for %s on organization %s; sending free-form outside the session window",
        message_type,
        config.organization_id,
    )
    return Message.SESSION, ""


def send_and_log(
    organization: Organization,
    *,
    to: str,
    message_type: str,
    content: MessageContent,
    booking: Booking | None = None,
    driver: Driver | None = None,
) -> NotificationResult:
    config = get_config(organization)
    message = Message(
        organization=organization,
        booking=booking,
        driver=driver,
        direction=Message.OUTBOUND,
        recipient_phone=gateway.canonical_phone(to),
        message_type=message_type,
        body=content.body,
    )

    if config is None or not config.enabled:
        message.status = Message.FAILED
        message.error_message = NOT_CONFIGURED
        message.save()
        return NotificationResult(success=False, message_id=message.pk, error=NOT_CONFIGURED)

    now = timezone.now()
    conversation = find_conversation(organization, to)
    mode, template_sid = choose_delivery_mode(config, message_type, conversation, now)
    message.delivery_mode = mode

    result = gateway.send_whatsapp(
        config,
        to=to,
        body=content.body,
        template_sid=template_sid,
        template_variables=content.variables,
    )
    if result.success:
        message.status = Message.QUEUED
        message.provider_sid = result.provider_sid
    else:
        message.status = Message.FAILED
        message.error_message = result.error[:500]
    message.save()

    if result.success and conversation is not None:
        conversation.last_message_at = now
        conversation.save(update_fields=["last_message_at"])

    return NotificationResult(
        success=result.success,
        message_id=message.pk,
        provider_sid=result.provider_sid,
        delivery_mode=mode,
        error=result.error,
    )


def notify(
    organization: Organization,
    event: str,
    booking: Booking,
    driver: Driver | None = None,
    body: str | None = None,
) -> NotificationResult:
    """Send the notification for a booking lifecycle event and apply its side effects."""
    if booking.organization_id != organization.pk:
        raise BookingNotFound()
    if event != Message.MANUAL:
        driver = driver or booking.driver
    content = build_content(event, booking, driver, body)

    if event in DRIVER_EVENTS or (event == Message.MANUAL and driver is not None):
        recipient = driver.phone
    else:
        recipient = booking.customer_phone

    result = send_and_log(
        organization,
        to=recipient,
        message_type=event,
        content=content,
        booking=booking,
        driver=driver,
    )
    if not result.success:
        logger.warning(
            "%s notification for booking %s failed: %s", event, booking.pk, result.error
        )
        return result

    if event == Message.BOOKING_CONFIRMED:
        booking.customer_notified = True
        booking.save(update_fields=["customer_notified", "updated_at"])
    elif event == Message.DRIVER_DISPATCHED:
        booking.driver_notified = True
        booking.save(update_fields=["driver_notified", "updated_at"])
        bind_conversation(organization, driver, booking)
    return result


def bind_conversation(organization: Organization, driver: Driver, booking: Booking) -> Conversation:
    """Put the driver's conversation in AWAITING_ACCEPT for the offered booking."""
    phone = gateway.canonical_phone(driver.phone)
    conversation, _ = Conversation.objects.get_or_create(
        driver=driver,
        phone=phone,
        defaults={"organization": organization},
    )
    conversation.state = Conversation.AWAITING_ACCEPT
    conversation.current_booking = booking
    conversation.last_message_at = timezone.now()
    conversation.save(update_fields=["state", "current_booking", "last_message_at"])
    return conversation


def send_test_message(organization: Organization, phone: str) -> NotificationResult:
    content = MessageContent(
        "This is a test message from EliteDispatch. "
        "Your WhatsApp integration is working correctly!"
    )
    return send_and_log(organization, to=phone, message_type=Message.TEST, content=content)
