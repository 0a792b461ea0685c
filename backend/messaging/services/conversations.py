"""
Driver conversation state machine and the inbound side of the Twilio webhooks.

IDLE -> AWAITING_ACCEPT (dispatch) -> AWAITING_START (accept) -> IN_PROGRESS
(start) -> IDLE (complete, decline, booking cancelled). A reply is only acted
on relative to the conversation's state and its bound booking.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable

from django.db import transaction
from django.utils import timezone

from bookings.models import Booking, Driver
from bookings.services.ledger import apply_status
from messaging.models import Conversation, Message, WhatsAppConfig

from . import gateway
from .bodies import MessageContent
from .notifications import notify, send_and_log

logger = logging.getLogger(__name__)

ACCEPT = "ACCEPT"
DECLINE = "DECLINE"
START = "START"
COMPLETE = "COMPLETE"
UNKNOWN = "UNKNOWN"

INTENT_PATTERNS = [
    (ACCEPT, ["1", "yes", "accept", "ok", "okay", "sure", "confirm", "confirmed", "yep", "yeah"]),
    (DECLINE, ["2", "no", "decline", "pass", "skip", "cant", "can't", "cannot", "busy", "reject"]),
    (START, ["start", "started", "picked", "pickup", "picked up", "on way", "onway", "en route", "collecting"]),
    (COMPLETE, ["done", "complete", "completed", "finished", "dropped", "drop off", "dropoff", "delivered"]),
]

REPLY_ACCEPTED = "Great! Job confirmed. Reply START when you pick up the customer."
REPLY_DECLINED = "No problem. The dispatcher will assign another driver."
REPLY_STARTED = "Customer picked up! Reply DONE when the trip is complete."
REPLY_COMPLETED = "Trip complete! Great job. You're now available for new jobs."
PROMPT_ACCEPT = "Please reply 1 to ACCEPT or 2 to DECLINE the job."
PROMPT_START = "Reply START when you pick up the customer."
PROMPT_COMPLETE = "Reply DONE when the trip is complete."
INFO_IDLE = "No active job. You'll receive a message when a new job is assigned to you."

TWILIO_STATUS_MAP = {
    "queued": Message.QUEUED,
    "accepted": Message.QUEUED,
    "sending": Message.QUEUED,
    "sent": Message.SENT,
    "delivered": Message.DELIVERED,
    "read": Message.READ,
    "failed": Message.FAILED,
    "undelivered": Message.FAILED,
}


def _normalize_text(text: str) -> str:
    return re.sub(r"[^\w\s]", "", (text or "").lower()).strip()


def _compile(patterns):
    alternatives = "|".join(re.escape(_normalize_text(p)) for p in patterns)
    return re.compile(rf"\b(?:{alternatives})\b")


_INTENT_REGEXES = [(intent, _compile(patterns)) for intent, patterns in INTENT_PATTERNS]


def parse_intent(text: str) -> str:
    normalized = _normalize_text(text)
    if not normalized:
        return UNKNOWN
    for intent, regex in _INTENT_REGEXES:
        if regex.search(normalized):
            return intent
    return UNKNOWN


class InvalidWebhookPayload(ValueError):
    pass


@dataclass(frozen=True)
class InboundMessage:
    provider_sid: str
    from_phone: str
    to_phone: str
    body: str
    replied_to_sid: str = ""

    @classmethod
    def from_params(cls, params) -> "InboundMessage":
        from_phone = (params.get("From") or "").strip()
        to_phone = (params.get("To") or "").strip()
        if not from_phone or not to_phone:
            raise InvalidWebhookPayload("Inbound message is missing From or To.")
        return cls(
            provider_sid=params.get("MessageSid") or params.get("SmsSid") or "",
            from_phone=gateway.canonical_phone(from_phone),
            to_phone=gateway.canonical_phone(to_phone),
            body=params.get("Body") or "",
            replied_to_sid=params.get("OriginalRepliedMessageSid") or "",
        )


@dataclass(frozen=True)
class StatusCallback:
    provider_sid: str
    provider_status: str
    error_code: str = ""
    error_message: str = ""

    @classmethod
    def from_params(cls, params) -> "StatusCallback":
        provider_sid = params.get("MessageSid") or params.get("SmsSid") or ""
        provider_status = params.get("MessageStatus") or params.get("SmsStatus") or ""
        if not provider_sid or not provider_status:
            raise InvalidWebhookPayload("Status callback is missing MessageSid or MessageStatus.")
        return cls(
            provider_sid=provider_sid,
            provider_status=provider_status.lower(),
            error_code=params.get("ErrorCode") or "",
            error_message=params.get("ErrorMessage") or "",
        )


@dataclass
class InboundResult:
    outcome: str
    state: str = Conversation.IDLE
    intent: str = UNKNOWN
    reply: str = ""
    message_id: int | None = None
    side_effects: list = field(default_factory=list)


@dataclass
class StatusCallbackResult:
    outcome: str
    status: str = ""


def find_config_for_number(phone: str) -> WhatsAppConfig | None:
    return (
        WhatsAppConfig.objects.select_related("organization")
        .filter(whatsapp_number__in=gateway.phone_variants(phone))
        .first()
    )


def find_driver_by_phone(organization, phone: str) -> Driver | None:
    return (
        Driver.objects.filter(organization=organization, phone__in=gateway.phone_variants(phone))
        .order_by("id")
        .first()
    )


def process_inbound(payload: InboundMessage) -> InboundResult:
    config = find_config_for_number(payload.to_phone)
    if config is None:
        logger.info("Inbound WhatsApp message to unknown number %s", payload.to_phone)
        return InboundResult(outcome="not_found")
    organization = config.organization

    if payload.provider_sid and Message.objects.filter(
        organization=organization,
        direction=Message.INBOUND,
        provider_sid=payload.provider_sid,
    ).exists():
        logger.info("Duplicate inbound WhatsApp message %s ignored", payload.provider_sid)
        return InboundResult(outcome="duplicate")

    driver = find_driver_by_phone(organization, payload.from_phone)
    if driver is None:
        message = _log_inbound(organization, payload, driver=None, booking=None)
        logger.info("Inbound WhatsApp message from unknown phone %s", payload.from_phone)
        return InboundResult(outcome="not_found", message_id=message.pk)

    followups: list[Callable[[], object]] = []
    with transaction.atomic():
        conversation, _ = Conversation.objects.select_for_update().get_or_create(
            driver=driver,
            phone=payload.from_phone,
            defaults={"organization": organization},
        )
        conversation.touch_inbound()
        booking = conversation.current_booking
        message = _log_inbound(organization, payload, driver=driver, booking=booking)

        if _quotes_other_booking(organization, payload, conversation):
            conversation.save()
            return InboundResult(
                outcome="ignored",
                state=conversation.state,
                message_id=message.pk,
            )

        intent = parse_intent(payload.body)
        reply_type, reply = _advance(conversation, driver, booking, intent, followups)
        conversation.save()

    results = [
        send_and_log(
            organization,
            to=driver.phone,
            message_type=reply_type,
            content=MessageContent(reply),
            booking=booking,
            driver=driver,
        )
    ]
    for followup in followups:
        results.append(followup())

    return InboundResult(
        outcome="handled",
        state=conversation.state,
        intent=intent,
        reply=reply,
        message_id=message.pk,
        side_effects=results,
    )


def _log_inbound(organization, payload: InboundMessage, *, driver, booking) -> Message:
    return Message.objects.create(
        organization=organization,
        booking=booking,
        driver=driver,
        direction=Message.INBOUND,
        recipient_phone=payload.from_phone,
        message_type=Message.INBOUND_REPLY,
        body=payload.body,
        provider_sid=payload.provider_sid,
        status=Message.DELIVERED,
    )


def _quotes_other_booking(organization, payload: InboundMessage, conversation: Conversation) -> bool:
    if not payload.replied_to_sid:
        return False
    quoted = (
        Message.objects.filter(organization=organization, provider_sid=payload.replied_to_sid)
        .exclude(booking=None)
        .first()
    )
    if quoted is None or quoted.booking_id == conversation.current_booking_id:
        return False
    logger.info(
        "Reply from driver %s quotes booking %s but conversation is bound to %s; no transition",
        conversation.driver_id,
        quoted.booking_id,
        conversation.current_booking_id,
    )
    return True


def _advance(conversation: Conversation, driver: Driver, booking: Booking | None, intent, followups):
    state = conversation.state
    organization = conversation.organization

    if state != Conversation.IDLE and (
        booking is None
        or booking.status in (Booking.COMPLETED, Booking.CANCELLED)
        or booking.driver_id != driver.pk
    ):
        _release(conversation)
        return Message.INFO, INFO_IDLE

    if state == Conversation.AWAITING_ACCEPT:
        if intent == ACCEPT:
            booking.driver_accepted = True
            booking.driver_accepted_at = timezone.now()
            booking.save(update_fields=["driver_accepted", "driver_accepted_at", "updated_at"])
            driver.status = Driver.BUSY
            driver.save(update_fields=["status"])
            conversation.state = Conversation.AWAITING_START
            followups.append(lambda: notify(organization, Message.DRIVER_ACCEPTED, booking, driver))
            return Message.REPLY_ACCEPTED, REPLY_ACCEPTED
        if intent == DECLINE:
            apply_status(booking, Booking.PENDING)
            _release(conversation)
            return Message.REPLY_DECLINED, REPLY_DECLINED
        return Message.PROMPT, PROMPT_ACCEPT

    if state == Conversation.AWAITING_START:
        if intent == START:
            apply_status(booking, Booking.IN_PROGRESS)
            conversation.state = Conversation.IN_PROGRESS
            followups.append(lambda: notify(organization, Message.DRIVER_EN_ROUTE, booking, driver))
            return Message.REPLY_STARTED, REPLY_STARTED
        return Message.PROMPT, PROMPT_START

    if state == Conversation.IN_PROGRESS:
        if intent == COMPLETE:
            apply_status(booking, Booking.COMPLETED)
            driver.status = Driver.AVAILABLE
            driver.save(update_fields=["status"])
            _release(conversation)
            followups.append(lambda: notify(organization, Message.TRIP_COMPLETED, booking, driver))
            return Message.REPLY_COMPLETED, REPLY_COMPLETED
        return Message.PROMPT, PROMPT_COMPLETE

    return Message.INFO, INFO_IDLE


def _release(conversation: Conversation) -> None:
    conversation.state = Conversation.IDLE
    conversation.current_booking = None


def apply_status_callback(payload: StatusCallback) -> StatusCallbackResult:
    status = TWILIO_STATUS_MAP.get(payload.provider_status)
    if status is None:
        logger.info(
            "Unhandled Twilio status %s for message %s", payload.provider_status, payload.provider_sid
        )
        return StatusCallbackResult(outcome="noop")

    with transaction.atomic():
        message = (
            Message.objects.select_for_update()
            .filter(provider_sid=payload.provider_sid, direction=Message.OUTBOUND)
            .first()
        )
        if message is None:
            logger.info("Status callback for unknown message %s", payload.provider_sid)
            return StatusCallbackResult(outcome="not_found", status=status)
        if not message.can_advance_to(status):
            return StatusCallbackResult(outcome="noop", status=message.status)

        message.status = status
        update_fields = ["status", "updated_at"]
        if status == Message.FAILED:
            error = payload.error_message or (
                f"Error code: {payload.error_code}" if payload.error_code else ""
            )
            message.error_message = error[:500]
            update_fields.append("error_message")
        message.save(update_fields=update_fields)
    return StatusCallbackResult(outcome="applied", status=status)
