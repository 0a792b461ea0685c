import pytest

from bookings.models import Booking, Driver
from bookings.services import ledger
from messaging.models import Conversation, Message
from messaging.services.conversations import (
    ACCEPT,
    COMPLETE,
    DECLINE,
    START,
    UNKNOWN,
    InboundMessage,
    InvalidWebhookPayload,
    parse_intent,
    process_inbound,
)
from messaging.services.notifications import notify


def _inbound(body, sid="SMin0001", from_phone="whatsapp:+447700900001", **extra):
    params = {
        "MessageSid": sid,
        "From": from_phone,
        "To": "whatsapp:+447700900999",
        "Body": body,
    }
    params.update(extra)
    return InboundMessage.from_params(params)


@pytest.fixture
def dispatched(organization, whatsapp_config, make_booking, driver, fake_twilio):
    booking = make_booking(driver=driver, status=Booking.ASSIGNED)
    notify(organization, Message.DRIVER_DISPATCHED, booking)
    return booking


@pytest.mark.parametrize(
    "text,intent",
    [
        ("1", ACCEPT),
        ("Yes!", ACCEPT),
        ("okay", ACCEPT),
        ("2", DECLINE),
        ("Sorry, can't do it", DECLINE),
        ("picked up", START),
        ("Started", START),
        ("done.", COMPLETE),
        ("Dropped off", COMPLETE),
        ("what time is it", UNKNOWN),
        ("", UNKNOWN),
        ("okra soup", UNKNOWN),
    ],
)
def test_parse_intent(text, intent):
    assert parse_intent(text) == intent


def test_inbound_payload_requires_numbers():
    with pytest.raises(InvalidWebhookPayload):
        InboundMessage.from_params({"MessageSid": "SM1", "Body": "1"})


@pytest.mark.django_db
def test_full_job_lifecycle_over_whatsapp(dispatched, driver, fake_twilio):
    accepted = process_inbound(_inbound("1", sid="SMin0001"))
    assert accepted.outcome == "handled"
    assert accepted.intent == ACCEPT
    assert accepted.state == Conversation.AWAITING_START
    dispatched.refresh_from_db()
    driver.refresh_from_db()
    assert dispatched.driver_accepted is True
    assert dispatched.driver_accepted_at is not None
    assert driver.status == Driver.BUSY

    started = process_inbound(_inbound("picked up", sid="SMin0002"))
    assert started.state == Conversation.IN_PROGRESS
    dispatched.refresh_from_db()
    assert dispatched.status == Booking.IN_PROGRESS

    completed = process_inbound(_inbound("done", sid="SMin0003"))
    assert completed.state == Conversation.IDLE
    dispatched.refresh_from_db()
    driver.refresh_from_db()
    assert dispatched.status == Booking.COMPLETED
    assert driver.status == Driver.AVAILABLE

    conversation = Conversation.objects.get(driver=driver)
    assert conversation.state == Conversation.IDLE
    assert conversation.current_booking_id is None
    assert conversation.session_open() is True

    sent_types = list(
        Message.objects.filter(direction=Message.OUTBOUND)
        .order_by("id")
        .values_list("message_type", flat=True)
    )
    assert sent_types == [
        Message.DRIVER_DISPATCHED,
        Message.REPLY_ACCEPTED,
        Message.DRIVER_ACCEPTED,
        Message.REPLY_STARTED,
        Message.DRIVER_EN_ROUTE,
        Message.REPLY_COMPLETED,
        Message.TRIP_COMPLETED,
    ]
    assert Message.objects.filter(direction=Message.INBOUND).count() == 3


@pytest.mark.django_db
def test_decline_returns_booking_to_pending(dispatched, driver):
    result = process_inbound(_inbound("2"))

    assert result.intent == DECLINE
    assert result.state == Conversation.IDLE
    dispatched.refresh_from_db()
    assert dispatched.status == Booking.PENDING
    assert dispatched.driver_id is None
    assert dispatched.driver_notified is False


@pytest.mark.django_db
def test_unrecognised_reply_prompts_without_transition(dispatched, fake_twilio):
    result = process_inbound(_inbound("who is the customer?"))

    assert result.intent == UNKNOWN
    assert result.state == Conversation.AWAITING_ACCEPT
    assert "reply 1 to ACCEPT" in fake_twilio.sent[-1]["body"]
    dispatched.refresh_from_db()
    assert dispatched.driver_accepted is False


@pytest.mark.django_db
def test_reply_quoting_another_booking_is_logged_without_transition(
    organization, dispatched, make_booking, driver, fake_twilio
):
    other = make_booking(customer_name="Other Customer")
    Message.objects.create(
        organization=organization,
        booking=other,
        driver=driver,
        direction=Message.OUTBOUND,
        recipient_phone="+447700900001",
        message_type=Message.DRIVER_DISPATCHED,
        provider_sid="SMother",
    )
    sent_before = len(fake_twilio.sent)

    result = process_inbound(_inbound("1", OriginalRepliedMessageSid="SMother"))

    assert result.outcome == "ignored"
    assert result.state == Conversation.AWAITING_ACCEPT
    conversation = Conversation.objects.get(driver=driver)
    assert conversation.state == Conversation.AWAITING_ACCEPT
    assert conversation.current_booking_id == dispatched.pk
    dispatched.refresh_from_db()
    assert dispatched.driver_accepted is False
    logged = Message.objects.get(pk=result.message_id)
    assert logged.direction == Message.INBOUND
    assert logged.body == "1"
    assert len(fake_twilio.sent) == sent_before


@pytest.mark.django_db
def test_duplicate_inbound_delivery_is_ignored(dispatched):
    first = process_inbound(_inbound("1", sid="SMdup"))
    second = process_inbound(_inbound("1", sid="SMdup"))

    assert first.outcome == "handled"
    assert second.outcome == "duplicate"
    assert Message.objects.filter(direction=Message.INBOUND, provider_sid="SMdup").count() == 1


@pytest.mark.django_db
def test_unknown_sender_is_logged_as_not_found(organization, whatsapp_config, fake_twilio):
    result = process_inbound(_inbound("1", from_phone="whatsapp:+447700900777"))

    assert result.outcome == "not_found"
    message = Message.objects.get(pk=result.message_id)
    assert message.driver_id is None
    assert fake_twilio.sent == []


@pytest.mark.django_db
def test_unknown_receiving_number_is_not_found(db):
    result = process_inbound(_inbound("1"))

    assert result.outcome == "not_found"
    assert Message.objects.count() == 0


@pytest.mark.django_db
def test_idle_driver_gets_info_reply(organization, whatsapp_config, driver, fake_twilio):
    result = process_inbound(_inbound("1"))

    assert result.outcome == "handled"
    assert result.state == Conversation.IDLE
    assert fake_twilio.sent[-1]["body"].startswith("No active job.")


@pytest.mark.django_db
def test_reassignment_releases_previous_drivers_conversation(
    organization, tenant, dispatched, driver
):
    replacement = Driver.objects.create(organization=organization, name="Rita", phone="+447700900002")

    ledger.assign_driver(tenant, dispatched.pk, replacement.pk)

    conversation = Conversation.objects.get(driver=driver)
    assert conversation.state == Conversation.IDLE
    assert conversation.current_booking_id is None


@pytest.mark.django_db
def test_cancellation_releases_conversation(tenant, dispatched, driver):
    ledger.transition_status(tenant, dispatched.pk, Booking.CANCELLED)

    conversation = Conversation.objects.get(driver=driver)
    assert conversation.state == Conversation.IDLE


@pytest.mark.django_db
def test_reply_for_cancelled_booking_releases_conversation(dispatched, driver):
    Conversation.objects.filter(driver=driver).update(state=Conversation.AWAITING_START)
    Booking.objects.filter(pk=dispatched.pk).update(status=Booking.CANCELLED)

    result = process_inbound(_inbound("start"))

    assert result.state == Conversation.IDLE
    dispatched.refresh_from_db()
    assert dispatched.status == Booking.CANCELLED
