import pytest

from messaging.models import Message
from messaging.services.conversations import (
    InvalidWebhookPayload,
    StatusCallback,
    apply_status_callback,
)


def _callback(status, sid="SM0001", **extra):
    params = {"MessageSid": sid, "MessageStatus": status}
    params.update(extra)
    return StatusCallback.from_params(params)


@pytest.fixture
def outbound(organization):
    return Message.objects.create(
        organization=organization,
        direction=Message.OUTBOUND,
        recipient_phone="+447700900100",
        message_type=Message.BOOKING_CONFIRMED,
        provider_sid="SM0001",
        status=Message.QUEUED,
    )


@pytest.mark.django_db
def test_status_only_moves_forward(outbound):
    assert apply_status_callback(_callback("delivered")).outcome == "applied"

    stale = apply_status_callback(_callback("sent"))
    assert stale.outcome == "noop"
    outbound.refresh_from_db()
    assert outbound.status == Message.DELIVERED

    assert apply_status_callback(_callback("read")).status == Message.READ
    outbound.refresh_from_db()
    assert outbound.status == Message.READ


@pytest.mark.django_db
def test_failed_is_terminal(outbound):
    failed = apply_status_callback(_callback("undelivered", ErrorCode="63016"))
    assert failed.outcome == "applied"
    outbound.refresh_from_db()
    assert outbound.status == Message.FAILED
    assert outbound.error_message == "Error code: 63016"

    late_read = apply_status_callback(_callback("read"))
    assert late_read.outcome == "noop"
    outbound.refresh_from_db()
    assert outbound.status == Message.FAILED


@pytest.mark.django_db
def test_failure_after_delivery_is_ignored(outbound):
    apply_status_callback(_callback("delivered"))

    result = apply_status_callback(_callback("failed", ErrorMessage="Late failure"))

    assert result.outcome == "noop"
    outbound.refresh_from_db()
    assert outbound.status == Message.DELIVERED
    assert outbound.error_message == ""


@pytest.mark.django_db
def test_unknown_sid_is_not_found(outbound):
    result = apply_status_callback(_callback("delivered", sid="SMmissing"))

    assert result.outcome == "not_found"
    outbound.refresh_from_db()
    assert outbound.status == Message.QUEUED


@pytest.mark.django_db
def test_unmapped_provider_status_is_noop(outbound):
    assert apply_status_callback(_callback("receiving")).outcome == "noop"


def test_callback_requires_sid_and_status():
    with pytest.raises(InvalidWebhookPayload):
        StatusCallback.from_params({"MessageSid": "SM1"})
