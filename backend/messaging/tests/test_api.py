import pytest
from django.urls import reverse
from rest_framework.test import APIClient

from accounts.models import Membership
from messaging.models import Message, WhatsAppConfig


@pytest.fixture
def webhook_client():
    return APIClient()


@pytest.mark.django_db
def test_config_masks_auth_token(auth_client, whatsapp_config):
    response = auth_client.get(reverse("whatsapp-config"))

    assert response.status_code == 200
    assert response.data["configured"] is True
    assert response.data["masked_auth_token"] == "••••••••1234"
    assert "auth_token" not in response.data


@pytest.mark.django_db
def test_config_without_setup(auth_client):
    assert auth_client.get(reverse("whatsapp-config")).data == {"configured": False}


@pytest.mark.django_db
def test_saving_masked_token_keeps_existing_secret(auth_client, whatsapp_config):
    response = auth_client.put(
        reverse("whatsapp-config"),
        {"auth_token": "••••••••1234", "whatsapp_number": "whatsapp:+447700900888"},
        format="json",
    )

    assert response.status_code == 200
    whatsapp_config.refresh_from_db()
    assert whatsapp_config.auth_token == "secret-token-1234"
    assert whatsapp_config.whatsapp_number == "+447700900888"


@pytest.mark.django_db
def test_first_save_requires_auth_token(auth_client, organization):
    response = auth_client.put(
        reverse("whatsapp-config"),
        {"account_sid": "AC" + "2" * 32, "whatsapp_number": "+447700900777"},
        format="json",
    )

    assert response.status_code == 400
    assert "auth_token" in response.data
    assert not WhatsAppConfig.objects.filter(organization=organization).exists()


@pytest.mark.django_db
def test_dispatcher_cannot_read_config(dispatcher_user, whatsapp_config):
    client = APIClient()
    client.force_authenticate(dispatcher_user)

    assert client.get(reverse("whatsapp-config")).status_code == 403


@pytest.mark.django_db
def test_test_message_endpoint(auth_client, whatsapp_config, fake_twilio):
    response = auth_client.post(reverse("whatsapp-test"), {"phone": "+447700900123"}, format="json")

    assert response.status_code == 200
    assert response.data["success"] is True
    assert Message.objects.get().message_type == Message.TEST


@pytest.mark.django_db
def test_incoming_webhook_answers_with_empty_twiml(
    webhook_client, whatsapp_config, driver, fake_twilio
):
    response = webhook_client.post(
        reverse("whatsapp-incoming-webhook"),
        {
            "MessageSid": "SMinbound1",
            "From": "whatsapp:+447700900001",
            "To": "whatsapp:+447700900999",
            "Body": "hello",
        },
    )

    assert response.status_code == 200
    assert response["Content-Type"].startswith("text/xml")
    assert response.content.decode() == '<?xml version="1.0" encoding="UTF-8"?><Response></Response>'
    assert Message.objects.filter(direction=Message.INBOUND, provider_sid="SMinbound1").exists()


@pytest.mark.django_db
def test_incoming_webhook_rejects_bad_signature(settings, webhook_client, whatsapp_config, driver):
    settings.TWILIO_VALIDATE_SIGNATURES = True

    response = webhook_client.post(
        reverse("whatsapp-incoming-webhook"),
        {
            "MessageSid": "SMinbound2",
            "From": "whatsapp:+447700900001",
            "To": "whatsapp:+447700900999",
            "Body": "1",
        },
        HTTP_X_TWILIO_SIGNATURE="forged",
    )

    assert response.status_code == 403
    assert not Message.objects.filter(direction=Message.INBOUND).exists()


@pytest.mark.django_db
def test_incoming_webhook_requires_numbers(webhook_client):
    response = webhook_client.post(reverse("whatsapp-incoming-webhook"), {"Body": "1"})

    assert response.status_code == 400


@pytest.mark.django_db
def test_status_webhook_acknowledges_with_ok(webhook_client, organization, whatsapp_config):
    message = Message.objects.create(
        organization=organization,
        direction=Message.OUTBOUND,
        recipient_phone="+447700900100",
        message_type=Message.BOOKING_CONFIRMED,
        provider_sid="SMstatus1",
        status=Message.SENT,
    )

    response = webhook_client.post(
        reverse("whatsapp-status-webhook"),
        {"MessageSid": "SMstatus1", "MessageStatus": "delivered"},
    )

    assert response.status_code == 200
    assert response.content == b"OK"
    message.refresh_from_db()
    assert message.status == Message.DELIVERED


@pytest.mark.django_db
def test_status_webhook_for_unknown_message_is_acknowledged(webhook_client):
    response = webhook_client.post(
        reverse("whatsapp-status-webhook"),
        {"MessageSid": "SMmissing", "MessageStatus": "delivered"},
    )

    assert response.status_code == 200


@pytest.mark.django_db
def test_message_log_is_staff_only(make_member, organization, driver, auth_client):
    driver_user = make_member(organization, Membership.DRIVER, driver=driver)
    client = APIClient()
    client.force_authenticate(driver_user)
    Message.objects.create(
        organization=organization,
        direction=Message.OUTBOUND,
        recipient_phone="+447700900100",
        message_type=Message.MANUAL,
        body="Running five minutes late",
    )

    assert client.get(reverse("message-list")).status_code == 403
    staff_response = auth_client.get(reverse("message-list"))
    assert staff_response.status_code == 200
    assert [row["body"] for row in staff_response.data] == ["Running five minutes late"]
