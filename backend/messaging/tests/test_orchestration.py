from datetime import timedelta

import pytest
from django.utils import timezone
from twilio.base.exceptions import TwilioRestException

from accounts.models import Membership
from accounts.tenancy import resolve_tenant
from bookings.models import Booking
from core.exceptions import RoleNotPermitted
from messaging.models import Message
from messaging.services import orchestration


@pytest.mark.django_db
def test_assignment_stands_when_notifications_fail(
    tenant, whatsapp_config, make_booking, driver, fake_twilio
):
    fake_twilio.fail_with = TwilioRestException(500, "https://api.twilio.com", msg="Service unavailable")
    booking = make_booking()

    result = orchestration.assign_driver_with_notification(tenant, booking.pk, driver.pk)

    assert result.success is True
    assert result.notifications_succeeded is False
    dispatch = result.side_effect("driver_dispatch")
    assert dispatch.success is False
    assert "Service unavailable" in dispatch.error
    booking.refresh_from_db()
    assert booking.status == Booking.ASSIGNED
    assert booking.driver_id == driver.pk
    assert booking.driver_notified is False
    assert Message.objects.filter(status=Message.FAILED).count() == 2


@pytest.mark.django_db
def test_assignment_notifies_driver_and_customer(
    tenant, whatsapp_config, make_booking, driver, fake_twilio
):
    booking = make_booking()

    result = orchestration.assign_driver_with_notification(tenant, booking.pk, driver.pk)

    assert result.notifications_succeeded is True
    assert [effect.name for effect in result.side_effects] == [
        "driver_dispatch",
        "customer_driver_assigned",
    ]
    assert [params["to"] for params in fake_twilio.sent] == [
        "whatsapp:+447700900001",
        "whatsapp:+447700900100",
    ]
    payload = result.as_dict()
    assert payload["success"] is True
    assert payload["booking"] == booking.pk


@pytest.mark.django_db
def test_crashing_side_effect_is_recorded(monkeypatch, tenant, make_booking, driver):
    def explode(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr("messaging.services.orchestration.notify", explode)
    booking = make_booking()

    result = orchestration.assign_driver_with_notification(tenant, booking.pk, driver.pk)

    assert result.success is True
    assert result.side_effect("driver_dispatch").error == "boom"
    booking.refresh_from_db()
    assert booking.status == Booking.ASSIGNED


@pytest.mark.django_db
def test_assignment_without_whatsapp_has_no_side_effects(tenant, make_booking, driver, fake_twilio):
    booking = make_booking()

    result = orchestration.assign_driver_with_notification(
        tenant, booking.pk, driver.pk, send_whatsapp=False
    )

    assert result.side_effects == []
    assert result.notifications_succeeded is True
    assert fake_twilio.sent == []


@pytest.mark.django_db
def test_create_booking_sends_confirmation(tenant, whatsapp_config, fake_twilio):
    result = orchestration.create_booking_with_notification(
        tenant,
        customer_name="Carla Customer",
        customer_phone="+447700900100",
        pickup_location="Gatwick North",
        dropoff_location="Brighton Pier",
        pickup_time=timezone.now() + timedelta(days=1),
        price_cents=8500,
    )

    assert result.side_effect("customer_booking_confirmed").success is True
    result.booking.refresh_from_db()
    assert result.booking.customer_notified is True
    assert result.booking.status == Booking.PENDING


@pytest.mark.django_db
def test_driver_role_cannot_message_drivers(
    make_member, organization, make_booking, driver, fake_twilio
):
    driver_user = make_member(organization, Membership.DRIVER, driver=driver)
    booking = make_booking(driver=driver, status=Booking.ASSIGNED)

    with pytest.raises(RoleNotPermitted):
        orchestration.send_driver_message(
            resolve_tenant(driver_user), booking.pk, driver.pk, "Hello"
        )
    assert fake_twilio.sent == []


@pytest.mark.django_db
def test_driver_message_goes_to_driver(tenant, whatsapp_config, make_booking, driver, fake_twilio):
    booking = make_booking(driver=driver, status=Booking.ASSIGNED)

    result = orchestration.send_driver_message(tenant, booking.pk, driver.pk, "Gate B please")

    assert result.success is True
    assert fake_twilio.sent[0]["to"] == "whatsapp:+447700900001"
    message = Message.objects.get(pk=result.message_id)
    assert message.message_type == Message.MANUAL
    assert message.driver_id == driver.pk
