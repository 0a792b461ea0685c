from datetime import date
from decimal import Decimal

import pytest
from django.urls import reverse

from bookings.models import Booking
from core.exceptions import (
    AccountingNotConnected,
    AlreadyInvoiced,
    IncompleteBookings,
    InvalidLineItem,
    NoValidBookings,
)
from invoicing.models import Invoice, InvoiceAttempt
from invoicing.services import invoices
from invoicing.services.invoices import LineItem
from invoicing.services.xero import XeroError

DUE = date(2026, 11, 30)


def _create(tenant, bookings, **kwargs):
    kwargs.setdefault("contact_id", "contact-1")
    kwargs.setdefault("contact_name", "Acme Travel")
    kwargs.setdefault("due_date", DUE)
    return invoices.create_invoice_from_bookings(
        tenant, booking_ids=[booking.pk for booking in bookings], **kwargs
    )


@pytest.mark.django_db
def test_single_booking_invoice_keeps_amounts_in_minor_units(
    tenant, xero_connection, fake_xero, completed_booking
):
    booking = completed_booking(price_cents=5000)

    result = _create(tenant, [booking])

    assert result.success is True
    invoice = Invoice.objects.get()
    line = invoice.line_items[0]
    assert line["unit_amount"] == 5000
    assert line["line_amount"] == 5000
    assert line["booking_id"] == booking.pk
    assert invoice.subtotal_cents == 5000
    assert invoice.total_tax_cents == 1000
    assert invoice.total_cents == 6000
    assert invoice.xero_url.endswith("InvoiceID=inv-1")

    payload = fake_xero.invoice_posts[0].json["Invoices"][0]
    assert payload["Type"] == "ACCREC"
    assert payload["Contact"] == {"ContactID": "contact-1"}
    assert payload["DueDate"] == "2026-11-30"
    assert payload["LineItems"][0]["UnitAmount"] == 50.0
    assert payload["LineItems"][0]["AccountCode"] == "200"
    assert payload["LineItems"][0]["Description"].startswith(
        "Transport: Heathrow Terminal 5 → The Savoy, London ("
    )
    assert fake_xero.invoice_posts[0].tenant_id == "xero-tenant-1"

    booking.refresh_from_db()
    assert booking.payment_status == Booking.PAYMENT_INVOICED
    assert list(booking.invoices.all()) == [invoice]


@pytest.mark.django_db
def test_separate_mode_creates_one_invoice_per_booking(
    tenant, xero_connection, fake_xero, completed_booking
):
    bookings = [completed_booking(), completed_booking(price_cents=7000)]

    result = _create(tenant, bookings)

    assert result.success is True
    assert len(result.invoices) == 2
    assert len(fake_xero.invoice_posts) == 2
    assert Invoice.objects.count() == 2
    assert InvoiceAttempt.objects.filter(success=True).count() == 2
    assert all(len(outcome.booking_ids) == 1 for outcome in result.invoices)


@pytest.mark.django_db
def test_combined_mode_creates_single_invoice(tenant, xero_connection, fake_xero, completed_booking):
    bookings = [completed_booking(), completed_booking(), completed_booking()]
    waiting = LineItem(description="Waiting time", quantity=Decimal("0.5"), unit_amount=3000)

    result = _create(tenant, bookings, combine=True, extra_line_items=[waiting])

    assert result.success is True
    assert len(result.invoices) == 1
    payload = fake_xero.invoice_posts[0].json["Invoices"][0]
    assert payload["Reference"] == "Combined invoice for 3 bookings"
    assert len(payload["LineItems"]) == 4
    invoice = Invoice.objects.get()
    assert invoice.bookings.count() == 3
    assert invoice.line_items[-1]["line_amount"] == 1500
    assert invoice.subtotal_cents == 3 * 5000 + 1500


@pytest.mark.django_db
def test_extra_line_items_follow_their_booking_in_separate_mode(
    tenant, xero_connection, fake_xero, completed_booking
):
    first, second = completed_booking(), completed_booking()
    parking = LineItem(description="Parking", quantity=Decimal("1"), unit_amount=800, booking_id=second.pk)
    fee = LineItem(description="Booking fee", quantity=Decimal("1"), unit_amount=200, tax_type="NONE")

    _create(tenant, [first, second], extra_line_items=[parking, fee])

    descriptions = [
        [item["Description"] for item in call.json["Invoices"][0]["LineItems"]]
        for call in fake_xero.invoice_posts
    ]
    assert descriptions[0][1:] == ["Booking fee"]
    assert descriptions[1][1:] == ["Parking", "Booking fee"]


@pytest.mark.django_db
def test_incomplete_bookings_block_the_whole_batch(
    tenant, xero_connection, fake_xero, completed_booking, make_booking
):
    done = completed_booking()
    pending = make_booking()

    with pytest.raises(IncompleteBookings) as exc:
        _create(tenant, [done, pending])

    assert exc.value.count == 1
    assert fake_xero.calls == []
    assert Invoice.objects.count() == 0


@pytest.mark.django_db
def test_invoiced_booking_cannot_be_invoiced_again(
    tenant, xero_connection, fake_xero, completed_booking
):
    booking = completed_booking()
    _create(tenant, [booking])

    with pytest.raises(AlreadyInvoiced) as exc:
        _create(tenant, [booking, completed_booking()])

    assert exc.value.count == 1
    assert len(fake_xero.invoice_posts) == 1


@pytest.mark.django_db
def test_overlapping_request_cannot_invoice_the_same_booking(
    monkeypatch, tenant, xero_connection, fake_xero, completed_booking
):
    booking = completed_booking()
    refused = []

    def second_dispatcher_clicks(method, path, **kwargs):
        if method == "POST" and not refused:
            with pytest.raises(AlreadyInvoiced) as exc:
                _create(tenant, [booking])
            refused.append(exc.value)
        return fake_xero(method, path, **kwargs)

    monkeypatch.setattr("invoicing.services.xero.api_request", second_dispatcher_clicks)

    result = _create(tenant, [booking])

    assert result.success is True
    assert len(refused) == 1
    assert len(fake_xero.invoice_posts) == 1
    assert Invoice.objects.count() == 1


@pytest.mark.django_db
def test_failed_invoice_releases_booking_for_retry(tenant, xero_connection, fake_xero, completed_booking):
    booking = completed_booking()
    fake_xero.queue(XeroError("Xero is unavailable", status_code=503))

    assert _create(tenant, [booking]).success is False
    booking.refresh_from_db()
    assert booking.invoice_claimed_at is None
    assert list(invoices.list_invoiceable_bookings(tenant)) == [booking]

    retry = _create(tenant, [booking])

    assert retry.success is True
    booking.refresh_from_db()
    assert booking.payment_status == Booking.PAYMENT_INVOICED
    assert booking.invoice_claimed_at is not None


@pytest.mark.django_db
def test_unexpected_error_releases_claimed_bookings(tenant, xero_connection, fake_xero, completed_booking):
    first, second = completed_booking(), completed_booking()
    fake_xero.queue(RuntimeError("connection reset"))

    with pytest.raises(RuntimeError):
        _create(tenant, [first, second])

    assert not Booking.objects.filter(invoice_claimed_at__isnull=False).exists()
    assert Invoice.objects.count() == 0


@pytest.mark.django_db
def test_partial_failure_keeps_created_invoices(tenant, xero_connection, fake_xero, completed_booking):
    first, second = completed_booking(), completed_booking()
    fake_xero.queue(
        {"Invoices": [{"InvoiceID": "inv-ok", "InvoiceNumber": "INV-0042", "Status": "DRAFT"}]},
        XeroError("Contact not found", status_code=400),
    )

    result = _create(tenant, [first, second])

    assert result.success is False
    assert result.error == "Some invoices failed to create"
    assert [outcome.success for outcome in result.invoices] == [True, False]
    assert result.invoices[1].error == "Contact not found"
    assert result.as_dict()["invoices"][0]["xero_invoice_number"] == "INV-0042"

    first.refresh_from_db()
    second.refresh_from_db()
    assert first.payment_status == Booking.PAYMENT_INVOICED
    assert second.payment_status == Booking.PAYMENT_PENDING
    failed = InvoiceAttempt.objects.get(success=False)
    assert failed.booking_ids == [second.pk]
    assert failed.error_message == "Contact not found"


@pytest.mark.django_db
def test_invalid_extra_line_item_is_rejected_before_sending(
    tenant, xero_connection, fake_xero, completed_booking
):
    bad = LineItem(description="  ", quantity=Decimal("1"), unit_amount=100)

    with pytest.raises(InvalidLineItem):
        _create(tenant, [completed_booking()], extra_line_items=[bad])

    assert fake_xero.calls == []


@pytest.mark.django_db
def test_other_tenants_bookings_are_not_found(tenant, xero_connection, other_organization, make_booking):
    foreign = make_booking(org=other_organization, status=Booking.COMPLETED)

    with pytest.raises(NoValidBookings):
        _create(tenant, [foreign])


@pytest.mark.django_db
def test_invoicing_requires_connection(tenant, completed_booking):
    with pytest.raises(AccountingNotConnected):
        _create(tenant, [completed_booking()])

    assert invoices.can_create_invoices(tenant) == {"can_invoice": False, "reason": "Xero not connected"}


@pytest.mark.django_db
def test_invoiceable_bookings_exclude_invoiced(
    tenant, xero_connection, fake_xero, completed_booking, make_booking
):
    invoiced = completed_booking()
    open_booking = completed_booking()
    make_booking()
    _create(tenant, [invoiced])

    assert list(invoices.list_invoiceable_bookings(tenant)) == [open_booking]


@pytest.mark.django_db
def test_sync_invoice_status_updates_amounts(tenant, xero_connection, fake_xero, completed_booking):
    _create(tenant, [completed_booking()])
    invoice = Invoice.objects.get()
    fake_xero.queue(
        {"Invoices": [{"InvoiceID": "inv-1", "Status": "PAID", "AmountDue": 0, "AmountPaid": 60.0}]}
    )

    synced = invoices.sync_invoice_status(tenant, invoice.pk)

    assert synced.status == "PAID"
    assert synced.amount_due_cents == 0
    assert synced.amount_paid_cents == 6000
    assert fake_xero.calls[-1].path == "/Invoices/inv-1"


@pytest.mark.django_db
def test_invoice_api_reports_partial_failure(
    auth_client, xero_connection, fake_xero, completed_booking
):
    first, second = completed_booking(), completed_booking()
    fake_xero.queue(
        {"Invoices": [{"InvoiceID": "inv-ok", "InvoiceNumber": "INV-0001"}]},
        XeroError("Xero rate limit exceeded. Please try again later.", status_code=429),
    )

    response = auth_client.post(
        reverse("invoice-list"),
        {
            "contact_id": "contact-1",
            "contact_name": "Acme Travel",
            "bookings": [first.pk, second.pk],
            "due_date": "2026-11-30",
        },
        format="json",
    )

    assert response.status_code == 207
    assert response.data["success"] is False
    assert len(response.data["invoices"]) == 2


@pytest.mark.django_db
def test_invoice_api_creates_and_lists(auth_client, xero_connection, fake_xero, completed_booking):
    booking = completed_booking()

    response = auth_client.post(
        reverse("invoice-list"),
        {
            "contact_id": "contact-1",
            "contact_name": "Acme Travel",
            "bookings": [booking.pk],
            "due_date": "2026-11-30",
            "extra_line_items": [
                {"description": "Meet and greet", "quantity": "1", "unit_amount": 1500}
            ],
        },
        format="json",
    )

    assert response.status_code == 201
    listing = auth_client.get(reverse("invoice-list"))
    assert listing.status_code == 200
    assert listing.data[0]["bookings"] == [booking.pk]
    assert listing.data[0]["subtotal_cents"] == 6500


@pytest.mark.django_db
def test_invoice_api_rejects_incomplete_batch(auth_client, xero_connection, fake_xero, make_booking):
    response = auth_client.post(
        reverse("invoice-list"),
        {
            "contact_id": "contact-1",
            "contact_name": "Acme Travel",
            "bookings": [make_booking().pk],
            "due_date": "2026-11-30",
        },
        format="json",
    )

    assert response.status_code == 400
    assert response.data["code"] == "incomplete_bookings"
    assert response.data["count"] == 1
