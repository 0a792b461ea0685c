"""
Turn completed bookings into Xero sales invoices.

A batch is checked as a whole before anything is sent: every booking must be
COMPLETED and none may already be invoiced or claimed by a batch in flight. The
bookings are claimed before the first Xero call. After that each Xero call stands on
its own; an invoice that was created is never rolled back because a later one
in the same batch failed. Amounts are kept in minor units and converted to
decimal only in the Xero payload.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from accounts.tenancy import TenantContext
from bookings.models import Booking
from bookings.services import ledger
from core.exceptions import (
    AccountingNotConnected,
    AlreadyInvoiced,
    IncompleteBookings,
    InvalidLineItem,
    InvoiceNotFound,
    NoValidBookings,
    ProviderUnavailable,
)
from invoicing.models import Invoice, InvoiceAttempt

from . import oauth, xero

logger = logging.getLogger(__name__)

DEFAULT_TAX_TYPE = "OUTPUT2"
TAX_RATES = {"OUTPUT2": Decimal("0.20"), "NONE": Decimal("0")}


def _round_cents(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _to_cents(value, fallback: int) -> int:
    if value is None:
        return fallback
    return _round_cents(Decimal(str(value)) * 100)


@dataclass
class LineItem:
    description: str
    quantity: Decimal
    unit_amount: int
    tax_type: str = DEFAULT_TAX_TYPE
    booking_id: int | None = None

    @property
    def line_amount(self) -> int:
        return _round_cents(Decimal(self.quantity) * self.unit_amount)

    @property
    def tax_amount(self) -> int:
        return _round_cents(self.line_amount * TAX_RATES.get(self.tax_type, Decimal("0")))

    def validate(self) -> None:
        if not (self.description or "").strip():
            raise InvalidLineItem("Line item description cannot be empty.")
        if Decimal(self.quantity) <= 0:
            raise InvalidLineItem("Line item quantity must be greater than 0.")
        if self.unit_amount < 0:
            raise InvalidLineItem("Line item unit amount cannot be negative.")
        if self.tax_type not in TAX_RATES:
            raise InvalidLineItem("Invalid tax type. Must be OUTPUT2 (VAT) or NONE.")

    def as_record(self) -> dict:
        return {
            "description": self.description,
            "quantity": float(self.quantity),
            "unit_amount": self.unit_amount,
            "tax_type": self.tax_type,
            "line_amount": self.line_amount,
            "booking_id": self.booking_id,
        }

    def as_xero(self) -> dict:
        return {
            "Description": self.description,
            "Quantity": float(self.quantity),
            "UnitAmount": float(Decimal(self.unit_amount) / 100),
            "TaxType": self.tax_type,
            "AccountCode": settings.XERO_SALES_ACCOUNT_CODE,
        }


@dataclass
class InvoiceOutcome:
    success: bool
    booking_ids: list[int]
    invoice_id: int | None = None
    xero_invoice_number: str = ""
    xero_url: str = ""
    error: str = ""


@dataclass
class InvoiceBatchResult:
    success: bool
    invoices: list[InvoiceOutcome] = field(default_factory=list)
    error: str = ""

    def as_dict(self) -> dict:
        return asdict(self)


def booking_line_item(booking: Booking) -> LineItem:
    pickup_date = timezone.localtime(booking.pickup_time).strftime("%d/%m/%Y")
    return LineItem(
        description=f"Transport: {booking.pickup_location} → {booking.dropoff_location} ({pickup_date})",
        quantity=Decimal("1"),
        unit_amount=booking.price_cents,
        tax_type=DEFAULT_TAX_TYPE,
        booking_id=booking.pk,
    )


def _invoiced_booking_ids(bookings) -> set[int]:
    ids = [booking.pk for booking in bookings]
    linked = set(
        Invoice.bookings.through.objects.filter(booking_id__in=ids).values_list("booking_id", flat=True)
    )
    flagged = {
        booking.pk
        for booking in bookings
        if booking.payment_status == Booking.PAYMENT_INVOICED or booking.invoice_claimed_at is not None
    }
    return linked | flagged


def _claim_bookings(bookings) -> None:
    """Reserve the bookings for this batch before Xero is called; all or none."""
    ids = [booking.pk for booking in bookings]
    with transaction.atomic():
        claimed = (
            Booking.objects.filter(pk__in=ids, invoice_claimed_at__isnull=True)
            .exclude(payment_status=Booking.PAYMENT_INVOICED)
            .exclude(invoices__isnull=False)
            .update(invoice_claimed_at=timezone.now())
        )
        if claimed != len(ids):
            raise AlreadyInvoiced(len(ids) - claimed)


def _release_claims(booking_ids) -> None:
    if booking_ids:
        Booking.objects.filter(pk__in=list(booking_ids)).update(invoice_claimed_at=None)


def create_invoice_from_bookings(
    tenant: TenantContext,
    *,
    contact_id: str,
    contact_name: str,
    booking_ids,
    extra_line_items=(),
    combine: bool = False,
    due_date: date,
) -> InvoiceBatchResult:
    ledger.require_staff(tenant)
    extras = list(extra_line_items)
    for item in extras:
        item.validate()

    bookings = list(
        Booking.objects.filter(organization=tenant.organization, pk__in=list(booking_ids)).order_by(
            "pickup_time", "id"
        )
    )
    if not bookings:
        raise NoValidBookings()

    incomplete = [booking for booking in bookings if booking.status != Booking.COMPLETED]
    if incomplete:
        raise IncompleteBookings(len(incomplete))

    invoiced = _invoiced_booking_ids(bookings)
    if invoiced:
        raise AlreadyInvoiced(len(invoiced))

    connection = oauth.get_connection(tenant.organization)
    if connection is None:
        raise AccountingNotConnected()

    invoice_date = timezone.localdate()
    if combine:
        groups = [
            (
                bookings,
                [booking_line_item(booking) for booking in bookings] + extras,
                f"Combined invoice for {len(bookings)} bookings" if len(bookings) > 1 else "",
            )
        ]
    else:
        unassigned = [item for item in extras if item.booking_id is None]
        if unassigned and len(bookings) > 1:
            logger.warning(
                "%s extra line item(s) without a booking are attached to each of %s separate invoices",
                len(unassigned),
                len(bookings),
            )
        groups = [
            (
                [booking],
                [booking_line_item(booking)]
                + [item for item in extras if item.booking_id in (booking.pk, None)],
                "",
            )
            for booking in bookings
        ]

    _claim_bookings(bookings)
    unsettled = {booking.pk for booking in bookings}
    outcomes = []
    try:
        for group_bookings, line_items, reference in groups:
            outcome = _create_invoice(
                tenant,
                connection,
                contact_id=contact_id,
                contact_name=contact_name,
                bookings=group_bookings,
                line_items=line_items,
                reference=reference,
                invoice_date=invoice_date,
                due_date=due_date,
            )
            if outcome.success:
                unsettled.difference_update(outcome.booking_ids)
            outcomes.append(outcome)
    finally:
        # Failed or unreached bookings can be invoiced again later.
        _release_claims(unsettled)
    success = all(outcome.success for outcome in outcomes)
    return InvoiceBatchResult(
        success=success,
        invoices=outcomes,
        error="" if success else "Some invoices failed to create",
    )


def _create_invoice(
    tenant: TenantContext,
    connection,
    *,
    contact_id: str,
    contact_name: str,
    bookings: list[Booking],
    line_items: list[LineItem],
    reference: str,
    invoice_date: date,
    due_date: date,
) -> InvoiceOutcome:
    booking_ids = [booking.pk for booking in bookings]
    payload = {
        "Type": "ACCREC",
        "Contact": {"ContactID": contact_id},
        "Date": invoice_date.isoformat(),
        "DueDate": due_date.isoformat(),
        "LineItems": [item.as_xero() for item in line_items],
        "Status": "DRAFT",
    }
    if reference:
        payload["Reference"] = reference

    try:
        response = oauth.authorized_request(
            connection, "POST", "/Invoices", json={"Invoices": [payload]}
        )
        created = (response.get("Invoices") or [None])[0]
        if not created or not created.get("InvoiceID"):
            raise xero.XeroError("Failed to create invoice in Xero")
    except (xero.XeroError, AccountingNotConnected) as exc:
        error = str(exc)
        logger.warning("Xero invoice failed for bookings %s: %s", booking_ids, error)
        InvoiceAttempt.objects.create(
            organization=tenant.organization,
            booking_ids=booking_ids,
            success=False,
            error_message=error,
            created_by=tenant.user,
        )
        return InvoiceOutcome(success=False, booking_ids=booking_ids, error=error)

    subtotal = sum(item.line_amount for item in line_items)
    total_tax = sum(item.tax_amount for item in line_items)
    total = _to_cents(created.get("Total"), subtotal + total_tax)
    xero_invoice_id = created["InvoiceID"]

    with transaction.atomic():
        invoice = Invoice.objects.create(
            organization=tenant.organization,
            xero_invoice_id=xero_invoice_id,
            xero_invoice_number=created.get("InvoiceNumber") or "",
            status=created.get("Status") or "DRAFT",
            xero_contact_id=contact_id,
            contact_name=contact_name,
            reference=reference,
            line_items=[item.as_record() for item in line_items],
            subtotal_cents=_to_cents(created.get("SubTotal"), subtotal),
            total_tax_cents=_to_cents(created.get("TotalTax"), total_tax),
            total_cents=total,
            amount_due_cents=_to_cents(created.get("AmountDue"), total),
            amount_paid_cents=_to_cents(created.get("AmountPaid"), 0),
            currency_code=created.get("CurrencyCode") or "GBP",
            invoice_date=invoice_date,
            due_date=due_date,
            xero_url=xero.INVOICE_DEEP_LINK.format(invoice_id=xero_invoice_id),
            created_by=tenant.user,
        )
        invoice.bookings.set(bookings)
        InvoiceAttempt.objects.create(
            organization=tenant.organization,
            invoice=invoice,
            booking_ids=booking_ids,
            success=True,
            created_by=tenant.user,
        )
        for booking in bookings:
            ledger.mark_payment_status(booking, Booking.PAYMENT_INVOICED)

    logger.info("Xero invoice %s created for bookings %s", invoice.xero_invoice_number, booking_ids)
    return InvoiceOutcome(
        success=True,
        booking_ids=booking_ids,
        invoice_id=invoice.pk,
        xero_invoice_number=invoice.xero_invoice_number,
        xero_url=invoice.xero_url,
    )


def list_invoiceable_bookings(tenant: TenantContext):
    ledger.require_staff(tenant)
    return (
        ledger.booking_queryset(tenant)
        .filter(status=Booking.COMPLETED, invoices__isnull=True, invoice_claimed_at__isnull=True)
        .exclude(payment_status=Booking.PAYMENT_INVOICED)
        .order_by("-pickup_time", "-id")
    )


def can_create_invoices(tenant: TenantContext) -> dict:
    if oauth.get_connection(tenant.organization) is None:
        return {"can_invoice": False, "reason": "Xero not connected"}
    return {"can_invoice": True, "reason": None}


def list_invoices(tenant: TenantContext, status: str | None = None):
    ledger.require_staff(tenant)
    queryset = Invoice.objects.filter(organization=tenant.organization).prefetch_related("bookings")
    if status:
        queryset = queryset.filter(status=status)
    return queryset


def sync_invoice_status(tenant: TenantContext, invoice_id) -> Invoice:
    ledger.require_staff(tenant)
    invoice = Invoice.objects.filter(organization=tenant.organization, pk=invoice_id).first()
    if invoice is None:
        raise InvoiceNotFound()
    connection = oauth.get_connection(tenant.organization)
    if connection is None:
        raise AccountingNotConnected()
    try:
        response = oauth.authorized_request(connection, "GET", f"/Invoices/{invoice.xero_invoice_id}")
    except xero.XeroError as exc:
        logger.warning("Failed to fetch Xero invoice %s: %s", invoice.xero_invoice_id, exc)
        raise ProviderUnavailable()
    remote = (response.get("Invoices") or [None])[0]
    if not remote:
        raise ProviderUnavailable("Failed to fetch invoice from Xero.")

    invoice.status = remote.get("Status") or invoice.status
    invoice.amount_due_cents = _to_cents(remote.get("AmountDue"), invoice.amount_due_cents)
    invoice.amount_paid_cents = _to_cents(remote.get("AmountPaid"), invoice.amount_paid_cents)
    invoice.save(update_fields=["status", "amount_due_cents", "amount_paid_cents", "updated_at"])
    return invoice
