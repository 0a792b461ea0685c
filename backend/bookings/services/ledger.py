"""
Booking ledger: the authoritative reads and writes on bookings and drivers.

Every tenant-facing function takes a resolved ``TenantContext`` and filters on
its organization. ``mark_payment_status`` is called by the payment webhooks and
the invoicing flow and therefore takes a booking directly.
"""

from __future__ import annotations

import logging

from django.db import transaction

from accounts.models import Membership
from accounts.tenancy import TenantContext
from core.exceptions import (
    BookingNotFound,
    DriverNotFound,
    InvalidStatusTransition,
    RoleNotPermitted,
)

from bookings.models import Booking, Driver

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    Booking.PENDING: {Booking.ASSIGNED, Booking.CANCELLED},
    Booking.ASSIGNED: {Booking.IN_PROGRESS, Booking.PENDING, Booking.CANCELLED},
    Booking.IN_PROGRESS: {Booking.COMPLETED, Booking.CANCELLED},
    Booking.COMPLETED: set(),
    Booking.CANCELLED: set(),
}
DRIVER_SETTABLE_STATUSES = {Booking.IN_PROGRESS, Booking.COMPLETED}

SETTLED_PAYMENT_STATUSES = {
    Booking.PAYMENT_PAID,
    Booking.PAYMENT_PARTIALLY_REFUNDED,
    Booking.PAYMENT_REFUNDED,
    Booking.PAYMENT_INVOICED,
}
UNSETTLED_PAYMENT_STATUSES = {
    Booking.PAYMENT_PENDING,
    Booking.PAYMENT_PROCESSING,
    Booking.PAYMENT_FAILED,
}

BOOKING_FIELDS = {
    "customer_name",
    "customer_phone",
    "customer_email",
    "pickup_location",
    "dropoff_location",
    "pickup_time",
    "passengers",
    "vehicle_class",
    "distance",
    "duration",
    "is_return",
    "price_cents",
    "currency",
    "notes",
}
DRIVER_FIELDS = {
    "name",
    "phone",
    "vehicle",
    "vehicle_colour",
    "plate",
    "location",
    "notes",
    "whatsapp_verified",
    "whatsapp_opted_in",
}


def booking_queryset(tenant: TenantContext):
    queryset = Booking.objects.filter(organization=tenant.organization).select_related("driver")
    if tenant.is_driver:
        if tenant.driver_id is None:
            return queryset.none()
        queryset = queryset.filter(driver_id=tenant.driver_id)
    return queryset


def list_bookings(tenant: TenantContext, status: str | None = None):
    queryset = booking_queryset(tenant).order_by("-pickup_time", "-id")
    if status:
        queryset = queryset.filter(status=status)
    return queryset


def get_booking(tenant: TenantContext, booking_id) -> Booking:
    try:
        return booking_queryset(tenant).get(pk=booking_id)
    except (Booking.DoesNotExist, ValueError, TypeError):
        raise BookingNotFound()


def create_booking(tenant: TenantContext, **fields) -> Booking:
    require_staff(tenant)
    return _create_booking(tenant.organization, fields)


def create_widget_booking(organization, **fields) -> Booking:
    """Intake from the public booking widget; there is no signed-in caller."""
    return _create_booking(organization, fields)


def _create_booking(organization, fields: dict) -> Booking:
    unknown = set(fields) - BOOKING_FIELDS
    if unknown:
        raise ValueError(f"Unknown booking fields: {', '.join(sorted(unknown))}")
    fields.setdefault("currency", organization.default_currency)
    booking = Booking.objects.create(
        organization=organization,
        status=Booking.PENDING,
        payment_status=Booking.PAYMENT_PENDING,
        **fields,
    )
    logger.info("Booking %s created for organization %s", booking.pk, organization.pk)
    return booking


def assign_driver(tenant: TenantContext, booking_id, driver_id) -> Booking:
    """Bind a driver to the booking and mark it ASSIGNED. Sends nothing."""
    require_staff(tenant)
    driver = get_driver(tenant, driver_id)
    with transaction.atomic():
        booking = _lock_booking(tenant, booking_id)
        if booking.status not in (Booking.PENDING, Booking.ASSIGNED):
            raise InvalidStatusTransition(
                f"Cannot assign a driver to a booking that is {booking.status}."
            )
        update_fields = ["driver", "status", "updated_at"]
        if booking.driver_id != driver.pk:
            booking.driver_notified = False
            booking.driver_accepted = False
            booking.driver_accepted_at = None
            update_fields += ["driver_notified", "driver_accepted", "driver_accepted_at"]
        booking.driver = driver
        booking.status = Booking.ASSIGNED
        booking.save(update_fields=update_fields)
    return booking


def transition_status(tenant: TenantContext, booking_id, status: str) -> Booking:
    if status not in ALLOWED_TRANSITIONS:
        raise InvalidStatusTransition(f"Unknown booking status: {status}.")
    with transaction.atomic():
        booking = _lock_booking(tenant, booking_id)
        if tenant.is_driver:
            if booking.driver_id is None or booking.driver_id != tenant.driver_id:
                raise RoleNotPermitted("Drivers can only update their own bookings.")
            if status not in DRIVER_SETTABLE_STATUSES:
                raise RoleNotPermitted(
                    "Drivers can only mark bookings as in progress or completed."
                )
        if booking.status == status:
            return booking
        if status not in ALLOWED_TRANSITIONS[booking.status]:
            raise InvalidStatusTransition(
                f"Cannot move a booking from {booking.status} to {status}."
            )
        apply_status(booking, status)
    return booking


def apply_status(booking: Booking, status: str) -> Booking:
    """Write a lifecycle status without the caller checks; used by trusted flows."""
    update_fields = ["status", "updated_at"]
    booking.status = status
    if status == Booking.PENDING:
        booking.driver = None
        booking.driver_notified = False
        booking.driver_accepted = False
        booking.driver_accepted_at = None
        update_fields += ["driver", "driver_notified", "driver_accepted", "driver_accepted_at"]
    booking.save(update_fields=update_fields)
    return booking


def mark_payment_status(booking: Booking, status: str, note: str | None = None) -> bool:
    """
    Move the booking's payment status forward.

    A settled booking never returns to an unsettled status and REFUNDED is final.
    Returns False when the write was refused as a regression.
    """
    current = booking.payment_status
    if current == Booking.PAYMENT_REFUNDED and status != Booking.PAYMENT_REFUNDED:
        logger.info(
            "Ignoring payment status %s for refunded booking %s", status, booking.pk
        )
        return False
    if current in SETTLED_PAYMENT_STATUSES and status in UNSETTLED_PAYMENT_STATUSES:
        logger.info(
            "Ignoring payment status %s for booking %s already %s", status, booking.pk, current
        )
        return False

    update_fields = ["payment_status", "updated_at"]
    booking.payment_status = status
    if note:
        booking.notes = f"{booking.notes}{note}"
        update_fields.append("notes")
    booking.save(update_fields=update_fields)
    return True


def list_drivers(tenant: TenantContext, status: str | None = None):
    queryset = Driver.objects.filter(organization=tenant.organization)
    if status:
        queryset = queryset.filter(status=status)
    return queryset


def get_driver(tenant: TenantContext, driver_id) -> Driver:
    try:
        return Driver.objects.get(organization=tenant.organization, pk=driver_id)
    except (Driver.DoesNotExist, ValueError, TypeError):
        raise DriverNotFound()


def create_driver(tenant: TenantContext, **fields) -> Driver:
    require_staff(tenant)
    unknown = set(fields) - DRIVER_FIELDS
    if unknown:
        raise ValueError(f"Unknown driver fields: {', '.join(sorted(unknown))}")
    return Driver.objects.create(
        organization=tenant.organization,
        status=Driver.AVAILABLE,
        rating=5,
        **fields,
    )


def update_driver(tenant: TenantContext, driver_id, **fields) -> Driver:
    require_staff(tenant)
    driver = get_driver(tenant, driver_id)
    changed = []
    for field, value in fields.items():
        if field not in DRIVER_FIELDS or value is None:
            continue
        setattr(driver, field, value)
        changed.append(field)
    if changed:
        driver.save(update_fields=changed)
    return driver


def set_driver_status(tenant: TenantContext, driver_id, status: str) -> Driver:
    if status not in dict(Driver.STATUSES):
        raise InvalidStatusTransition(f"Unknown driver status: {status}.")
    driver = get_driver(tenant, driver_id)
    if tenant.is_driver and tenant.driver_id != driver.pk:
        raise RoleNotPermitted("Drivers can only update their own status.")
    driver.status = status
    driver.save(update_fields=["status"])
    return driver


def remove_driver(tenant: TenantContext, driver_id) -> None:
    if tenant.role != Membership.ADMIN:
        raise RoleNotPermitted()
    driver = get_driver(tenant, driver_id)
    driver.delete()


def require_staff(tenant: TenantContext) -> None:
    if tenant.role not in Membership.STAFF_ROLES:
        raise RoleNotPermitted()


def _lock_booking(tenant: TenantContext, booking_id) -> Booking:
    try:
        return booking_queryset(tenant).select_for_update(of=("self",)).get(pk=booking_id)
    except (Booking.DoesNotExist, ValueError, TypeError):
        raise BookingNotFound()
