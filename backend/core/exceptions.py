"""
Typed failures raised by the orchestration services.

Each class is a DRF ``APIException`` so a view can let it propagate and the
framework renders ``{"detail": ..., "code": ...}`` with the right status.
Validation failures that concern a batch carry the offending ``count``.
"""

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler


class DispatchError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "The request could not be completed."
    default_code = "dispatch_error"

    def __init__(self, detail=None, code=None, **extra):
        super().__init__(detail=detail, code=code)
        self.extra = extra

    def as_payload(self) -> dict:
        payload = {"detail": str(self.detail), "code": self.get_codes()}
        payload.update(self.extra)
        return payload


class Unauthenticated(DispatchError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Unauthenticated: please sign in."
    default_code = "unauthenticated"


class NoTenant(DispatchError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "No organization selected."
    default_code = "no_tenant"


class RoleNotPermitted(DispatchError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Your role does not allow this action."
    default_code = "role_not_permitted"


class BookingNotFound(DispatchError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Booking not found."
    default_code = "booking_not_found"


class DriverNotFound(DispatchError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Driver not found."
    default_code = "driver_not_found"


class InvoiceNotFound(DispatchError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Invoice not found."
    default_code = "invoice_not_found"


class InvalidStatusTransition(DispatchError):
    default_detail = "That status change is not allowed."
    default_code = "invalid_status_transition"


class NoValidBookings(DispatchError):
    default_detail = "No valid bookings found."
    default_code = "no_valid_bookings"


class IncompleteBookings(DispatchError):
    default_code = "incomplete_bookings"

    def __init__(self, count: int):
        super().__init__(
            f"{count} booking(s) are not completed. Only completed bookings can be invoiced.",
            count=count,
        )
        self.count = count


class AlreadyInvoiced(DispatchError):
    default_code = "already_invoiced"

    def __init__(self, count: int):
        super().__init__(f"{count} booking(s) have already been invoiced.", count=count)
        self.count = count


class InvalidLineItem(DispatchError):
    default_detail = "Invalid line item."
    default_code = "invalid_line_item"


class InvalidOAuthState(DispatchError):
    default_detail = "Invalid or expired OAuth session. Please try connecting again."
    default_code = "invalid_oauth_state"


class AccountingNotConnected(DispatchError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Xero not connected or token refresh failed. Please reconnect."
    default_code = "accounting_not_connected"


class PaymentsNotConfigured(DispatchError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Please connect your Stripe account first."
    default_code = "payments_not_configured"


class PaymentNotAllowed(DispatchError):
    default_detail = "This payment action is not allowed for the booking."
    default_code = "payment_not_allowed"


class ProviderUnavailable(DispatchError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "The provider could not complete the request. Please try again."
    default_code = "provider_unavailable"


def api_exception_handler(exc, context):
    """Render dispatch errors with their code and any extra fields."""
    response = exception_handler(exc, context)
    if response is not None and isinstance(exc, DispatchError):
        response.data = exc.as_payload()
    return response
