import logging
from urllib.parse import urlencode

from django.conf import settings
from django.http import HttpResponseRedirect
from rest_framework import generics, status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.models import Membership
from bookings.serializers import BookingSerializer
from core.exceptions import InvalidOAuthState
from orgs.permissions import HasTenantRole

from .serializers import InvoiceCreateSerializer, InvoiceSerializer, XeroContactSerializer
from .services import contacts, invoices, oauth
from .services.xero import XeroError

logger = logging.getLogger(__name__)


def _frontend_redirect(**params) -> HttpResponseRedirect:
    return HttpResponseRedirect(f"{settings.FRONTEND_URL.rstrip('/')}?{urlencode(params)}")


class StaffView(APIView):
    permission_classes = [IsAuthenticated, HasTenantRole]
    tenant_roles = Membership.STAFF_ROLES


class XeroConnectView(APIView):
    permission_classes = [IsAuthenticated, HasTenantRole]
    tenant_roles = (Membership.ADMIN,)

    def get(self, request, *args, **kwargs):
        return Response({"url": oauth.start_authorization(self.tenant)})


class XeroCallbackView(APIView):
    """Xero redirects the browser here after consent; the state identifies the organization."""

    permission_classes: list = []
    authentication_classes: list = []

    def get(self, request, *args, **kwargs):
        error = request.query_params.get("error")
        if error:
            description = request.query_params.get("error_description") or "Unknown error"
            logger.warning("Xero OAuth error: %s %s", error, description)
            return _frontend_redirect(xero_error=description)

        code = request.query_params.get("code")
        state = request.query_params.get("state")
        if not code or not state:
            return _frontend_redirect(xero_error="Missing authorization code or state")

        try:
            oauth.complete_authorization(state, code)
        except InvalidOAuthState as exc:
            logger.warning("Rejected Xero OAuth callback: invalid or reused state")
            return _frontend_redirect(xero_error=str(exc.detail))
        except XeroError as exc:
            logger.exception("Xero OAuth callback failed: %s", exc)
            return _frontend_redirect(xero_error=str(exc))
        return _frontend_redirect(xero_connected="true")


class XeroStatusView(StaffView):
    def get(self, request, *args, **kwargs):
        payload = oauth.connection_status(self.tenant)
        payload.update(invoices.can_create_invoices(self.tenant))
        return Response(payload)


class XeroDisconnectView(APIView):
    permission_classes = [IsAuthenticated, HasTenantRole]
    tenant_roles = (Membership.ADMIN,)

    def post(self, request, *args, **kwargs):
        oauth.disconnect(self.tenant)
        return Response({"success": True})


class ContactListView(generics.ListAPIView):
    """Cached Xero contacts; ``?remote=true`` searches Xero directly."""

    serializer_class = XeroContactSerializer
    permission_classes = [IsAuthenticated, HasTenantRole]
    tenant_roles = Membership.STAFF_ROLES
    filter_backends: list = []

    def get_queryset(self):
        return contacts.search_cached_contacts(self.tenant, self.request.query_params.get("q", ""))

    def list(self, request, *args, **kwargs):
        if request.query_params.get("remote") == "true":
            return Response(contacts.search_xero_contacts(self.tenant, request.query_params.get("q", "")))
        return super().list(request, *args, **kwargs)


class ContactSyncView(StaffView):
    def post(self, request, *args, **kwargs):
        return Response({"success": True, "count": contacts.sync_contacts(self.tenant)})


class InvoiceableBookingListView(generics.ListAPIView):
    serializer_class = BookingSerializer
    permission_classes = [IsAuthenticated, HasTenantRole]
    tenant_roles = Membership.STAFF_ROLES

    def get_queryset(self):
        return invoices.list_invoiceable_bookings(self.tenant)


class InvoiceListCreateView(generics.ListAPIView):
    serializer_class = InvoiceSerializer
    permission_classes = [IsAuthenticated, HasTenantRole]
    tenant_roles = Membership.STAFF_ROLES

    def get_queryset(self):
        return invoices.list_invoices(self.tenant, status=self.request.query_params.get("status"))

    def post(self, request, *args, **kwargs):
        serializer = InvoiceCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        result = invoices.create_invoice_from_bookings(
            self.tenant,
            contact_id=data["contact_id"],
            contact_name=data["contact_name"],
            booking_ids=data["bookings"],
            extra_line_items=serializer.line_items(),
            combine=data["combine"],
            due_date=data["due_date"],
        )
        response_status = status.HTTP_201_CREATED if result.success else status.HTTP_207_MULTI_STATUS
        return Response(result.as_dict(), status=response_status)


class InvoiceSyncView(StaffView):
    def post(self, request, invoice_id, *args, **kwargs):
        invoice = invoices.sync_invoice_status(self.tenant, invoice_id)
        return Response(InvoiceSerializer(invoice).data)
