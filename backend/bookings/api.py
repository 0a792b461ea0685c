import logging

from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from accounts.models import Membership
from messaging.services.orchestration import (
    assign_driver_with_notification,
    create_booking_with_notification,
)
from orgs.permissions import HasTenantRole

from .serializers import (
    AssignDriverSerializer,
    BookingCreateSerializer,
    BookingSerializer,
    BookingStatusSerializer,
    DriverSerializer,
    DriverStatusSerializer,
)
from .services import ledger

logger = logging.getLogger(__name__)


class BookingViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """Bookings for the caller's organization; drivers only see their own jobs."""

    serializer_class = BookingSerializer
    permission_classes = [permissions.IsAuthenticated, HasTenantRole]
    filterset_fields = ["status", "payment_status", "driver"]
    search_fields = ["customer_name", "customer_phone", "pickup_location", "dropoff_location"]
    ordering_fields = ["pickup_time", "created_at"]

    def get_tenant_roles(self):
        if self.action in {"create", "assign"}:
            return Membership.STAFF_ROLES
        return None

    def get_queryset(self):
        return ledger.list_bookings(self.tenant)

    def get_object(self):
        booking = ledger.get_booking(self.tenant, self.kwargs["pk"])
        self.check_object_permissions(self.request, booking)
        return booking

    def create(self, request, *args, **kwargs):
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        fields = dict(serializer.validated_data)
        send_whatsapp = fields.pop("send_whatsapp")
        result = create_booking_with_notification(self.tenant, send_whatsapp=send_whatsapp, **fields)
        return Response(self._action_payload(result), status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"])
    def assign(self, request, pk=None):
        serializer = AssignDriverSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = assign_driver_with_notification(
            self.tenant,
            pk,
            serializer.validated_data["driver"],
            send_whatsapp=serializer.validated_data["send_whatsapp"],
        )
        return Response(self._action_payload(result))

    @action(detail=True, methods=["post"], url_path="status")
    def set_status(self, request, pk=None):
        serializer = BookingStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = ledger.transition_status(self.tenant, pk, serializer.validated_data["status"])
        return Response(BookingSerializer(booking).data)

    def _action_payload(self, result):
        payload = result.as_dict()
        payload["booking"] = BookingSerializer(result.booking).data
        failed = [effect.name for effect in result.side_effects if not effect.success]
        if failed:
            logger.warning(
                "Booking %s saved but notifications failed: %s", result.booking.pk, ", ".join(failed)
            )
        return payload


class DriverViewSet(viewsets.ModelViewSet):
    serializer_class = DriverSerializer
    permission_classes = [permissions.IsAuthenticated, HasTenantRole]
    filterset_fields = ["status", "whatsapp_opted_in"]
    search_fields = ["name", "phone", "plate"]
    ordering_fields = ["name", "rating", "created_at"]

    def get_tenant_roles(self):
        if self.action in {"list", "retrieve", "set_status"}:
            return None
        if self.action == "destroy":
            return (Membership.ADMIN,)
        return Membership.STAFF_ROLES

    def get_queryset(self):
        return ledger.list_drivers(self.tenant)

    def get_object(self):
        return ledger.get_driver(self.tenant, self.kwargs["pk"])

    def perform_create(self, serializer):
        serializer.instance = ledger.create_driver(self.tenant, **serializer.validated_data)

    def perform_update(self, serializer):
        serializer.instance = ledger.update_driver(
            self.tenant, serializer.instance.pk, **serializer.validated_data
        )

    def perform_destroy(self, instance):
        ledger.remove_driver(self.tenant, instance.pk)

    @action(detail=True, methods=["post"], url_path="status")
    def set_status(self, request, pk=None):
        serializer = DriverStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        driver = ledger.set_driver_status(self.tenant, pk, serializer.validated_data["status"])
        return Response(DriverSerializer(driver).data)
