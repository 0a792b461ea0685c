import json
import logging

import stripe
from django.conf import settings
from django.shortcuts import get_object_or_404
from rest_framework import generics, status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.models import Membership
from bookings.serializers import BookingSerializer
from orgs.models import Organization
from orgs.permissions import HasTenantRole

from .models import Payment
from .serializers import (
    PaymentLinkCreateSerializer,
    PaymentLinkSerializer,
    PaymentSerializer,
    RefundRequestSerializer,
    WidgetCheckoutSerializer,
)
from .services import checkout, refunds
from .services.events import InvalidEventPayload, parse_event
from .services.reconciliation import dispatch_event

logger = logging.getLogger(__name__)


class StripeWebhookView(APIView):
    """Receive Stripe webhook events for checkout, refunds and Connect accounts."""

    permission_classes: list = []
    authentication_classes: list = []

    def post(self, request, *args, **kwargs):
        payload = request.body
        sig_header = request.META.get("HTTP_STRIPE_SIGNATURE")
        if not settings.STRIPE_WEBHOOK_SECRET:
            logger.error("Stripe webhook secret not configured.")
            return Response(status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        try:
            stripe.Webhook.construct_event(payload, sig_header, settings.STRIPE_WEBHOOK_SECRET)
        except ValueError:
            logger.warning("Invalid payload received on Stripe webhook.")
            return Response({"detail": "Invalid payload."}, status=status.HTTP_400_BAD_REQUEST)
        except stripe.SignatureVerificationError:
            logger.warning("Invalid Stripe signature.")
            return Response({"detail": "Invalid signature."}, status=status.HTTP_400_BAD_REQUEST)

        try:
            event = parse_event(json.loads(payload))
        except (ValueError, InvalidEventPayload) as exc:
            logger.warning("Malformed Stripe event: %s", exc)
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        result = dispatch_event(event)
        return Response({"received": True, "outcome": result.outcome})


class WidgetCheckoutView(APIView):
    """Public booking widget: create the booking and return a Stripe checkout URL."""

    permission_classes: list = []
    authentication_classes: list = []

    def post(self, request, slug, *args, **kwargs):
        organization = get_object_or_404(Organization, slug=slug)
        serializer = WidgetCheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        fields = dict(serializer.validated_data)
        checkout_url, session_id, booking = checkout.start_widget_checkout(
            organization,
            success_url=fields.pop("success_url"),
            cancel_url=fields.pop("cancel_url"),
            **fields,
        )
        return Response(
            {
                "checkout_url": checkout_url,
                "session_id": session_id,
                "booking": BookingSerializer(booking).data,
            },
            status=status.HTTP_201_CREATED,
        )


class PaymentListView(generics.ListAPIView):
    serializer_class = PaymentSerializer
    permission_classes = [IsAuthenticated, HasTenantRole]
    tenant_roles = Membership.STAFF_ROLES
    filterset_fields = ["booking", "status", "source"]

    def get_queryset(self):
        return checkout.list_payments(self.tenant).prefetch_related("refunds")


class PaymentLinkListCreateView(generics.ListAPIView):
    serializer_class = PaymentLinkSerializer
    permission_classes = [IsAuthenticated, HasTenantRole]
    tenant_roles = Membership.STAFF_ROLES
    filterset_fields = ["booking", "active"]

    def get_queryset(self):
        return checkout.list_payment_links(self.tenant)

    def post(self, request, *args, **kwargs):
        serializer = PaymentLinkCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        link = checkout.create_payment_link(self.tenant, serializer.validated_data["booking"])
        return Response(PaymentLinkSerializer(link).data, status=status.HTTP_201_CREATED)


class PaymentLinkDeactivateView(APIView):
    permission_classes = [IsAuthenticated, HasTenantRole]
    tenant_roles = (Membership.ADMIN,)

    def post(self, request, link_id, *args, **kwargs):
        link = checkout.deactivate_payment_link(self.tenant, link_id)
        return Response(PaymentLinkSerializer(link).data)


class RefundCreateView(APIView):
    permission_classes = [IsAuthenticated, HasTenantRole]
    tenant_roles = (Membership.ADMIN,)

    def post(self, request, *args, **kwargs):
        serializer = RefundRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        result = refunds.issue_refund(
            self.tenant,
            data["booking"],
            amount_cents=data.get("amount_cents"),
            reason=data.get("reason", ""),
        )
        payment = Payment.objects.prefetch_related("refunds").get(pk=result.payment_id)
        return Response(
            {"outcome": result.outcome, "payment": PaymentSerializer(payment).data},
            status=status.HTTP_201_CREATED,
        )
