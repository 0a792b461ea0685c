import logging
from dataclasses import asdict

from django.conf import settings
from django.http import HttpResponse
from rest_framework import generics, status
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.models import Membership
from orgs.permissions import HasTenantRole

from .models import Conversation, Message
from .serializers import (
    ConversationSerializer,
    CustomerMessageSerializer,
    DriverMessageSerializer,
    MessageSerializer,
    TestMessageSerializer,
    WhatsAppConfigSerializer,
)
from .services import gateway
from .services.conversations import (
    InboundMessage,
    InvalidWebhookPayload,
    StatusCallback,
    apply_status_callback,
    find_config_for_number,
    process_inbound,
)
from .services.notifications import get_config, send_test_message
from .services.orchestration import send_customer_message, send_driver_message

logger = logging.getLogger(__name__)

EMPTY_TWIML = '<?xml version="1.0" encoding="UTF-8"?><Response></Response>'


class WhatsAppConfigView(APIView):
    """Read or save the organization's Twilio WhatsApp settings."""

    permission_classes = [IsAuthenticated, HasTenantRole]
    tenant_roles = (Membership.ADMIN,)

    def get(self, request, *args, **kwargs):
        config = get_config(self.tenant.organization)
        if config is None:
            return Response({"configured": False})
        return Response({"configured": True, **WhatsAppConfigSerializer(config).data})

    def put(self, request, *args, **kwargs):
        config = get_config(self.tenant.organization)
        serializer = WhatsAppConfigSerializer(instance=config, data=request.data, partial=config is not None)
        serializer.is_valid(raise_exception=True)
        config = serializer.save(organization=self.tenant.organization)
        return Response({"configured": True, **WhatsAppConfigSerializer(config).data})


class WhatsAppTestView(APIView):
    permission_classes = [IsAuthenticated, HasTenantRole]
    tenant_roles = (Membership.ADMIN,)

    def post(self, request, *args, **kwargs):
        serializer = TestMessageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = send_test_message(self.tenant.organization, serializer.validated_data["phone"])
        code = status.HTTP_200_OK if result.success else status.HTTP_502_BAD_GATEWAY
        return Response(asdict(result), status=code)


class MessageListView(generics.ListAPIView):
    serializer_class = MessageSerializer
    permission_classes = [IsAuthenticated, HasTenantRole]
    tenant_roles = Membership.STAFF_ROLES
    filterset_fields = ["booking", "driver", "direction", "status", "message_type"]
    ordering_fields = ["created_at"]

    def get_queryset(self):
        return Message.objects.filter(organization=self.tenant.organization)


class ConversationListView(generics.ListAPIView):
    serializer_class = ConversationSerializer
    permission_classes = [IsAuthenticated, HasTenantRole]
    tenant_roles = Membership.STAFF_ROLES
    filterset_fields = ["driver", "state"]

    def get_queryset(self):
        return Conversation.objects.filter(
            organization=self.tenant.organization
        ).select_related("driver")


class DriverMessageView(APIView):
    """Send a dispatcher-written WhatsApp message to a driver about a booking."""

    permission_classes = [IsAuthenticated, HasTenantRole]
    tenant_roles = Membership.STAFF_ROLES

    def post(self, request, *args, **kwargs):
        serializer = DriverMessageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        result = send_driver_message(self.tenant, data["booking"], data["driver"], data["message"])
        return Response(asdict(result), status=status.HTTP_201_CREATED)


class CustomerMessageView(APIView):
    permission_classes = [IsAuthenticated, HasTenantRole]
    tenant_roles = Membership.STAFF_ROLES

    def post(self, request, *args, **kwargs):
        serializer = CustomerMessageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        result = send_customer_message(self.tenant, data["booking"], data["message"])
        return Response(asdict(result), status=status.HTTP_201_CREATED)


def _signature_valid(request, auth_token: str) -> bool:
    if not settings.TWILIO_VALIDATE_SIGNATURES:
        return True
    signature = request.META.get("HTTP_X_TWILIO_SIGNATURE", "")
    url = request.build_absolute_uri()
    return gateway.validate_signature(auth_token, url, request.POST.dict(), signature)


class WhatsAppIncomingWebhookView(APIView):
    """Receive driver replies from Twilio and drive the conversation state machine."""

    permission_classes: list = []
    authentication_classes: list = []
    parser_classes = [FormParser, MultiPartParser]

    def post(self, request, *args, **kwargs):
        try:
            payload = InboundMessage.from_params(request.POST)
        except InvalidWebhookPayload as exc:
            logger.warning("Rejected WhatsApp inbound webhook: %s", exc)
            return HttpResponse(status=status.HTTP_400_BAD_REQUEST)

        config = find_config_for_number(payload.to_phone)
        if config is not None and not _signature_valid(request, config.auth_token):
            logger.warning("Invalid Twilio signature for inbound message %s", payload.provider_sid)
            return HttpResponse(status=status.HTTP_403_FORBIDDEN)

        result = process_inbound(payload)
        logger.info(
            "Inbound WhatsApp %s from %s: %s (%s)",
            payload.provider_sid,
            payload.from_phone,
            result.outcome,
            result.intent,
        )
        return HttpResponse(EMPTY_TWIML, content_type="text/xml")


class WhatsAppStatusWebhookView(APIView):
    """Receive Twilio delivery status callbacks for outbound messages."""

    permission_classes: list = []
    authentication_classes: list = []
    parser_classes = [FormParser, MultiPartParser]

    def post(self, request, *args, **kwargs):
        try:
            payload = StatusCallback.from_params(request.POST)
        except InvalidWebhookPayload as exc:
            logger.warning("Rejected WhatsApp status callback: %s", exc)
            return HttpResponse(status=status.HTTP_400_BAD_REQUEST)

        message = (
            Message.objects.select_related("organization__whatsapp_config")
            .filter(provider_sid=payload.provider_sid, direction=Message.OUTBOUND)
            .first()
        )
        if message is not None:
            config = get_config(message.organization)
            if config is not None and not _signature_valid(request, config.auth_token):
                logger.warning("Invalid Twilio signature for status of %s", payload.provider_sid)
                return HttpResponse(status=status.HTTP_403_FORBIDDEN)

        result = apply_status_callback(payload)
        logger.info(
            "WhatsApp status %s for %s: %s", payload.provider_status, payload.provider_sid, result.outcome
        )
        return HttpResponse("OK", content_type="text/plain")
