from rest_framework import serializers

from .models import Conversation, Message, WhatsAppConfig
from .services.gateway import canonical_phone


class WhatsAppConfigSerializer(serializers.ModelSerializer):
    """Twilio settings; the auth token is write-only and shown masked."""

    auth_token = serializers.CharField(write_only=True, required=False, allow_blank=True)
    masked_auth_token = serializers.CharField(read_only=True)

    class Meta:
        model = WhatsAppConfig
        fields = [
            "account_sid",
            "auth_token",
            "masked_auth_token",
            "whatsapp_number",
            "enabled",
            "template_sids",
            "updated_at",
        ]
        read_only_fields = ["updated_at"]

    def validate_whatsapp_number(self, value: str) -> str:
        return canonical_phone(value)

    def validate_template_sids(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError("Expected a mapping of message type to template SID.")
        known = dict(Message.MESSAGE_TYPES)
        unknown = [key for key in value if key not in known]
        if unknown:
            raise serializers.ValidationError(f"Unknown message types: {', '.join(unknown)}")
        return value

    def validate(self, attrs):
        token = attrs.get("auth_token", "")
        if not token or "•" in token:
            attrs.pop("auth_token", None)
            if self.instance is None:
                raise serializers.ValidationError({"auth_token": "This field is required."})
        return attrs


class MessageSerializer(serializers.ModelSerializer):
    class Meta:
        model = Message
        fields = [
            "id",
            "booking",
            "driver",
            "direction",
            "recipient_phone",
            "message_type",
            "body",
            "delivery_mode",
            "provider_sid",
            "status",
            "error_message",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ConversationSerializer(serializers.ModelSerializer):
    driver_name = serializers.CharField(source="driver.name", read_only=True)
    session_open = serializers.SerializerMethodField()

    class Meta:
        model = Conversation
        fields = [
            "id",
            "driver",
            "driver_name",
            "phone",
            "state",
            "current_booking",
            "last_message_at",
            "last_inbound_at",
            "expires_at",
            "session_open",
        ]
        read_only_fields = fields

    def get_session_open(self, obj) -> bool:
        return obj.session_open()


class DriverMessageSerializer(serializers.Serializer):
    booking = serializers.IntegerField()
    driver = serializers.IntegerField()
    message = serializers.CharField(max_length=1600)


class CustomerMessageSerializer(serializers.Serializer):
    booking = serializers.IntegerField()
    message = serializers.CharField(max_length=1600)


class TestMessageSerializer(serializers.Serializer):
    phone = serializers.CharField(max_length=30)
