from rest_framework import serializers

from bookings.serializers import BookingCreateSerializer

from .models import Payment, PaymentLink, Refund


class RefundSerializer(serializers.ModelSerializer):
    class Meta:
        model = Refund
        fields = ["id", "stripe_refund_id", "amount_cents", "reason", "created_at"]
        read_only_fields = fields


class PaymentSerializer(serializers.ModelSerializer):
    refunds = RefundSerializer(many=True, read_only=True)
    remaining_cents = serializers.IntegerField(read_only=True)

    class Meta:
        model = Payment
        fields = [
            "id",
            "booking",
            "stripe_payment_intent",
            "stripe_checkout_session",
            "amount_cents",
            "currency",
            "status",
            "failure_code",
            "failure_message",
            "refunded_amount_cents",
            "remaining_cents",
            "source",
            "customer_email",
            "refunds",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class PaymentLinkSerializer(serializers.ModelSerializer):
    class Meta:
        model = PaymentLink
        fields = [
            "id",
            "booking",
            "stripe_payment_link_id",
            "url",
            "amount_cents",
            "currency",
            "active",
            "expires_at",
            "created_at",
            "deactivated_at",
        ]
        read_only_fields = fields


class PaymentLinkCreateSerializer(serializers.Serializer):
    booking = serializers.IntegerField()


class RefundRequestSerializer(serializers.Serializer):
    booking = serializers.IntegerField()
    amount_cents = serializers.IntegerField(required=False, min_value=1)
    reason = serializers.CharField(required=False, allow_blank=True, max_length=100)


class WidgetCheckoutSerializer(BookingCreateSerializer):
    """Booking fields from the public widget plus the checkout return pages."""

    send_whatsapp = None
    success_url = serializers.URLField()
    cancel_url = serializers.URLField()

    def validate_price_cents(self, value):
        if value <= 0:
            raise serializers.ValidationError("A price is required to take payment.")
        return value
