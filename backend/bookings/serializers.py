from rest_framework import serializers

from .models import Booking, Driver


class DriverSerializer(serializers.ModelSerializer):
    class Meta:
        model = Driver
        fields = [
            "id",
            "name",
            "phone",
            "vehicle",
            "vehicle_colour",
            "plate",
            "status",
            "rating",
            "location",
            "notes",
            "whatsapp_verified",
            "whatsapp_opted_in",
            "created_at",
        ]
        read_only_fields = ["id", "status", "rating", "created_at"]


class DriverSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Driver
        fields = ["id", "name", "phone", "vehicle", "plate", "status"]


class BookingSerializer(serializers.ModelSerializer):
    driver = DriverSummarySerializer(read_only=True)

    class Meta:
        model = Booking
        fields = [
            "id",
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
            "status",
            "payment_status",
            "driver",
            "customer_notified",
            "driver_notified",
            "driver_accepted",
            "driver_accepted_at",
            "stripe_checkout_session",
            "notes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class BookingCreateSerializer(serializers.Serializer):
    customer_name = serializers.CharField(max_length=200)
    customer_phone = serializers.CharField(max_length=30)
    customer_email = serializers.EmailField(required=False, allow_blank=True)
    pickup_location = serializers.CharField(max_length=300)
    dropoff_location = serializers.CharField(max_length=300)
    pickup_time = serializers.DateTimeField()
    passengers = serializers.IntegerField(min_value=1, default=1)
    vehicle_class = serializers.CharField(max_length=60, required=False, allow_blank=True)
    distance = serializers.CharField(max_length=40, required=False, allow_blank=True)
    duration = serializers.CharField(max_length=40, required=False, allow_blank=True)
    is_return = serializers.BooleanField(default=False)
    price_cents = serializers.IntegerField(min_value=0)
    currency = serializers.CharField(max_length=10, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    send_whatsapp = serializers.BooleanField(default=True, write_only=True)

    def validate_currency(self, value):
        return value.lower()


class AssignDriverSerializer(serializers.Serializer):
    driver = serializers.IntegerField()
    send_whatsapp = serializers.BooleanField(default=True)


class BookingStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Booking.STATUSES)


class DriverStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Driver.STATUSES)
