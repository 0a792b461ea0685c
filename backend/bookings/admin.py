from django.contrib import admin

from .models import Booking, Driver


@admin.register(Driver)
class DriverAdmin(admin.ModelAdmin):
    list_display = ("name", "organization", "phone", "plate", "status", "whatsapp_opted_in")
    list_filter = ("status", "whatsapp_opted_in", "whatsapp_verified")
    search_fields = ("name", "phone", "plate")


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "organization",
        "customer_name",
        "pickup_time",
        "status",
        "payment_status",
        "driver",
        "price_cents",
    )
    list_filter = ("status", "payment_status")
    search_fields = ("customer_name", "customer_phone", "pickup_location", "stripe_checkout_session")
    readonly_fields = ("created_at", "updated_at")
