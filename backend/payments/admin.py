from django.contrib import admin

from .models import Payment, PaymentLink, Refund


class RefundInline(admin.TabularInline):
    model = Refund
    extra = 0
    readonly_fields = ("stripe_refund_id", "amount_cents", "reason", "created_by", "created_at")


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "organization",
        "booking",
        "amount_cents",
        "refunded_amount_cents",
        "currency",
        "status",
        "source",
        "created_at",
    )
    list_filter = ("status", "source")
    search_fields = ("stripe_payment_intent", "stripe_checkout_session", "customer_email")
    readonly_fields = ("created_at", "updated_at")
    inlines = [RefundInline]


@admin.register(PaymentLink)
class PaymentLinkAdmin(admin.ModelAdmin):
    list_display = ("stripe_payment_link_id", "organization", "booking", "amount_cents", "active")
    list_filter = ("active",)
    search_fields = ("stripe_payment_link_id", "url")
