from django.contrib import admin

from .models import Organization, StripeAccount


@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "contact_email", "stripe_onboarding_complete")
    search_fields = ("name", "slug", "contact_email")


@admin.register(StripeAccount)
class StripeAccountAdmin(admin.ModelAdmin):
    list_display = (
        "organization",
        "account_id",
        "account_status",
        "charges_enabled",
        "payouts_enabled",
        "updated_at",
    )
    readonly_fields = (
        "created_at",
        "updated_at",
        "last_webhook_received_at",
        "last_webhook_error_at",
        "last_webhook_error_message",
    )
    search_fields = ("account_id", "organization__name")
