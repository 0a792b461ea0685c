from django.contrib import admin

from .models import AccountingConnection, Invoice, InvoiceAttempt, XeroContact


@admin.register(AccountingConnection)
class AccountingConnectionAdmin(admin.ModelAdmin):
    list_display = ("organization", "xero_tenant_name", "expires_at", "connected_at")
    search_fields = ("organization__name", "xero_tenant_name", "xero_tenant_id")
    exclude = ("access_token", "refresh_token")


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = (
        "xero_invoice_number",
        "organization",
        "contact_name",
        "status",
        "total_cents",
        "currency_code",
        "invoice_date",
    )
    list_filter = ("status",)
    search_fields = ("xero_invoice_number", "xero_invoice_id", "contact_name")
    readonly_fields = ("created_at", "updated_at")


@admin.register(InvoiceAttempt)
class InvoiceAttemptAdmin(admin.ModelAdmin):
    list_display = ("created_at", "organization", "success", "invoice", "error_message")
    list_filter = ("success",)


@admin.register(XeroContact)
class XeroContactAdmin(admin.ModelAdmin):
    list_display = ("name", "organization", "email", "account_number", "cached_at")
    search_fields = ("name", "email", "account_number")
