from django.contrib import admin

from .models import Conversation, Message, WhatsAppConfig


@admin.register(WhatsAppConfig)
class WhatsAppConfigAdmin(admin.ModelAdmin):
    list_display = ("organization", "whatsapp_number", "enabled", "updated_at")
    list_filter = ("enabled",)
    search_fields = ("organization__name", "whatsapp_number", "account_sid")
    exclude = ("auth_token",)


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):
    list_display = ("driver", "phone", "state", "current_booking", "last_inbound_at", "expires_at")
    list_filter = ("state",)
    search_fields = ("driver__name", "phone")


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = (
        "created_at",
        "direction",
        "message_type",
        "recipient_phone",
        "delivery_mode",
        "status",
        "booking",
    )
    list_filter = ("direction", "status", "message_type", "delivery_mode")
    search_fields = ("recipient_phone", "provider_sid", "body")
    readonly_fields = ("provider_sid", "created_at", "updated_at")
