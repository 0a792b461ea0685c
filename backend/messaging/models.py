from datetime import timedelta

from django.conf import settings
from django.db import models
from django.utils import timezone


class WhatsAppConfig(models.Model):
    """Per-organization Twilio credentials and approved template SIDs."""

    organization = models.OneToOneField(
        "orgs.Organization",
        on_delete=models.CASCADE,
        related_name="whatsapp_config",
    )
    account_sid = models.CharField(max_length=64)
    auth_token = models.CharField(max_length=128)
    whatsapp_number = models.CharField(max_length=30, db_index=True)
    enabled = models.BooleanField(default=True)
    template_sids = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.organization.name} WhatsApp ({self.whatsapp_number})"

    @property
    def masked_auth_token(self) -> str:
        if not self.auth_token:
            return ""
        return "•" * 8 + self.auth_token[-4:]

    def template_for(self, message_type: str) -> str:
        return (self.template_sids or {}).get(message_type, "")


class Conversation(models.Model):
    IDLE = "IDLE"
    AWAITING_ACCEPT = "AWAITING_ACCEPT"
    AWAITING_START = "AWAITING_START"
    IN_PROGRESS = "IN_PROGRESS"
    STATES = [
        (IDLE, "Idle"),
        (AWAITING_ACCEPT, "Awaiting accept"),
        (AWAITING_START, "Awaiting start"),
        (IN_PROGRESS, "In progress"),
    ]

    organization = models.ForeignKey(
        "orgs.Organization",
        on_delete=models.CASCADE,
        related_name="conversations",
    )
    driver = models.ForeignKey(
        "bookings.Driver",
        on_delete=models.CASCADE,
        related_name="conversations",
    )
    phone = models.CharField(max_length=30, db_index=True)
    state = models.CharField(max_length=20, choices=STATES, default=IDLE)
    current_booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="conversations",
    )
    last_message_at = models.DateTimeField(null=True, blank=True)
    last_inbound_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ("driver", "phone")

    def __str__(self):
        return f"{self.driver} ({self.state})"

    def session_open(self, now=None) -> bool:
        now = now or timezone.now()
        return self.expires_at is not None and self.expires_at > now

    def touch_inbound(self, now=None):
        now = now or timezone.now()
        self.last_inbound_at = now
        self.last_message_at = now
        self.expires_at = now + timedelta(hours=settings.WHATSAPP_SESSION_WINDOW_HOURS)


class Message(models.Model):
    """Audit row for one inbound or outbound WhatsApp message."""

    OUTBOUND = "outbound"
    INBOUND = "inbound"
    DIRECTIONS = [
        (OUTBOUND, "Outbound"),
        (INBOUND, "Inbound"),
    ]

    SESSION = "session"
    TEMPLATE = "template"
    DELIVERY_MODES = [
        (SESSION, "Session (free-form)"),
        (TEMPLATE, "Approved template"),
    ]

    QUEUED = "QUEUED"
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    READ = "READ"
    FAILED = "FAILED"
    STATUSES = [
        (QUEUED, "Queued"),
        (SENT, "Sent"),
        (DELIVERED, "Delivered"),
        (READ, "Read"),
        (FAILED, "Failed"),
    ]
    STATUS_RANK = {QUEUED: 0, SENT: 1, DELIVERED: 2, READ: 3}

    BOOKING_CONFIRMED = "BOOKING_CONFIRMED"
    DRIVER_DISPATCHED = "DRIVER_DISPATCHED"
    DRIVER_ASSIGNED = "DRIVER_ASSIGNED"
    DRIVER_ACCEPTED = "DRIVER_ACCEPTED"
    DRIVER_EN_ROUTE = "DRIVER_EN_ROUTE"
    TRIP_COMPLETED = "TRIP_COMPLETED"
    MANUAL = "MANUAL"
    REPLY_ACCEPTED = "REPLY_ACCEPTED"
    REPLY_DECLINED = "REPLY_DECLINED"
    REPLY_STARTED = "REPLY_STARTED"
    REPLY_COMPLETED = "REPLY_COMPLETED"
    PROMPT = "PROMPT"
    INFO = "INFO"
    TEST = "TEST"
    INBOUND_REPLY = "INBOUND"
    MESSAGE_TYPES = [
        (BOOKING_CONFIRMED, "Booking confirmed"),
        (DRIVER_DISPATCHED, "Driver dispatched"),
        (DRIVER_ASSIGNED, "Driver assigned"),
        (DRIVER_ACCEPTED, "Driver accepted"),
        (DRIVER_EN_ROUTE, "Driver en route"),
        (TRIP_COMPLETED, "Trip completed"),
        (MANUAL, "Manual"),
        (REPLY_ACCEPTED, "Reply: job accepted"),
        (REPLY_DECLINED, "Reply: job declined"),
        (REPLY_STARTED, "Reply: trip started"),
        (REPLY_COMPLETED, "Reply: trip completed"),
        (PROMPT, "Prompt"),
        (INFO, "Info"),
        (TEST, "Test"),
        (INBOUND_REPLY, "Inbound"),
    ]

    organization = models.ForeignKey(
        "orgs.Organization",
        on_delete=models.CASCADE,
        related_name="messages",
    )
    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="messages",
    )
    driver = models.ForeignKey(
        "bookings.Driver",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="messages",
    )
    direction = models.CharField(max_length=10, choices=DIRECTIONS)
    recipient_phone = models.CharField(max_length=30)
    message_type = models.CharField(max_length=30, choices=MESSAGE_TYPES)
    body = models.TextField(blank=True)
    delivery_mode = models.CharField(max_length=10, choices=DELIVERY_MODES, default=SESSION)
    provider_sid = models.CharField(max_length=64, blank=True, db_index=True)
    status = models.CharField(max_length=10, choices=STATUSES, default=QUEUED)
    error_message = models.CharField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [models.Index(fields=["organization", "created_at"], name="message_org_created_idx")]

    def __str__(self):
        return f"{self.direction} {self.message_type} -> {self.recipient_phone} ({self.status})"

    def can_advance_to(self, status: str) -> bool:
        """Delivery status only moves forward; FAILED is terminal."""
        if self.status == self.FAILED:
            return False
        if status == self.FAILED:
            return self.status in (self.QUEUED, self.SENT)
        return self.STATUS_RANK.get(status, -1) > self.STATUS_RANK.get(self.status, -1)
