from django.conf import settings
from django.db import models


class Payment(models.Model):
    """One payment attempt for a booking; only reconciliation events move its status."""

    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"
    STATUSES = [
        (PENDING, "Pending"),
        (PROCESSING, "Processing"),
        (SUCCEEDED, "Succeeded"),
        (FAILED, "Failed"),
        (REFUNDED, "Refunded"),
    ]

    SOURCE_WIDGET = "widget"
    SOURCE_LINK = "link"
    SOURCE_MANUAL = "manual"
    SOURCES = [
        (SOURCE_WIDGET, "Booking widget"),
        (SOURCE_LINK, "Payment link"),
        (SOURCE_MANUAL, "Manual"),
    ]

    organization = models.ForeignKey(
        "orgs.Organization",
        on_delete=models.CASCADE,
        related_name="payments",
    )
    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.CASCADE,
        related_name="payments",
    )
    stripe_payment_intent = models.CharField(max_length=255, blank=True, db_index=True)
    stripe_checkout_session = models.CharField(max_length=255, blank=True, db_index=True)
    amount_cents = models.PositiveIntegerField()
    currency = models.CharField(max_length=10, default="gbp")
    status = models.CharField(max_length=20, choices=STATUSES, default=PENDING)
    failure_code = models.CharField(max_length=100, blank=True)
    failure_message = models.CharField(max_length=500, blank=True)
    refunded_amount_cents = models.PositiveIntegerField(default=0)
    source = models.CharField(max_length=10, choices=SOURCES, default=SOURCE_WIDGET)
    customer_email = models.EmailField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"Payment {self.pk} for booking {self.booking_id} ({self.status})"

    @property
    def remaining_cents(self) -> int:
        return max(self.amount_cents - self.refunded_amount_cents, 0)


class Refund(models.Model):
    payment = models.ForeignKey(Payment, on_delete=models.CASCADE, related_name="refunds")
    stripe_refund_id = models.CharField(max_length=255, unique=True)
    amount_cents = models.PositiveIntegerField()
    reason = models.CharField(max_length=100, blank=True)
    provisional = models.BooleanField(default=False)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.stripe_refund_id} ({self.amount_cents})"


class PaymentLink(models.Model):
    organization = models.ForeignKey(
        "orgs.Organization",
        on_delete=models.CASCADE,
        related_name="payment_links",
    )
    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.CASCADE,
        related_name="payment_links",
    )
    stripe_payment_link_id = models.CharField(max_length=255, unique=True)
    url = models.URLField(max_length=500)
    amount_cents = models.PositiveIntegerField()
    currency = models.CharField(max_length=10, default="gbp")
    active = models.BooleanField(default=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    deactivated_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"Payment link {self.stripe_payment_link_id} for booking {self.booking_id}"
