from django.core.validators import MinValueValidator
from django.db import models


class Driver(models.Model):
    AVAILABLE = "AVAILABLE"
    BUSY = "BUSY"
    OFF_DUTY = "OFF_DUTY"
    STATUSES = [
        (AVAILABLE, "Available"),
        (BUSY, "Busy"),
        (OFF_DUTY, "Off duty"),
    ]

    organization = models.ForeignKey(
        "orgs.Organization",
        on_delete=models.CASCADE,
        related_name="drivers",
    )
    name = models.CharField(max_length=200)
    phone = models.CharField(max_length=30, db_index=True)
    vehicle = models.CharField(max_length=120, blank=True)
    vehicle_colour = models.CharField(max_length=60, blank=True)
    plate = models.CharField(max_length=20, blank=True)
    status = models.CharField(max_length=12, choices=STATUSES, default=AVAILABLE)
    rating = models.DecimalField(max_digits=3, decimal_places=2, default=5)
    location = models.CharField(max_length=200, blank=True)
    notes = models.TextField(blank=True)
    whatsapp_verified = models.BooleanField(default=False)
    whatsapp_opted_in = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name", "id"]

    def __str__(self):
        return self.name


class Booking(models.Model):
    """One scheduled transport job; the record every integration writes back to."""

    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    STATUSES = [
        (PENDING, "Pending"),
        (ASSIGNED, "Assigned"),
        (IN_PROGRESS, "In progress"),
        (COMPLETED, "Completed"),
        (CANCELLED, "Cancelled"),
    ]

    PAYMENT_PENDING = "PENDING"
    PAYMENT_PROCESSING = "PROCESSING"
    PAYMENT_PAID = "PAID"
    PAYMENT_FAILED = "FAILED"
    PAYMENT_REFUNDED = "REFUNDED"
    PAYMENT_PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"
    PAYMENT_INVOICED = "INVOICED"
    PAYMENT_STATUSES = [
        (PAYMENT_PENDING, "Pending"),
        (PAYMENT_PROCESSING, "Processing"),
        (PAYMENT_PAID, "Paid"),
        (PAYMENT_FAILED, "Failed"),
        (PAYMENT_REFUNDED, "Refunded"),
        (PAYMENT_PARTIALLY_REFUNDED, "Partially refunded"),
        (PAYMENT_INVOICED, "Invoiced"),
    ]

    organization = models.ForeignKey(
        "orgs.Organization",
        on_delete=models.CASCADE,
        related_name="bookings",
    )
    customer_name = models.CharField(max_length=200)
    customer_phone = models.CharField(max_length=30)
    customer_email = models.EmailField(blank=True)
    pickup_location = models.CharField(max_length=300)
    dropoff_location = models.CharField(max_length=300)
    pickup_time = models.DateTimeField()
    passengers = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    vehicle_class = models.CharField(max_length=60, blank=True)
    distance = models.CharField(max_length=40, blank=True)
    duration = models.CharField(max_length=40, blank=True)
    is_return = models.BooleanField(default=False)
    price_cents = models.PositiveIntegerField(default=0)
    currency = models.CharField(max_length=10, default="gbp")
    status = models.CharField(max_length=12, choices=STATUSES, default=PENDING, db_index=True)
    payment_status = models.CharField(
        max_length=20, choices=PAYMENT_STATUSES, default=PAYMENT_PENDING
    )
    driver = models.ForeignKey(
        "Driver",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="bookings",
    )
    customer_notified = models.BooleanField(default=False)
    driver_notified = models.BooleanField(default=False)
    driver_accepted = models.BooleanField(default=False)
    driver_accepted_at = models.DateTimeField(null=True, blank=True)
    invoice_claimed_at = models.DateTimeField(null=True, blank=True)
    stripe_checkout_session = models.CharField(max_length=255, blank=True, db_index=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["pickup_time", "id"]
        indexes = [models.Index(fields=["organization", "status"], name="booking_org_status_idx")]

    def __str__(self):
        return f"{self.customer_name}: {self.pickup_location} -> {self.dropoff_location}"

    @property
    def is_invoiceable(self) -> bool:
        return (
            self.status == self.COMPLETED
            and self.payment_status != self.PAYMENT_INVOICED
            and self.invoice_claimed_at is None
        )
