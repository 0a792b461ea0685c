from django.conf import settings
from django.db import models
from django.utils import timezone


class AccountingConnection(models.Model):
    """The organization's Xero connection; one per organization, overwritten on reconnect."""

    organization = models.OneToOneField(
        "orgs.Organization",
        on_delete=models.CASCADE,
        related_name="accounting_connection",
    )
    xero_tenant_id = models.CharField(max_length=255)
    xero_tenant_name = models.CharField(max_length=255, blank=True)
    access_token = models.TextField()
    refresh_token = models.TextField()
    expires_at = models.DateTimeField()
    scope = models.TextField(blank=True)
    connected_at = models.DateTimeField(default=timezone.now)
    connected_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.organization} -> {self.xero_tenant_name or self.xero_tenant_id}"

    @property
    def is_expired(self) -> bool:
        return self.expires_at <= timezone.now()


class OAuthState(models.Model):
    """Single-use authorization state; only the SHA-256 of the token is stored."""

    state_hash = models.CharField(max_length=64, unique=True)
    organization = models.ForeignKey(
        "orgs.Organization",
        on_delete=models.CASCADE,
        related_name="oauth_states",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    expires_at = models.DateTimeField()
    used_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return f"OAuth state for {self.organization} ({'used' if self.used_at else 'open'})"


class XeroContact(models.Model):
    organization = models.ForeignKey(
        "orgs.Organization",
        on_delete=models.CASCADE,
        related_name="xero_contacts",
    )
    xero_contact_id = models.CharField(max_length=255)
    name = models.CharField(max_length=255)
    email = models.CharField(max_length=255, blank=True)
    phone = models.CharField(max_length=50, blank=True)
    account_number = models.CharField(max_length=100, blank=True)
    is_customer = models.BooleanField(default=True)
    cached_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["name"]
        unique_together = ("organization", "xero_contact_id")

    def __str__(self):
        return self.name


class Invoice(models.Model):
    """Audit record of an invoice created in Xero. Amounts are in minor units."""

    organization = models.ForeignKey(
        "orgs.Organization",
        on_delete=models.CASCADE,
        related_name="invoices",
    )
    bookings = models.ManyToManyField("bookings.Booking", related_name="invoices")
    xero_invoice_id = models.CharField(max_length=255, db_index=True)
    xero_invoice_number = models.CharField(max_length=100, blank=True)
    status = models.CharField(max_length=30, default="DRAFT")
    xero_contact_id = models.CharField(max_length=255)
    contact_name = models.CharField(max_length=255)
    reference = models.CharField(max_length=255, blank=True)
    line_items = models.JSONField(default=list)
    subtotal_cents = models.IntegerField(default=0)
    total_tax_cents = models.IntegerField(default=0)
    total_cents = models.IntegerField(default=0)
    amount_due_cents = models.IntegerField(default=0)
    amount_paid_cents = models.IntegerField(default=0)
    currency_code = models.CharField(max_length=10, default="GBP")
    invoice_date = models.DateField()
    due_date = models.DateField()
    xero_url = models.URLField(max_length=500, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return self.xero_invoice_number or self.xero_invoice_id


class InvoiceAttempt(models.Model):
    """One call to Xero's invoice endpoint, successful or not."""

    organization = models.ForeignKey(
        "orgs.Organization",
        on_delete=models.CASCADE,
        related_name="invoice_attempts",
    )
    invoice = models.ForeignKey(
        Invoice,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="attempts",
    )
    booking_ids = models.JSONField(default=list)
    success = models.BooleanField(default=False)
    error_message = models.TextField(blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"Invoice attempt {self.pk} ({'ok' if self.success else 'failed'})"
