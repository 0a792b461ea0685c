from django.conf import settings
from django.db import models


class Organization(models.Model):
    name = models.CharField(max_length=200)
    slug = models.SlugField(unique=True)
    contact_email = models.EmailField(blank=True)
    phone = models.CharField(max_length=30, blank=True)
    default_currency = models.CharField(max_length=10, default="gbp")
    stripe_onboarding_complete = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name


class StripeAccount(models.Model):
    """Stripe Connect account receiving the organization's customer payments."""

    STATUS_PENDING = "pending"
    STATUS_RESTRICTED = "restricted"
    STATUS_ACTIVE = "active"
    STATUSES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_RESTRICTED, "Restricted"),
        (STATUS_ACTIVE, "Active"),
    ]

    organization = models.OneToOneField(
        Organization,
        on_delete=models.CASCADE,
        related_name="stripe_account",
    )
    account_id = models.CharField(max_length=255, unique=True)
    account_status = models.CharField(max_length=20, choices=STATUSES, default=STATUS_PENDING)
    livemode = models.BooleanField(default=False)
    charges_enabled = models.BooleanField(default=False)
    payouts_enabled = models.BooleanField(default=False)
    details_submitted = models.BooleanField(default=False)
    currently_due = models.JSONField(default=list, blank=True)
    default_currency = models.CharField(max_length=10, blank=True)
    account_email = models.EmailField(blank=True)
    onboarding_link_url = models.URLField(max_length=500, blank=True)
    onboarding_expires_at = models.DateTimeField(null=True, blank=True)
    last_webhook_received_at = models.DateTimeField(null=True, blank=True)
    last_webhook_error_at = models.DateTimeField(null=True, blank=True)
    last_webhook_error_message = models.CharField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_stripe_accounts",
    )

    def __str__(self):
        return f"{self.organization.name} Stripe Account"

    @property
    def is_ready(self) -> bool:
        return self.account_status == self.STATUS_ACTIVE


def derive_account_status(*, charges_enabled: bool, details_submitted: bool) -> str:
    if charges_enabled and details_submitted:
        return StripeAccount.STATUS_ACTIVE
    if details_submitted:
        return StripeAccount.STATUS_RESTRICTED
    return StripeAccount.STATUS_PENDING
