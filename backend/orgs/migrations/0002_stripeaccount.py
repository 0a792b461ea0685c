from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("orgs", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="StripeAccount",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("account_id", models.CharField(max_length=255, unique=True)),
                (
                    "account_status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("restricted", "Restricted"),
                            ("active", "Active"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("livemode", models.BooleanField(default=False)),
                ("charges_enabled", models.BooleanField(default=False)),
                ("payouts_enabled", models.BooleanField(default=False)),
                ("details_submitted", models.BooleanField(default=False)),
                ("currently_due", models.JSONField(blank=True, default=list)),
                ("default_currency", models.CharField(blank=True, max_length=10)),
                ("account_email", models.EmailField(blank=True, max_length=254)),
                ("onboarding_link_url", models.URLField(blank=True, max_length=500)),
                ("onboarding_expires_at", models.DateTimeField(blank=True, null=True)),
                (
                    "last_webhook_received_at",
                    models.DateTimeField(blank=True, null=True),
                ),
                ("last_webhook_error_at", models.DateTimeField(blank=True, null=True)),
                (
                    "last_webhook_error_message",
                    models.CharField(blank=True, max_length=500),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="created_stripe_accounts",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "organization",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="stripe_account",
                        to="orgs.organization",
                    ),
                ),
            ],
        ),
    ]
