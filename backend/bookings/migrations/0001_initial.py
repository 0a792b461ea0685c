import django.core.validators
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("orgs", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Driver",
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
                ("name", models.CharField(max_length=200)),
                ("phone", models.CharField(db_index=True, max_length=30)),
                ("vehicle", models.CharField(blank=True, max_length=120)),
                ("vehicle_colour", models.CharField(blank=True, max_length=60)),
                ("plate", models.CharField(blank=True, max_length=20)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("AVAILABLE", "Available"),
                            ("BUSY", "Busy"),
                            ("OFF_DUTY", "Off duty"),
                        ],
                        default="AVAILABLE",
                        max_length=12,
                    ),
                ),
                ("rating", models.DecimalField(decimal_places=2, default=5, max_digits=3)),
                ("location", models.CharField(blank=True, max_length=200)),
                ("notes", models.TextField(blank=True)),
                ("whatsapp_verified", models.BooleanField(default=False)),
                ("whatsapp_opted_in", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "organization",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="drivers",
                        to="orgs.organization",
                    ),
                ),
            ],
            options={
                "ordering": ["name", "id"],
            },
        ),
        migrations.CreateModel(
            name="Booking",
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
                ("customer_name", models.CharField(max_length=200)),
                ("customer_phone", models.CharField(max_length=30)),
                ("customer_email", models.EmailField(blank=True, max_length=254)),
                ("pickup_location", models.CharField(max_length=300)),
                ("dropoff_location", models.CharField(max_length=300)),
                ("pickup_time", models.DateTimeField()),
                (
                    "passengers",
                    models.PositiveIntegerField(
                        default=1,
                        validators=[django.core.validators.MinValueValidator(1)],
                    ),
                ),
                ("vehicle_class", models.CharField(blank=True, max_length=60)),
                ("distance", models.CharField(blank=True, max_length=40)),
                ("duration", models.CharField(blank=True, max_length=40)),
                ("is_return", models.BooleanField(default=False)),
                ("price_cents", models.PositiveIntegerField(default=0)),
                ("currency", models.CharField(default="gbp", max_length=10)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("PENDING", "Pending"),
                            ("ASSIGNED", "Assigned"),
                            ("IN_PROGRESS", "In progress"),
                            ("COMPLETED", "Completed"),
                            ("CANCELLED", "Cancelled"),
                        ],
                        db_index=True,
                        default="PENDING",
                        max_length=12,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("PENDING", "Pending"),
                            ("PROCESSING", "Processing"),
                            ("PAID", "Paid"),
                            ("FAILED", "Failed"),
                            ("REFUNDED", "Refunded"),
                            ("PARTIALLY_REFUNDED", "Partially refunded"),
                            ("INVOICED", "Invoiced"),
                        ],
                        default="PENDING",
                        max_length=20,
                    ),
                ),
                ("customer_notified", models.BooleanField(default=False)),
                ("driver_notified", models.BooleanField(default=False)),
                ("driver_accepted", models.BooleanField(default=False)),
                ("driver_accepted_at", models.DateTimeField(blank=True, null=True)),
                ("invoice_claimed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "stripe_checkout_session",
                    models.CharField(blank=True, db_index=True, max_length=255),
                ),
                ("notes", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "driver",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="bookings",
                        to="bookings.driver",
                    ),
                ),
                (
                    "organization",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="bookings",
                        to="orgs.organization",
                    ),
                ),
            ],
            options={
                "ordering": ["pickup_time", "id"],
                "indexes": [
                    models.Index(
                        fields=["organization", "status"],
                        name="booking_org_status_idx",
                    )
                ],
            },
        ),
    ]
