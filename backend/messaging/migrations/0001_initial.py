from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("orgs", "0001_initial"),
        ("bookings", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="WhatsAppConfig",
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
                ("account_sid", models.CharField(max_length=64)),
                ("auth_token", models.CharField(max_length=128)),
                ("whatsapp_number", models.CharField(db_index=True, max_length=30)),
                ("enabled", models.BooleanField(default=True)),
                ("template_sids", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "organization",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="whatsapp_config",
                        to="orgs.organization",
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="Conversation",
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
                ("phone", models.CharField(db_index=True, max_length=30)),
                (
                    "state",
                    models.CharField(
                        choices=[
                            ("IDLE", "Idle"),
                            ("AWAITING_ACCEPT", "Awaiting accept"),
                            ("AWAITING_START", "Awaiting start"),
                            ("IN_PROGRESS", "In progress"),
                        ],
                        default="IDLE",
                        max_length=20,
                    ),
                ),
                ("last_message_at", models.DateTimeField(blank=True, null=True)),
                ("last_inbound_at", models.DateTimeField(blank=True, null=True)),
                ("expires_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "current_booking",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="conversations",
                        to="bookings.booking",
                    ),
                ),
                (
                    "driver",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="conversations",
                        to="bookings.driver",
                    ),
                ),
                (
                    "organization",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="conversations",
                        to="orgs.organization",
                    ),
                ),
            ],
            options={
                "unique_together": {("driver", "phone")},
            },
        ),
        migrations.CreateModel(
            name="Message",
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
                (
                    "direction",
                    models.CharField(
                        choices=[("outbound", "Outbound"), ("inbound", "Inbound")],
                        max_length=10,
                    ),
                ),
                ("recipient_phone", models.CharField(max_length=30)),
                (
                    "message_type",
                    models.CharField(
                        choices=[
                            ("BOOKING_CONFIRMED", "Booking confirmed"),
                            ("DRIVER_DISPATCHED", "Driver dispatched"),
                            ("DRIVER_ASSIGNED", "Driver assigned"),
                            ("DRIVER_ACCEPTED", "Driver accepted"),
                            ("DRIVER_EN_ROUTE", "Driver en route"),
                            ("TRIP_COMPLETED", "Trip completed"),
                            ("MANUAL", "Manual"),
                            ("REPLY_ACCEPTED", "Reply: job accepted"),
                            ("REPLY_DECLINED", "Reply: job declined"),
                            ("REPLY_STARTED", "Reply: trip started"),
                            ("REPLY_COMPLETED", "Reply: trip completed"),
                            ("PROMPT", "Prompt"),
                            ("INFO", "Info"),
                            ("TEST", "Test"),
                            ("INBOUND", "Inbound"),
                        ],
                        max_length=30,
                    ),
                ),
                ("body", models.TextField(blank=True)),
                (
                    "delivery_mode",
                    models.CharField(
                        choices=[
                            ("session", "Session (free-form)"),
                            ("template", "Approved template"),
                        ],
                        default="session",
                        max_length=10,
                    ),
                ),
                ("provider_sid", models.CharField(blank=True, db_index=True, max_length=64)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("QUEUED", "Queued"),
                            ("SENT", "Sent"),
                            ("DELIVERED", "Delivered"),
                            ("READ", "Read"),
                            ("FAILED", "Failed"),
                        ],
                        default="QUEUED",
                        max_length=10,
                    ),
                ),
                ("error_message", models.CharField(blank=True, max_length=500)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "booking",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="messages",
                        to="bookings.booking",
                    ),
                ),
                (
                    "driver",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="messages",
                        to="bookings.driver",
                    ),
                ),
                (
                    "organization",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="messages",
                        to="orgs.organization",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(
                        fields=["organization", "created_at"],
                        name="message_org_created_idx",
                    )
                ],
            },
        ),
    ]
