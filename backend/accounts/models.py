from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils import timezone


class User(AbstractUser):
    display_name = models.CharField(max_length=120, blank=True)
    active_organization = models.ForeignKey(
        "orgs.Organization",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )


class Membership(models.Model):
    ADMIN = "ADMIN"
    DISPATCHER = "DISPATCHER"
    DRIVER = "DRIVER"
    ROLES = [
        (ADMIN, "Admin"),
        (DISPATCHER, "Dispatcher"),
        (DRIVER, "Driver"),
    ]
    STAFF_ROLES = (ADMIN, DISPATCHER)

    user = models.ForeignKey("User", on_delete=models.CASCADE, related_name="memberships")
    organization = models.ForeignKey(
        "orgs.Organization",
        on_delete=models.CASCADE,
        related_name="memberships",
    )
    role = models.CharField(max_length=20, choices=ROLES)
    is_active = models.BooleanField(default=True)
    driver = models.ForeignKey(
        "bookings.Driver",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="memberships",
    )
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ("user", "organization")

    def __str__(self):
        return f"{self.user} @ {self.organization} ({self.role})"

    def mark_inactive(self):
        if self.is_active:
            self.is_active = False
            self.save(update_fields=["is_active", "updated_at"])
