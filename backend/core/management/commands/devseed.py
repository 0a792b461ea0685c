from datetime import timedelta

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.utils import timezone

from accounts.models import Membership, User
from bookings.models import Booking, Driver
from messaging.models import WhatsAppConfig
from orgs.models import Organization


SEED_PASSWORD = "EliteDispatch123!"
SUPERUSER_EMAIL = "admin@elitecars.test"
SUPERUSER_PASSWORD = "AdminEliteDispatch123!"


class Command(BaseCommand):
    help = "Populate the local development database with sample data."

    def handle(self, *args, **options):
        if not settings.DEBUG:
            raise CommandError("Refusing to seed data while DEBUG is False.")

        with transaction.atomic():
            self.stdout.write(self.style.MIGRATE_HEADING("Creating organizations"))
            elite = self._ensure_organization(
                slug="elite-cars",
                name="Elite Cars",
                email="ops@elitecars.test",
                phone="+442071234567",
            )
            metro = self._ensure_organization(
                slug="metro-chauffeurs",
                name="Metro Chauffeurs",
                email="hello@metrochauffeurs.test",
                phone="+442079876543",
            )

            self.stdout.write(self.style.MIGRATE_HEADING("Creating drivers"))
            omar = self._ensure_driver(
                elite,
                name="Omar Owner-Driver",
                phone="+447700900001",
                vehicle="Mercedes S-Class",
                plate="EL1 TE",
            )
            nia = self._ensure_driver(
                elite,
                name="Nia Night-Shift",
                phone="+447700900002",
                vehicle="Tesla Model S",
                plate="NI4 EV",
            )
            self._ensure_driver(
                metro,
                name="Rex Rival",
                phone="+447700900555",
                vehicle="BMW 7 Series",
                plate="ME7 RO",
            )

            self.stdout.write(self.style.MIGRATE_HEADING("Creating users & memberships"))
            admin = self._ensure_user(email="owner@elitecars.test", first_name="Ada", last_name="Admin")
            dispatcher = self._ensure_user(email="desk@elitecars.test", first_name="Dev", last_name="Desk")
            driver_user = self._ensure_user(email="omar@elitecars.test", first_name="Omar", last_name="Driver")
            self._ensure_membership(admin, elite, Membership.ADMIN)
            self._ensure_membership(admin, metro, Membership.DISPATCHER)
            self._ensure_membership(dispatcher, elite, Membership.DISPATCHER)
            self._ensure_membership(driver_user, elite, Membership.DRIVER, driver=omar)

            self.stdout.write(self.style.MIGRATE_HEADING("Ensuring admin superuser"))
            self._ensure_superuser()

            self.stdout.write(self.style.MIGRATE_HEADING("Configuring WhatsApp sandbox"))
            WhatsAppConfig.objects.update_or_create(
                organization=elite,
                defaults={
                    "account_sid": "AC" + "0" * 32,
                    "auth_token": "sandbox-token-0000",
                    "whatsapp_number": "+14155238886",
                },
            )

            self.stdout.write(self.style.MIGRATE_HEADING("Creating bookings"))
            Booking.objects.filter(organization__in=[elite, metro]).delete()
            start = timezone.now().replace(minute=0, second=0, microsecond=0)
            Booking.objects.create(
                organization=elite,
                customer_name="Carla Customer",
                customer_phone="+447700900100",
                customer_email="carla@example.test",
                pickup_location="Heathrow Terminal 5",
                dropoff_location="The Savoy, London",
                pickup_time=start + timedelta(days=1, hours=3),
                passengers=2,
                vehicle_class="Executive",
                price_cents=12000,
            )
            Booking.objects.create(
                organization=elite,
                customer_name="Bertie Business",
                customer_phone="+447700900101",
                pickup_location="Canary Wharf",
                dropoff_location="London City Airport",
                pickup_time=start + timedelta(hours=5),
                price_cents=6500,
                driver=nia,
                status=Booking.ASSIGNED,
                driver_notified=True,
            )
            Booking.objects.create(
                organization=elite,
                customer_name="Acme Ltd",
                customer_phone="+447700900102",
                customer_email="accounts@acme.test",
                pickup_location="Gatwick South",
                dropoff_location="Brighton Marina",
                pickup_time=start - timedelta(days=2),
                price_cents=9000,
                driver=omar,
                status=Booking.COMPLETED,
                driver_accepted=True,
                payment_status=Booking.PAYMENT_PAID,
            )

        self.stdout.write(self.style.SUCCESS("Development seed data created."))
        self.stdout.write(self.style.NOTICE(f"Sample login accounts use password: {SEED_PASSWORD}"))
        self.stdout.write(self.style.NOTICE(f"Admin superuser {SUPERUSER_EMAIL} password: {SUPERUSER_PASSWORD}"))

    def _ensure_organization(self, slug: str, name: str, email: str, phone: str) -> Organization:
        organization, _ = Organization.objects.update_or_create(
            slug=slug,
            defaults={"name": name, "contact_email": email, "phone": phone},
        )
        return organization

    def _ensure_driver(self, organization: Organization, *, name: str, phone: str, vehicle: str, plate: str) -> Driver:
        driver, _ = Driver.objects.update_or_create(
            organization=organization,
            phone=phone,
            defaults={"name": name, "vehicle": vehicle, "plate": plate, "whatsapp_opted_in": True},
        )
        return driver

    def _ensure_user(self, email: str, first_name: str, last_name: str) -> User:
        user, created = User.objects.get_or_create(
            email=email,
            defaults={
                "username": email,
                "first_name": first_name,
                "last_name": last_name,
                "display_name": f"{first_name} {last_name}",
            },
        )
        if created or not user.has_usable_password():
            user.set_password(SEED_PASSWORD)
            user.save(update_fields=["password"])
        return user

    def _ensure_membership(self, user: User, organization: Organization, role: str, driver=None) -> Membership:
        membership, created = Membership.objects.update_or_create(
            user=user,
            organization=organization,
            defaults={"role": role, "is_active": True, "driver": driver},
        )
        if user.active_organization_id is None:
            user.active_organization = organization
            user.save(update_fields=["active_organization"])
        if created:
            self.stdout.write(
                self.style.NOTICE(f"Added {user.email} as {role} for {organization.name}")
            )
        return membership

    def _ensure_superuser(self) -> User:
        user, created = User.objects.get_or_create(
            email=SUPERUSER_EMAIL,
            defaults={
                "username": SUPERUSER_EMAIL,
                "first_name": "Admin",
                "last_name": "User",
                "display_name": "Admin User",
                "is_staff": True,
                "is_superuser": True,
            },
        )
        if not (user.is_staff and user.is_superuser):
            user.is_staff = True
            user.is_superuser = True
            user.save(update_fields=["is_staff", "is_superuser"])
        if created or not user.has_usable_password():
            user.set_password(SUPERUSER_PASSWORD)
            user.save(update_fields=["password"])
        return user
