from django.apps import AppConfig


class MessagingAppConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "messaging"
    verbose_name = "WhatsApp messaging"

    def ready(self):
        from . import signals  # noqa: F401
