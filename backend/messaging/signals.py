from django.db.models.signals import post_save
from django.dispatch import receiver

from bookings.models import Booking

from .models import Conversation

TERMINAL_STATUSES = (Booking.COMPLETED, Booking.CANCELLED)


@receiver(post_save, sender=Booking)
def release_conversations(sender, instance, created, update_fields=None, **kwargs):
    """Return driver conversations to IDLE once their booking is finished or reassigned."""
    if created:
        return
    if update_fields is not None and not {"status", "driver"} & set(update_fields):
        return

    stale = Conversation.objects.filter(current_booking=instance)
    if instance.status not in TERMINAL_STATUSES and instance.driver_id is not None:
        stale = stale.exclude(driver_id=instance.driver_id)
    stale.exclude(state=Conversation.IDLE).update(
        state=Conversation.IDLE, current_booking=None
    )
