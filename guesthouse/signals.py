from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import UserRole


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def create_default_role(sender, instance, created, **kwargs):
    """Every new account starts out as a plain guest."""
    if created:
        UserRole.objects.get_or_create(user=instance)
