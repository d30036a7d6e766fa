# apps/safety_app/signals.py
import logging

from django.contrib.auth.models import User
from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import UserProfile

logger = logging.getLogger(__name__)


@receiver(post_save, sender=User)
def create_user_profile(sender, instance, created, **kwargs):
    """
    Every account gets a profile. New accounts default to PARENT; child accounts
    are switched to CHILD by whoever creates them.
    """
    if created:
        UserProfile.objects.get_or_create(user=instance)
        logger.info(f"Created profile for user '{instance.username}' (ID: {instance.id})")
