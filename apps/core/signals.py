from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver

from .config import invalidate_meal_config
from .models import SystemConfig


@receiver(post_save, sender=SystemConfig)
@receiver(post_delete, sender=SystemConfig)
def drop_cached_config(sender, **kwargs):
    invalidate_meal_config()
