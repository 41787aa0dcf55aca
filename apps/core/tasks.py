import logging

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from apps.utils.notifications import notify_subscription_expiring
from .services import expire_due_subscriptions, expiring_subscriptions, purge_stale_approvals

logger = logging.getLogger(__name__)


@shared_task
def expire_subscriptions():
    """Daily sweep: ACTIVE subscriptions past their end date become EXPIRED"""
    return expire_due_subscriptions()


@shared_task
def remind_expiring_subscriptions():
    """Remind students whose subscription ends within the next few days"""
    today = timezone.localdate()
    days = settings.MESS_CONFIG['expiring_subscription_days']
    sent = 0
    for subscription in expiring_subscriptions(days, today):
        notify_subscription_expiring(subscription, (subscription.end_date - today).days)
        sent += 1
    logger.info(f"Sent {sent} subscription expiry reminders")
    return sent


@shared_task
def purge_pending_approvals():
    deleted = purge_stale_approvals()
    if deleted:
        logger.info(f"Purged {deleted} expired manual approval requests")
    return deleted
