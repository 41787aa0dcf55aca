import asyncio
import logging

import telegram
from celery import shared_task
from django.conf import settings
from django.db import transaction

from apps.core.models import AuditLog, Notification

logger = logging.getLogger(__name__)

MEAL_EMOJI = {
    'BREAKFAST': '🌅',
    'LUNCH': '☀️',
    'SNACKS': '☕',
    'DINNER': '🌙',
}


def _preview(text):
    return text[:100] + '...' if len(text) > 100 else text


async def _send(chat_id, text, parse_mode):
    bot = telegram.Bot(token=settings.TELEGRAM_BOT_TOKEN)
    async with bot:
        await bot.send_message(chat_id=chat_id, text=text, parse_mode=parse_mode)


@shared_task(bind=True, max_retries=3)
def send_telegram_message(self, chat_id, text, parse_mode='Markdown'):
    """Send Telegram message with retry logic"""
    try:
        asyncio.run(_send(chat_id, text, parse_mode))

        AuditLog.objects.create(
            actor_type='SYSTEM',
            event_type='NOTIFICATION_SENT',
            payload={'chat_id': chat_id, 'message': _preview(text)}
        )

    except telegram.error.TelegramError as exc:
        logger.error(f"Failed to send Telegram message: {exc}")

        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))

        AuditLog.objects.create(
            actor_type='SYSTEM',
            event_type='NOTIFICATION_FAILED',
            payload={'chat_id': chat_id, 'error': str(exc), 'message': _preview(text)}
        )


def send_notification(student, title, message, notification_type='INFO'):
    """Store a notification for the student and push it to Telegram when linked"""
    notification = Notification.objects.create(
        student=student,
        title=title,
        message=message,
        notification_type=notification_type,
    )

    if student.tg_chat_id and settings.TELEGRAM_BOT_TOKEN:
        text = f"*{title}*\n\n{message}"
        chat_id = student.tg_chat_id
        transaction.on_commit(lambda: send_telegram_message.delay(chat_id, text))

    return notification


def notify_meal_served(student, meal_type, scanned_at):
    message = (
        f"{MEAL_EMOJI.get(meal_type, '🍽️')} {meal_type.title()} access granted at "
        f"{scanned_at.strftime('%H:%M')}. Enjoy your meal!"
    )
    return send_notification(student, 'Meal served', message, 'SERVICE')


def notify_order_served(order):
    message = f"Your order {order.order_number} ({order.meal_type.title()}) has been served."
    return send_notification(order.student, 'Order served', message, 'SERVICE')


def notify_subscription_created(subscription):
    message = (
        f"Your {subscription.package.name} subscription at {subscription.mess_facility.name} "
        f"is active from {subscription.start_date} to {subscription.end_date}."
    )
    return send_notification(subscription.student, 'Subscription activated', message, 'INFO')


def notify_subscription_status(subscription):
    """Only suspension and cancellation are announced"""
    if subscription.status not in ('SUSPENDED', 'CANCELLED'):
        return None
    message = (
        f"Your {subscription.package.name} subscription has been {subscription.status.lower()}. "
        f"Please contact the mess office for details."
    )
    return send_notification(subscription.student, f"Subscription {subscription.status.title()}", message, 'ALERT')


def notify_subscription_expiring(subscription, days_left):
    message = (
        f"Your {subscription.package.name} subscription ends on {subscription.end_date} "
        f"({days_left} day{'s' if days_left != 1 else ''} left). Renew to keep your meal access."
    )
    return send_notification(subscription.student, 'Subscription expiring soon', message, 'REMINDER')
