import os
from celery import Celery
from celery.schedules import crontab

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'campus_mess.settings')

app = Celery('campus_mess')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()

app.conf.beat_schedule = {
    'expire-subscriptions-daily': {
        'task': 'apps.core.tasks.expire_subscriptions',
        'schedule': crontab(hour=0, minute=5),
    },
    'remind-expiring-subscriptions': {
        'task': 'apps.core.tasks.remind_expiring_subscriptions',
        'schedule': crontab(hour=9, minute=0),
    },
    'purge-pending-approvals': {
        'task': 'apps.core.tasks.purge_pending_approvals',
        'schedule': crontab(minute=0),  # hourly
    },
    'generate-stock-alerts': {
        'task': 'apps.inventory.tasks.generate_stock_alerts',
        'schedule': crontab(hour=6, minute=0),
    },
}
