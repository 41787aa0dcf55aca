from celery import shared_task

from .services import generate_alerts


@shared_task
def generate_stock_alerts():
    """Daily LOW_STOCK / EXPIRY alert sweep"""
    return len(generate_alerts())
