from datetime import date, datetime, time

from django.utils import timezone

# a Monday
SCAN_DAY = date(2024, 1, 15)


def at(hour, minute=0, day=SCAN_DAY):
    """Aware datetime in the project's local time zone"""
    return timezone.make_aware(datetime.combine(day, time(hour, minute)))
