import logging
from datetime import timedelta

from django.db import transaction
from django.utils import timezone

from .models import AuditLog, PendingApproval, Subscription

logger = logging.getLogger(__name__)

NO_SUBSCRIPTION = 'No active subscription for this meal'
MEAL_NOT_INCLUDED = 'Meal not included in package'


def covering_subscriptions(student, on_date, mess_facility=None):
    """ACTIVE subscriptions whose date range contains on_date, most recent first"""
    queryset = Subscription.objects.filter(
        student=student,
        status='ACTIVE',
        start_date__lte=on_date,
        end_date__gte=on_date,
    ).select_related('package', 'mess_facility')
    if mess_facility is not None:
        queryset = queryset.filter(mess_facility=mess_facility)
    return queryset.order_by('-created_at', '-id')


def find_entitlement(student, meal_type, on_date):
    """
    Return (subscription, None) for the subscription that entitles the
    student to meal_type on on_date, or (None, reason) when there is none.

    end_date is inclusive. When several ACTIVE subscriptions cover the date
    the most recently created one that includes the meal wins.
    """
    subscriptions = list(covering_subscriptions(student, on_date))
    if not subscriptions:
        return None, NO_SUBSCRIPTION

    for subscription in subscriptions:
        if subscription.package.includes_meal(meal_type):
            return subscription, None

    return None, MEAL_NOT_INCLUDED


def is_entitled(student, meal_type, on_date):
    subscription, _ = find_entitlement(student, meal_type, on_date)
    return subscription is not None


def overlapping_subscriptions(student, mess_facility, start_date, end_date, exclude_id=None):
    queryset = Subscription.objects.filter(
        student=student,
        mess_facility=mess_facility,
        status='ACTIVE',
        start_date__lte=end_date,
        end_date__gte=start_date,
    )
    if exclude_id is not None:
        queryset = queryset.exclude(pk=exclude_id)
    return queryset


def planned_headcount(mess_facility, meal_type, on_date):
    """Number of distinct students with an ACTIVE subscription at the facility covering the date and meal"""
    subscriptions = Subscription.objects.filter(
        mess_facility=mess_facility,
        status='ACTIVE',
        start_date__lte=on_date,
        end_date__gte=on_date,
    ).select_related('package')

    students = {
        subscription.student_id
        for subscription in subscriptions
        if subscription.package.includes_meal(meal_type)
    }
    return len(students)


def expire_due_subscriptions(today=None):
    """Move ACTIVE subscriptions whose end date has passed to EXPIRED"""
    today = today or timezone.localdate()
    expired_ids = []

    with transaction.atomic():
        due = Subscription.objects.select_for_update().filter(status='ACTIVE', end_date__lt=today)
        for subscription in due:
            subscription.transition_to('EXPIRED', system=True)
            subscription.save(update_fields=['status', 'updated_at'])
            expired_ids.append(subscription.pk)

        if expired_ids:
            AuditLog.record('SUBSCRIPTIONS_EXPIRED', {'ids': expired_ids, 'as_of': today.isoformat()})

    logger.info(f"Expired {len(expired_ids)} subscriptions as of {today}")
    return len(expired_ids)


def expiring_subscriptions(days, today=None):
    today = today or timezone.localdate()
    return Subscription.objects.filter(
        status='ACTIVE',
        end_date__gte=today,
        end_date__lte=today + timedelta(days=days),
    ).select_related('student', 'package', 'mess_facility')


def purge_stale_approvals(now=None):
    now = now or timezone.now()
    deleted, _ = PendingApproval.objects.filter(resolved_at__isnull=True, expires_at__lt=now).delete()
    return deleted
