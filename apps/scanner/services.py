"""
Scan validation workflow.

Every business outcome (invalid code, outside meal time, no entitlement,
duplicate) is returned as a result dict with success=True and written to the
append-only ScanLog. Only infrastructure failures propagate as exceptions.
"""
import logging

from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.api.permissions import user_has_capability
from apps.core.config import load_meal_config
from apps.core.models import MEAL_TYPES, MessFacility, Order, PendingApproval, ScanLog, Student
from apps.core.services import find_entitlement, planned_headcount
from apps.kitchen.models import MealAttendance, MealPlan
from apps.utils.notifications import notify_meal_served, notify_order_served
from apps.utils.qr_utils import ORDER_CODE_PREFIX, subscription_register_number

logger = logging.getLogger(__name__)

INVALID_CODE = 'Invalid QR code'
NOT_MEAL_TIME = 'Not meal time now'
ALREADY_SCANNED = 'Already scanned for this meal'
STUDENT_INACTIVE = 'Student account is inactive'
COUPON_EXPIRED = 'Order coupon has expired'
ORDER_ALREADY_SERVED = 'Order already served'


def resolve_code(code):
    """Return (student, order) for a scanned code; both None when unknown"""
    student = Student.objects.filter(qr_code=code).select_related('mess_facility').first()
    if student is not None:
        return student, None

    register_number = subscription_register_number(code)
    if register_number:
        student = Student.objects.filter(register_number=register_number).select_related('mess_facility').first()
        return student, None

    order = Order.objects.filter(coupon_code=code).select_related('student').first()
    if order is None and code.startswith(ORDER_CODE_PREFIX):
        order = Order.objects.filter(order_number=code[len(ORDER_CODE_PREFIX):]).select_related('student').first()
    return None, order


def student_payload(student):
    return {
        'id': student.id,
        'name': student.name,
        'register_number': student.register_number,
        'user_type': student.user_type,
        'department': student.department,
        'photo_url': student.photo_url,
    }


def order_payload(order):
    return {
        'id': order.id,
        'order_number': order.order_number,
        'student_name': order.student.name,
        'register_number': order.student.register_number,
        'photo_url': order.student.photo_url,
        'meal_type': order.meal_type,
        'status': order.status,
        'total_amount': str(order.total_amount),
        'items': [
            {'name': item.menu_item.name, 'quantity': item.quantity}
            for item in order.items.select_related('menu_item')
        ],
    }


def _log(code, device_id, user, now, result, meal_type='', student=None, order=None, granted=False, message=''):
    return ScanLog.objects.create(
        student=student,
        order=order,
        scanned_code=code[:100],
        student_name=student.name if student is not None else '',
        meal_type=meal_type or '',
        scan_result=result,
        access_granted=granted,
        message=message,
        device_id=device_id or '',
        scanned_by=user if getattr(user, 'pk', None) else None,
        scanned_at=now,
        scan_date=timezone.localdate(now),
    )


def _denied(code, device_id, user, now, message, meal_type=None, student=None, order=None):
    log = _log(code, device_id, user, now, 'DENIED', meal_type, student, order, message=message)
    logger.info(f"Scan denied on {device_id or 'unknown device'}: {message}")
    response = {
        'success': True,
        'access_granted': False,
        'scan_result': 'DENIED',
        'meal_type': meal_type,
        'error': message,
        'scan_log_id': log.id,
    }
    if student is not None:
        response['student'] = student_payload(student)
    if order is not None:
        response['order'] = order_payload(order)
    return response


def _mark_attendance(student, meal_type, device_id, now, subscription):
    facility_id = student.mess_facility_id or subscription.mess_facility_id
    today = timezone.localdate(now)
    meal_plan = MealPlan.objects.filter(
        mess_facility_id=facility_id, day=today.weekday(), meal=meal_type
    ).first()
    if meal_plan is None:
        return None
    attendance, _ = MealAttendance.objects.get_or_create(
        student=student,
        meal_plan=meal_plan,
        attended_on=today,
        defaults={'attended_at': now, 'device_id': device_id or ''},
    )
    return attendance


def grant_student_meal(student, meal_type, code, device_id, user, now, subscription):
    """Insert the granted log; the unique constraint turns a second grant into DUPLICATE"""
    try:
        with transaction.atomic():
            log = _log(code, device_id, user, now, 'SUCCESS', meal_type, student, granted=True,
                       message='Meal served')
    except IntegrityError:
        log = _log(code, device_id, user, now, 'DUPLICATE', meal_type, student, message=ALREADY_SCANNED)
        logger.info(f"Duplicate {meal_type} scan for {student.register_number}")
        return {
            'success': True,
            'access_granted': False,
            'scan_result': 'DUPLICATE',
            'duplicate_scan': True,
            'student': student_payload(student),
            'meal_type': meal_type,
            'error': ALREADY_SCANNED,
            'scan_log_id': log.id,
        }

    config = load_meal_config()
    if config.auto_mark_attendance:
        _mark_attendance(student, meal_type, device_id, now, subscription)
    notify_meal_served(student, meal_type, timezone.localtime(now))

    logger.info(f"{meal_type} granted to {student.register_number} on {device_id or 'unknown device'}")
    return {
        'success': True,
        'access_granted': True,
        'scan_result': 'SUCCESS',
        'student': student_payload(student),
        'subscription_id': subscription.id,
        'meal_type': meal_type,
        'message': 'Subscription valid, meal served',
        'scan_log_id': log.id,
    }


def serve_order(order, code, device_id, user, now):
    if order.status not in Order.SERVABLE_STATUSES:
        message = ORDER_ALREADY_SERVED if order.status == 'SERVED' else f"Order is {order.status.lower()}"
        return _denied(code, device_id, user, now, message, order.meal_type, order.student, order)
    if order.is_coupon_expired(now):
        return _denied(code, device_id, user, now, COUPON_EXPIRED, order.meal_type, order.student, order)

    with transaction.atomic():
        served = Order.objects.filter(
            pk=order.pk, status__in=Order.SERVABLE_STATUSES
        ).update(status='SERVED', served_at=now, updated_at=now)
        if not served:
            order.refresh_from_db()
            return _denied(code, device_id, user, now, ORDER_ALREADY_SERVED, order.meal_type, order.student, order)
        log = _log(code, device_id, user, now, 'SUCCESS', order.meal_type, order.student, order,
                   granted=True, message='Order served')

    order.refresh_from_db()
    notify_order_served(order)
    logger.info(f"Order {order.order_number} served on {device_id or 'unknown device'}")
    return {
        'success': True,
        'access_granted': True,
        'scan_result': 'SUCCESS',
        'order': order_payload(order),
        'meal_type': order.meal_type,
        'message': 'Order validated and marked served',
        'scan_log_id': log.id,
    }


def request_approval(student, meal_type, device_id, user, now, config):
    approval = PendingApproval.open_request(
        student, meal_type, device_id, user if getattr(user, 'pk', None) else None,
        minutes=config.approval_expiry_minutes, now=now,
    )
    logger.info(f"Manual approval requested for {student.register_number} ({meal_type})")
    return {
        'success': True,
        'access_granted': False,
        'scan_result': None,
        'requires_approval': True,
        'approval_token': approval.token,
        'expires_at': approval.expires_at.isoformat(),
        'student': student_payload(student),
        'meal_type': meal_type,
        'message': 'Outside meal time, manual approval required',
    }


def process_scan(qr_code, device_id='', user=None, meal_type=None, now=None):
    """
    Validate a scanned code and decide whether to serve.

    meal_type is only consulted outside the configured windows, where it names
    the meal an override-capable operator wants to approve.
    """
    now = now or timezone.now()
    code = (qr_code or '').strip()
    if not code:
        return _denied(code, device_id, user, now, INVALID_CODE)

    student, order = resolve_code(code)
    if student is None and order is None:
        return _denied(code, device_id, user, now, INVALID_CODE)

    config = load_meal_config()
    current_meal = config.current_meal(now)
    today = timezone.localdate(now)

    if order is not None:
        if current_meal is None:
            return _denied(code, device_id, user, now, NOT_MEAL_TIME, order.meal_type, order.student, order)
        return serve_order(order, code, device_id, user, now)
    if not student.is_active:
        return _denied(code, device_id, user, now, STUDENT_INACTIVE, student=student)

    if current_meal is None:
        requested = (meal_type or '').upper()
        if requested not in MEAL_TYPES:
            requested, _ = config.next_meal(now)
        can_override = config.allow_manual_override and user_has_capability(user, 'scanner.override')
        if not can_override or requested is None:
            return _denied(code, device_id, user, now, NOT_MEAL_TIME, student=student)
        subscription, reason = find_entitlement(student, requested, today)
        if subscription is None:
            return _denied(code, device_id, user, now, reason, requested, student)
        return request_approval(student, requested, device_id, user, now, config)

    subscription, reason = find_entitlement(student, current_meal, today)
    if subscription is None:
        return _denied(code, device_id, user, now, reason, current_meal, student)

    return grant_student_meal(student, current_meal, code, device_id, user, now, subscription)


def find_pending_approval(token=None, student_id=None, meal_type=None):
    queryset = PendingApproval.objects.select_for_update().select_related('student')
    if token:
        return queryset.filter(token=token).first()
    if student_id:
        queryset = queryset.filter(student_id=student_id, resolved_at__isnull=True)
        if meal_type:
            queryset = queryset.filter(meal_type=meal_type.upper())
        return queryset.order_by('-created_at').first()
    return None


def resolve_manual_approval(approved, token=None, student_id=None, meal_type=None,
                            device_id='', user=None, now=None):
    """Approve or deny an open manual approval request. Returns None when no request matches."""
    now = now or timezone.now()

    with transaction.atomic():
        approval = find_pending_approval(token, student_id, meal_type)
        if approval is None:
            return None

        student = approval.student
        device_id = device_id or approval.device_id
        code = student.qr_code

        if approval.resolved_at is not None:
            return {
                'success': True,
                'access_granted': False,
                'scan_result': None,
                'student': student_payload(student),
                'meal_type': approval.meal_type,
                'error': 'Approval request already resolved',
            }

        approval.resolved_at = now
        approval.resolved_by = user if getattr(user, 'pk', None) else None

        if approval.is_expired(now):
            approval.approved = False
            approval.save(update_fields=['resolved_at', 'resolved_by', 'approved'])
            return _denied(code, device_id, user, now, 'Approval request expired', approval.meal_type, student)

        if not approved:
            approval.approved = False
            approval.save(update_fields=['resolved_at', 'resolved_by', 'approved'])
            return _denied(code, device_id, user, now, 'Manual approval denied', approval.meal_type, student)

        approval.approved = True
        approval.save(update_fields=['resolved_at', 'resolved_by', 'approved'])

        subscription, reason = find_entitlement(student, approval.meal_type, timezone.localdate(now))
        if subscription is None:
            return _denied(code, device_id, user, now, reason, approval.meal_type, student)

        return grant_student_meal(student, approval.meal_type, code, device_id, user, now, subscription)


def scan_stats(mess_facility=None, now=None):
    """Today's counters for the scanner screen"""
    now = now or timezone.now()
    today = timezone.localdate(now)
    meal_type = load_meal_config().current_meal(now)

    todays_logs = ScanLog.objects.filter(scan_date=today)
    if mess_facility is not None:
        todays_logs = todays_logs.filter(student__mess_facility=mess_facility)

    expected = 0
    served = 0
    if meal_type:
        facilities = [mess_facility] if mess_facility is not None else MessFacility.objects.filter(is_active=True)
        expected = sum(planned_headcount(facility, meal_type, today) for facility in facilities)
        served = todays_logs.filter(meal_type=meal_type, access_granted=True).count()

    return {
        'expectedToCome': expected,
        'served': served,
        'mealType': meal_type,
        'totalScansToday': todays_logs.count(),
    }
