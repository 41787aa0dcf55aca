import threading
from datetime import timedelta
from decimal import Decimal

import pytest
from django.db import connection

from apps.core.models import Order, ScanLog
from apps.scanner.services import process_scan
from tests.helpers import SCAN_DAY, at

pytestmark = [
    pytest.mark.django_db(transaction=True),
    pytest.mark.skipif(connection.vendor != 'postgresql', reason='needs concurrent connections'),
]


def scan_together(code, scanners=2):
    """Run the same scan from several threads at once, each on its own connection"""
    barrier = threading.Barrier(scanners)
    results = []
    errors = []

    def worker(device_id):
        try:
            barrier.wait()
            results.append(process_scan(code, device_id=device_id, now=at(12, 30)))
        except Exception as exc:
            errors.append(exc)
        finally:
            connection.close()

    threads = [threading.Thread(target=worker, args=(f'gate-{n}',)) for n in range(scanners)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    return results


def test_parallel_student_scans_grant_once(student, subscription):
    results = scan_together(student.qr_code)

    assert sorted(result['scan_result'] for result in results) == ['DUPLICATE', 'SUCCESS']
    assert ScanLog.objects.filter(student=student, meal_type='LUNCH', access_granted=True).count() == 1
    assert ScanLog.objects.filter(student=student).count() == 2


def test_parallel_order_scans_serve_once(student, facility):
    order = Order.objects.create(
        order_number='ORD202401151200000002',
        student=student,
        mess_facility=facility,
        meal_type='LUNCH',
        order_date=SCAN_DAY,
        status='PREPARED',
        total_amount=Decimal('90.00'),
        coupon_code='ORDER_ORD202401151200000002_1705300200000',
        coupon_expires_at=at(12, 0) + timedelta(hours=24),
    )

    results = scan_together(order.coupon_code)

    assert sorted(result['access_granted'] for result in results) == [False, True]
    order.refresh_from_db()
    assert order.status == 'SERVED'
    assert ScanLog.objects.filter(order=order, access_granted=True).count() == 1
