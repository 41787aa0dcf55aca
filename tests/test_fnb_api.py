from datetime import date
from decimal import Decimal

import pytest

from apps.core.models import AuditLog, MenuItem, Notification, Order, Subscription, SystemConfig

pytestmark = pytest.mark.django_db

BASE = '/api/v1/fnb-manager'


@pytest.fixture
def thali(facility):
    return MenuItem.objects.create(mess_facility=facility, name='Veg Thali', meal_type='LUNCH', price=Decimal('90.00'))


class TestPermissions:
    def test_chef_cannot_manage_subscriptions(self, api_client_for):
        assert api_client_for('CHEF').get(f'{BASE}/subscriptions').status_code == 403

    def test_viewer_reads_but_cannot_write(self, api_client_for, facility):
        viewer = api_client_for('VIEWER')
        assert viewer.get(f'{BASE}/mess-facilities').status_code == 200
        assert viewer.post(f'{BASE}/mess-facilities', {'name': 'New Mess'}, format='json').status_code == 403

    def test_me(self, fnb_client):
        response = fnb_client.get('/api/v1/auth/me')
        assert response.data['role'] == 'FNB_MANAGER'
        assert 'scanner.override' in response.data['capabilities']

    def test_dashboard(self, fnb_client, subscription):
        response = fnb_client.get(f'{BASE}/dashboard')
        assert response.status_code == 200


class TestStudents:
    def test_create_assigns_qr_code(self, fnb_client, facility):
        response = fnb_client.post(f'{BASE}/students', {
            'register_number': 'NS2021001', 'name': 'Priya Sharma', 'mess_facility': facility.id,
        }, format='json')

        assert response.status_code == 201
        assert response.data['qr_code'].startswith('QR_NS2021001_')

    def test_qr_code_is_read_only(self, fnb_client, student):
        original = student.qr_code
        fnb_client.put(f'{BASE}/students/{student.id}', {'qr_code': 'QR_HACKED'}, format='json')
        student.refresh_from_db()
        assert student.qr_code == original

    def test_register_number_is_immutable(self, fnb_client, student):
        response = fnb_client.put(f'{BASE}/students/{student.id}', {'register_number': 'XX1'}, format='json')
        assert response.status_code == 400


class TestPackages:
    def test_meals_are_normalised(self, fnb_client, facility):
        response = fnb_client.post(f'{BASE}/packages', {
            'name': 'Evening Plan', 'mess_facility': facility.id, 'duration_days': 30,
            'price': '1500.00', 'meals_included': ['DINNER', 'SNACKS', 'DINNER'],
        }, format='json')

        assert response.status_code == 201
        assert response.data['meals_included'] == ['SNACKS', 'DINNER']

    def test_unknown_meal_is_rejected(self, fnb_client, facility):
        response = fnb_client.post(f'{BASE}/packages', {
            'name': 'Odd Plan', 'mess_facility': facility.id, 'duration_days': 30,
            'price': '10.00', 'meals_included': ['BRUNCH'],
        }, format='json')
        assert response.status_code == 400


class TestSubscriptions:
    def test_create_fills_defaults(self, fnb_client, student, lunch_dinner_package):
        response = fnb_client.post(f'{BASE}/subscriptions', {
            'student': student.id, 'package': lunch_dinner_package.id, 'start_date': '2024-01-01',
        }, format='json')

        assert response.status_code == 201
        assert response.data['end_date'] == '2024-01-31'
        assert Decimal(response.data['amount_paid']) == lunch_dinner_package.price
        assert response.data['status'] == 'ACTIVE'
        assert AuditLog.objects.filter(event_type='SUBSCRIPTION_CREATED').count() == 1
        assert Notification.objects.filter(student=student).count() == 1

    def test_overlapping_active_subscription_is_rejected(self, fnb_client, subscription, full_package):
        response = fnb_client.post(f'{BASE}/subscriptions', {
            'student': subscription.student_id, 'package': full_package.id, 'start_date': '2024-01-20',
        }, format='json')

        assert response.status_code == 400
        assert Subscription.objects.count() == 1

    def test_non_overlapping_renewal_is_allowed(self, fnb_client, subscription, full_package):
        response = fnb_client.post(f'{BASE}/subscriptions', {
            'student': subscription.student_id, 'package': full_package.id, 'start_date': '2024-02-01',
        }, format='json')
        assert response.status_code == 201

    def test_package_from_another_facility(self, fnb_client, student, lunch_dinner_package, other_facility):
        response = fnb_client.post(f'{BASE}/subscriptions', {
            'student': student.id, 'package': lunch_dinner_package.id,
            'mess_facility': other_facility.id, 'start_date': '2024-01-01',
        }, format='json')
        assert response.status_code == 400

    def test_suspend_then_reactivate(self, fnb_client, subscription):
        url = f'{BASE}/subscriptions/{subscription.id}'
        assert fnb_client.put(url, {'status': 'SUSPENDED'}, format='json').data['status'] == 'SUSPENDED'
        assert fnb_client.put(url, {'status': 'ACTIVE'}, format='json').data['status'] == 'ACTIVE'
        assert AuditLog.objects.filter(event_type='SUBSCRIPTION_STATUS_CHANGED').count() == 2

    def test_cancelled_cannot_come_back(self, fnb_client, subscription):
        url = f'{BASE}/subscriptions/{subscription.id}'
        fnb_client.put(url, {'status': 'CANCELLED'}, format='json')

        response = fnb_client.put(url, {'status': 'ACTIVE'}, format='json')

        assert response.status_code == 400
        assert 'error' in response.data
        subscription.refresh_from_db()
        assert subscription.status == 'CANCELLED'

    def test_manual_expiry_is_rejected(self, fnb_client, subscription):
        response = fnb_client.put(f'{BASE}/subscriptions/{subscription.id}', {'status': 'EXPIRED'}, format='json')
        assert response.status_code == 400

    def test_reactivation_blocked_by_overlap(self, fnb_client, subscription, full_package, facility):
        Subscription.objects.filter(pk=subscription.pk).update(status='SUSPENDED')
        Subscription.objects.create(
            student=subscription.student, package=full_package, mess_facility=facility,
            start_date=date(2024, 1, 10), end_date=date(2024, 2, 9),
        )

        response = fnb_client.put(f'{BASE}/subscriptions/{subscription.id}', {'status': 'ACTIVE'}, format='json')

        assert response.status_code == 400
        subscription.refresh_from_db()
        assert subscription.status == 'SUSPENDED'

    def test_missing_subscription(self, fnb_client, db):
        assert fnb_client.get(f'{BASE}/subscriptions/999').status_code == 404


class TestOrders:
    def create(self, client, student, facility, item, quantity=2):
        return client.post(f'{BASE}/orders', {
            'student': student.id, 'mess_facility': facility.id, 'meal_type': 'LUNCH',
            'items': [{'menu_item': item.id, 'quantity': quantity}],
        }, format='json')

    def test_create_computes_total_and_coupon(self, fnb_client, student, facility, thali):
        response = self.create(fnb_client, student, facility, thali)

        assert response.status_code == 201
        assert Decimal(response.data['total_amount']) == Decimal('180.00')
        assert response.data['status'] == 'PENDING'
        assert response.data['coupon_code'].startswith(f"ORDER_{response.data['order_number']}_")
        assert response.data['items'][0]['price'] == '90.00'

    def test_default_status_from_config(self, fnb_client, student, facility, thali):
        SystemConfig.objects.create(key='default_order_status', value='PREPARED')
        response = self.create(fnb_client, student, facility, thali)
        assert response.data['status'] == 'PREPARED'

    def test_item_from_other_facility(self, fnb_client, student, other_facility, thali):
        assert self.create(fnb_client, student, other_facility, thali).status_code == 400

    def test_status_ladder(self, fnb_client, student, facility, thali):
        order_id = self.create(fnb_client, student, facility, thali).data['id']
        url = f'{BASE}/orders/{order_id}'

        assert fnb_client.put(url, {'status': 'PREPARED'}, format='json').status_code == 400
        assert fnb_client.put(url, {'status': 'CONFIRMED'}, format='json').data['status'] == 'CONFIRMED'
        assert fnb_client.put(url, {'status': 'PREPARED'}, format='json').data['status'] == 'PREPARED'
        served = fnb_client.put(url, {'status': 'SERVED'}, format='json')
        assert served.data['served_at'] is not None
        assert fnb_client.put(url, {'status': 'CANCELLED'}, format='json').status_code == 400

    def test_cancel_open_order(self, fnb_client, student, facility, thali):
        order_id = self.create(fnb_client, student, facility, thali).data['id']

        response = fnb_client.put(
            f'{BASE}/orders/{order_id}', {'status': 'CANCELLED', 'payment_status': 'REFUNDED'}, format='json'
        )

        assert response.data['status'] == 'CANCELLED'
        assert Order.objects.get(pk=order_id).payment_status == 'REFUNDED'
