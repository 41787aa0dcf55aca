from datetime import date
from decimal import Decimal

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from apps.core.models import ApiToken, MessFacility, Package, Student, Subscription, User


@pytest.fixture(autouse=True)
def clear_config_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def facility(db):
    return MessFacility.objects.create(name='Girls Hostel - Nursing', location='Campus Center', capacity=500)


@pytest.fixture
def other_facility(db):
    return MessFacility.objects.create(name='Gowthami Hostel Mess', location='First Floor', capacity=200)


@pytest.fixture
def lunch_dinner_package(facility):
    return Package.objects.create(
        name='Basic Monthly Plan',
        mess_facility=facility,
        duration_days=31,
        price=Decimal('2500.00'),
        meals_included=['LUNCH', 'DINNER'],
    )


@pytest.fixture
def full_package(facility):
    return Package.objects.create(
        name='Full Monthly Plan',
        mess_facility=facility,
        duration_days=31,
        price=Decimal('3500.00'),
        meals_included=['BREAKFAST', 'LUNCH', 'SNACKS', 'DINNER'],
    )


@pytest.fixture
def student(facility):
    return Student.objects.create(
        register_number='CS2021001',
        name='Rahul Kumar',
        department='Computer Science',
        mess_facility=facility,
    )


@pytest.fixture
def subscription(student, lunch_dinner_package, facility):
    return Subscription.objects.create(
        student=student,
        package=lunch_dinner_package,
        mess_facility=facility,
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 31),
        amount_paid=lunch_dinner_package.price,
    )


@pytest.fixture
def make_user(db):
    def make(role, username=None, **extra):
        return User.objects.create_user(
            username=username or role.lower(), password='secret123', role=role, **extra
        )
    return make


@pytest.fixture
def api_client_for(make_user):
    """APIClient authenticated with a bearer token for a fresh user of the given role"""
    def build(role, **extra):
        user = make_user(role, **extra)
        _, raw = ApiToken.create_token(user, label='tests')
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f'Bearer {raw}')
        client.user = user
        return client
    return build


@pytest.fixture
def fnb_client(api_client_for):
    return api_client_for('FNB_MANAGER')


@pytest.fixture
def admin_api(api_client_for):
    return api_client_for('ADMIN')
