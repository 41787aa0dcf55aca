from io import StringIO

import pytest
from django.core.management import CommandError, call_command

from apps.core.models import ApiToken, Package, Student, Subscription, SystemConfig, User
from apps.inventory.models import Item, Unit
from apps.kitchen.models import Dish

pytestmark = pytest.mark.django_db


def seed():
    out = StringIO()
    call_command('seed', stdout=out)
    return out.getvalue()


def test_seed_creates_demo_data():
    output = seed()

    assert 'Seed complete' in output
    assert User.objects.get(username='admin').check_password('admin123')
    assert User.objects.get(username='scanner').mess_facility is not None
    assert SystemConfig.objects.get(key='default_order_status').value == 'PREPARED'
    assert Dish.objects.get(name='Rice').cost_per_5_students > 0
    assert Student.objects.get(register_number='CS2021001').qr_code.startswith('QR_CS2021001_')


def test_seed_is_idempotent():
    seed()
    counts = [model.objects.count() for model in (User, Package, Item, Unit, Dish, Student, Subscription)]

    seed()

    assert [model.objects.count() for model in (User, Package, Item, Unit, Dish, Student, Subscription)] == counts


def test_seed_keeps_operator_config():
    seed()
    SystemConfig.objects.filter(key='lunch_start').update(value='11:30')

    seed()

    assert SystemConfig.objects.get(key='lunch_start').value == '11:30'


def test_issue_token(make_user):
    user = make_user('SCANNER', username='gate1')
    out = StringIO()

    call_command('issue_token', 'gate1', '--label', 'gate', '--days', '7', stdout=out)

    raw = out.getvalue().strip().splitlines()[-1]
    token = ApiToken.objects.get(user=user)
    assert token.token_hash == ApiToken.hash_token(raw)
    assert token.label == 'gate'
    assert token.expires_at is not None


def test_issue_token_unknown_user(db):
    with pytest.raises(CommandError):
        call_command('issue_token', 'ghost', stdout=StringIO())
