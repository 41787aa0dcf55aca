import base64
from unittest import mock

import pytest
from rest_framework.test import APIClient

from apps.core.models import ScanLog
from tests.helpers import at

pytestmark = pytest.mark.django_db


def frozen(moment):
    return mock.patch('django.utils.timezone.now', return_value=moment)


@pytest.fixture
def scanner(api_client_for):
    return api_client_for('SCANNER')


def test_scan_requires_token(student):
    response = APIClient().post('/api/v1/scanner/scan', {'qrCode': student.qr_code}, format='json')
    assert response.status_code == 401


def test_scan_rejects_bad_token(student):
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION='Bearer not-a-token')
    response = client.post('/api/v1/scanner/scan', {'qrCode': student.qr_code}, format='json')
    assert response.status_code == 401


def test_viewer_cannot_scan(api_client_for, student):
    client = api_client_for('VIEWER')
    response = client.post('/api/v1/scanner/scan', {'qrCode': student.qr_code}, format='json')
    assert response.status_code == 403


def test_scan_during_lunch(scanner, student, subscription):
    with frozen(at(12, 30)):
        response = scanner.post(
            '/api/v1/scanner/scan', {'qrCode': student.qr_code, 'deviceId': 'gate-1'}, format='json'
        )

    assert response.status_code == 200
    assert response.data['access_granted'] is True
    log = ScanLog.objects.get()
    assert log.scanned_by == scanner.user
    assert log.device_id == 'gate-1'


def test_business_denial_is_still_200(scanner, db):
    with frozen(at(12, 30)):
        response = scanner.post('/api/v1/scanner/scan', {'qrCode': 'junk', 'deviceId': 'gate-1'}, format='json')

    assert response.status_code == 200
    assert response.data['success'] is True
    assert response.data['access_granted'] is False


def test_missing_code_is_a_denied_scan(scanner, db):
    with frozen(at(12, 30)):
        response = scanner.post('/api/v1/scanner/scan', {'deviceId': 'gate-1'}, format='json')

    assert response.status_code == 200
    assert response.data['access_granted'] is False
    assert response.data['error'] == 'Invalid QR code'
    assert ScanLog.objects.get().device_id == 'gate-1'


def test_meal_type_is_case_insensitive(fnb_client, student, subscription):
    with frozen(at(10, 30)):
        response = fnb_client.post(
            '/api/v1/scanner/scan', {'qrCode': student.qr_code, 'mealType': 'dinner'}, format='json'
        )

    assert response.status_code == 200
    assert response.data['requires_approval'] is True
    assert response.data['meal_type'] == 'DINNER'


def test_unknown_meal_type_is_rejected(scanner, student):
    response = scanner.post('/api/v1/scanner/scan', {'qrCode': student.qr_code, 'mealType': 'brunch'}, format='json')
    assert response.status_code == 400
    assert 'mealType' in response.data


def test_scanner_role_gets_no_approval_prompt(scanner, student, subscription):
    with frozen(at(10, 30)):
        response = scanner.post('/api/v1/scanner/scan', {'qrCode': student.qr_code}, format='json')

    assert response.data['access_granted'] is False
    assert 'requires_approval' not in response.data


def test_manual_approval_flow(fnb_client, student, subscription):
    with frozen(at(10, 30)):
        opened = fnb_client.post(
            '/api/v1/scanner/scan', {'qrCode': student.qr_code, 'deviceId': 'gate-1'}, format='json'
        )
    assert opened.data['requires_approval'] is True

    with frozen(at(10, 31)):
        response = fnb_client.post(
            '/api/v1/scanner/manual-approval',
            {'approvalToken': opened.data['approval_token'], 'approved': True},
            format='json'
        )

    assert response.status_code == 200
    assert response.data['access_granted'] is True
    assert response.data['meal_type'] == 'LUNCH'


def test_manual_approval_needs_override_capability(scanner, db):
    response = scanner.post(
        '/api/v1/scanner/manual-approval', {'approvalToken': 'abc', 'approved': True}, format='json'
    )
    assert response.status_code == 403


def test_manual_approval_unknown_request(fnb_client, db):
    response = fnb_client.post(
        '/api/v1/scanner/manual-approval', {'approvalToken': 'abc', 'approved': True}, format='json'
    )
    assert response.status_code == 404
    assert response.data['success'] is False


def test_manual_approval_needs_token_or_student(fnb_client, db):
    response = fnb_client.post('/api/v1/scanner/manual-approval', {'approved': True}, format='json')
    assert response.status_code == 400


def test_recent_scans_with_stats(scanner, student, subscription):
    with frozen(at(12, 30)):
        scanner.post('/api/v1/scanner/scan', {'qrCode': student.qr_code}, format='json')
        scanner.post('/api/v1/scanner/scan', {'qrCode': student.qr_code}, format='json')
        response = scanner.get('/api/v1/scanner/recent-scans?limit=1')

    assert response.status_code == 200
    assert len(response.data['scans']) == 1
    assert response.data['scans'][0]['scan_result'] == 'DUPLICATE'
    assert response.data['stats'] == {
        'expectedToCome': 1,
        'served': 1,
        'mealType': 'LUNCH',
        'totalScansToday': 2,
    }


def test_logs_filter_by_device(scanner, student, subscription):
    with frozen(at(12, 30)):
        scanner.post('/api/v1/scanner/scan', {'qrCode': 'junk', 'deviceId': 'gate-1'}, format='json')
        scanner.post('/api/v1/scanner/scan', {'qrCode': 'junk', 'deviceId': 'gate-2'}, format='json')

    response = scanner.get('/api/v1/scanner/logs?deviceId=gate-2')

    assert [row['device_id'] for row in response.data] == ['gate-2']


def test_student_qr_png(scanner, student):
    response = scanner.get(f'/api/v1/scanner/students/{student.id}/qr')

    assert response.status_code == 200
    assert response.data['qr_code'] == student.qr_code
    assert base64.b64decode(response.data['image_base64']).startswith(b'\x89PNG')


def test_current_meal(scanner, db):
    with frozen(at(16, 15)):
        response = scanner.get('/api/v1/scanner/current-meal')

    assert response.data['meal_type'] == 'SNACKS'
    assert response.data['next_meal'] == 'DINNER'
    assert len(response.data['meal_windows']) == 4
