from unittest import mock

import pytest
import telegram

from apps.core.models import AuditLog, Notification
from apps.utils.notifications import notify_subscription_status, send_notification, send_telegram_message
from apps.utils.qr_utils import generate_coupon_code, generate_qr_image, generate_student_code, subscription_register_number
from tests.helpers import at

pytestmark = pytest.mark.django_db


class TestCodes:
    def test_student_code_carries_register_number(self):
        code = generate_student_code('CS2021001')
        assert code.startswith('QR_CS2021001_')
        assert code != generate_student_code('CS2021001')

    def test_coupon_code(self):
        assert generate_coupon_code('ORD000001', at(12, 0)) == f"ORDER_ORD000001_{int(at(12, 0).timestamp())}"

    def test_subscription_code(self):
        assert subscription_register_number('SUB-CS2021001') == 'CS2021001'
        assert subscription_register_number('SUB-') is None
        assert subscription_register_number('QR_CS2021001_AB') is None

    def test_qr_image_is_base64_png(self):
        assert generate_qr_image('QR_CS2021001_AB').startswith('iVBOR')


class TestNotifications:
    def test_unlinked_student_only_gets_stored_notification(self, student, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks() as callbacks:
            send_notification(student, 'Hello', 'World')

        assert Notification.objects.filter(student=student, title='Hello').count() == 1
        assert callbacks == []

    def test_linked_student_is_pushed_after_commit(self, student, settings, django_capture_on_commit_callbacks):
        settings.TELEGRAM_BOT_TOKEN = 'token'
        student.tg_chat_id = 12345
        student.save()

        with mock.patch('apps.utils.notifications.send_telegram_message.delay') as delay:
            with django_capture_on_commit_callbacks(execute=True):
                send_notification(student, 'Hello', 'World')

        delay.assert_called_once_with(12345, '*Hello*\n\nWorld')

    def test_only_suspension_and_cancellation_are_announced(self, subscription):
        assert notify_subscription_status(subscription) is None

        subscription.status = 'SUSPENDED'
        assert notify_subscription_status(subscription).notification_type == 'ALERT'

    def test_send_records_audit(self, db):
        with mock.patch('apps.utils.notifications._send', new=mock.AsyncMock()) as send:
            send_telegram_message(12345, 'Lunch served')

        send.assert_awaited_once_with(12345, 'Lunch served', 'Markdown')
        assert AuditLog.objects.get().event_type == 'NOTIFICATION_SENT'

    def test_failure_after_last_retry_is_recorded(self, db):
        failing = mock.AsyncMock(side_effect=telegram.error.TelegramError('bot blocked'))
        with mock.patch('apps.utils.notifications._send', new=failing):
            send_telegram_message.apply(args=(12345, 'Lunch served'), retries=3)

        log = AuditLog.objects.get()
        assert log.event_type == 'NOTIFICATION_FAILED'
        assert log.payload['error'] == 'bot blocked'
