from datetime import timedelta
from unittest.mock import MagicMock, patch

from django.core import mail
from django.test import TestCase, override_settings
from django.utils import timezone

from apps.safety_app import alert_service, notification_service
from apps.safety_app.exceptions import NotificationDispatchError, ValidationError
from apps.safety_app.geofence_state import ENTRY, EXIT
from apps.safety_app.models import Alert, TrustedContact
from apps.safety_app.tasks import dispatch_alert_task

from .helpers import HOME_LAT, HOME_LON, make_child, make_geofence, make_parent


class EmitAlertTests(TestCase):
    def setUp(self):
        self.parent = make_parent('parent')
        self.child = make_child('kid', parent=self.parent, first_name='Asha')
        self.geofence = make_geofence(self.parent, name='School')

    def test_emit_transition_creates_alert_and_schedules_fan_out(self):
        with self.captureOnCommitCallbacks() as callbacks:
            alert = alert_service.emit_transition(self.child, self.geofence, EXIT, HOME_LAT, HOME_LON)

        self.assertEqual(len(callbacks), 1)
        self.assertEqual(alert.alert_type, Alert.GEOFENCE_EXIT)
        self.assertEqual(alert.parent, self.parent)
        self.assertEqual(alert.geofence_name, 'School')
        self.assertEqual(alert.message, 'Asha left School')
        self.assertFalse(alert.notification_sent)

        entry = alert_service.emit_transition(self.child, self.geofence, ENTRY, HOME_LAT, HOME_LON)
        self.assertEqual(entry.message, 'Asha entered School')

    def test_emit_transition_rejects_unknown_event(self):
        with self.assertRaises(ValueError):
            alert_service.emit_transition(self.child, self.geofence, 'WANDER', HOME_LAT, HOME_LON)

    def test_emit_panic(self):
        alert = alert_service.emit_panic(self.child, HOME_LAT, HOME_LON)
        self.assertEqual(alert.alert_type, Alert.PANIC)
        self.assertEqual(alert.parent, self.parent)
        self.assertEqual(alert.message, alert_service.DEFAULT_PANIC_MESSAGE)

        custom = alert_service.emit_panic(self.child, HOME_LAT, HOME_LON, message='Lost near the park')
        self.assertEqual(custom.message, 'Lost near the park')

    def test_emit_panic_without_parent(self):
        orphan = make_child('orphan')
        with self.assertRaisesMessage(ValidationError, 'No parent found'):
            alert_service.emit_panic(orphan, HOME_LAT, HOME_LON)
        self.assertFalse(Alert.objects.exists())

    def test_emit_panic_validates_coordinates(self):
        with self.assertRaises(ValidationError):
            alert_service.emit_panic(self.child, 95, HOME_LON)

    def test_low_battery_cooldown(self):
        now = timezone.now()
        first = alert_service.emit_low_battery(self.child, self.parent, 15, HOME_LAT, HOME_LON, now=now)
        self.assertIsNotNone(first)
        self.assertIn('15%', first.message)

        again = alert_service.emit_low_battery(self.child, self.parent, 12, HOME_LAT, HOME_LON,
                                               now=now + timedelta(minutes=30))
        self.assertIsNone(again)

        later = alert_service.emit_low_battery(self.child, self.parent, 10, HOME_LAT, HOME_LON,
                                               now=now + timedelta(minutes=61))
        self.assertIsNotNone(later)
        self.assertEqual(Alert.objects.filter(alert_type=Alert.LOW_BATTERY).count(), 2)


@patch('apps.safety_app.alert_service.send_fcm_to_user')
@patch('apps.safety_app.realtime.publish')
class FanOutTests(TestCase):
    def setUp(self):
        self.parent = make_parent('parent', email='parent@example.com')
        self.child = make_child('kid', parent=self.parent, first_name='Asha')
        self.geofence = make_geofence(self.parent, name='School')

    def make_alert(self, alert_type=Alert.PANIC, **kwargs):
        return Alert.objects.create(
            user=self.child, parent=self.parent, alert_type=alert_type,
            latitude=HOME_LAT, longitude=HOME_LON, message='help', **kwargs
        )

    def test_fan_out_pushes_and_emails(self, mock_publish, mock_fcm):
        alert = self.make_alert(Alert.GEOFENCE_EXIT, geofence=self.geofence, geofence_name='School')

        self.assertTrue(alert_service.fan_out(alert))

        mock_publish.assert_called_once()
        channel, event, payload = mock_publish.call_args[0]
        self.assertEqual(channel, f'user_{self.parent.id}_notifications')
        self.assertEqual(event, 'alert-received')
        self.assertEqual(payload['id'], alert.id)
        self.assertEqual(payload['type'], Alert.GEOFENCE_EXIT)
        self.assertEqual(payload['geofenceName'], 'School')

        mock_fcm.assert_called_once()
        self.assertEqual(mock_fcm.call_args[0][0], self.parent)

        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ['parent@example.com'])
        self.assertEqual(mail.outbox[0].subject, 'Asha left School')

        alert.refresh_from_db()
        self.assertTrue(alert.notification_sent)
        self.assertIsNone(alert.notification_error)

    def test_push_failure_still_records_outcome(self, mock_publish, mock_fcm):
        mock_fcm.side_effect = ValueError('too many tokens')
        alert = self.make_alert(Alert.PANIC)

        self.assertTrue(alert_service.fan_out(alert))

        self.assertEqual(len(mail.outbox), 1)
        alert.refresh_from_db()
        self.assertTrue(alert.notification_sent)
        self.assertIsNone(alert.notification_error)

    def test_no_recipients(self, mock_publish, mock_fcm):
        self.parent.email = ''
        self.parent.save()
        alert = self.make_alert(Alert.GEOFENCE_ENTRY, geofence=self.geofence, geofence_name='School')

        self.assertFalse(alert_service.fan_out(alert))

        alert.refresh_from_db()
        self.assertFalse(alert.notification_sent)
        self.assertEqual(alert.notification_error, 'No notification recipients configured')

    def test_all_failed_is_recorded(self, mock_publish, mock_fcm):
        # Twilio is not configured under test, so the SMS attempt fails
        self.parent.email = ''
        self.parent.save()
        self.parent.profile.phone_number = '+15550000001'
        self.parent.profile.save()
        alert = self.make_alert(Alert.LOW_BATTERY)

        self.assertFalse(alert_service.fan_out(alert))

        alert.refresh_from_db()
        self.assertFalse(alert.notification_sent)
        self.assertTrue(alert.notification_error.startswith('All notifications failed'))
        self.assertIn('+15550000001', alert.notification_error)

    def test_panic_reaches_trusted_contacts_despite_failures(self, mock_publish, mock_fcm):
        self.parent.profile.phone_number = '+15550000001'
        self.parent.profile.save()
        TrustedContact.objects.create(owner=self.parent, name='Aunt', phone_number='+15550000002')
        TrustedContact.objects.create(owner=self.parent, name='Uncle', email='uncle@example.com')
        alert = self.make_alert(Alert.PANIC)

        def fake_sms(phone_number, text):
            if phone_number == '+15550000001':
                raise NotificationDispatchError('carrier rejected')
            return {'success': True}

        with patch('apps.safety_app.notification_service.send_sms', side_effect=fake_sms) as mock_sms:
            self.assertTrue(alert_service.fan_out(alert))

        self.assertEqual(
            sorted(call.args[0] for call in mock_sms.call_args_list),
            ['+15550000001', '+15550000002']
        )
        self.assertEqual(sorted(m.to[0] for m in mail.outbox), ['parent@example.com', 'uncle@example.com'])
        self.assertTrue(all(m.subject.startswith('URGENT') for m in mail.outbox))

    def test_unexpected_dispatch_error_is_recorded(self, mock_publish, mock_fcm):
        alert = self.make_alert(Alert.PANIC)
        with patch('apps.safety_app.notification_service.notify_for_alert', side_effect=RuntimeError('boom')):
            self.assertFalse(alert_service.fan_out(alert))
        alert.refresh_from_db()
        self.assertIn('boom', alert.notification_error)

    def test_dispatch_task_runs_once(self, mock_publish, mock_fcm):
        alert = self.make_alert(Alert.PANIC)

        self.assertTrue(dispatch_alert_task(alert.id))
        self.assertTrue(dispatch_alert_task(alert.id))

        self.assertEqual(mock_publish.call_count, 1)
        self.assertEqual(len(mail.outbox), 1)

    def test_dispatch_task_missing_alert(self, mock_publish, mock_fcm):
        self.assertFalse(dispatch_alert_task(999999))
        mock_publish.assert_not_called()


class NotificationServiceTests(TestCase):
    def test_send_sms_requires_configuration(self):
        with self.assertRaisesMessage(NotificationDispatchError, 'not configured'):
            notification_service.send_sms('+15550000001', 'hello')

    @override_settings(TWILIO_ACCOUNT_SID='AC123', TWILIO_AUTH_TOKEN='secret', TWILIO_PHONE_NUMBER='+15550009999')
    @patch('apps.safety_app.notification_service.Client')
    def test_send_sms(self, mock_client_class):
        mock_client_class.return_value.messages.create.return_value = MagicMock(sid='SM1', status='queued')

        result = notification_service.send_sms('+15550000001', 'hello')

        mock_client_class.assert_called_once_with('AC123', 'secret')
        mock_client_class.return_value.messages.create.assert_called_once_with(
            body='hello', from_='+15550009999', to='+15550000001'
        )
        self.assertEqual(result['message_id'], 'SM1')

    def test_send_sms_requires_number(self):
        with self.assertRaises(NotificationDispatchError):
            notification_service.send_sms('', 'hello')

    def test_panic_text(self):
        text = notification_service.panic_text('Asha', HOME_LAT, HOME_LON, None, timezone.now())
        self.assertIn('Asha has triggered an emergency alert', text)
        self.assertIn('12.971600, 77.594600', text)
        self.assertIn('No additional message', text)
