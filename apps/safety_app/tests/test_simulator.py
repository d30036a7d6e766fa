import uuid
from unittest.mock import patch

from django.test import TestCase, override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from apps.safety_app import simulator
from apps.safety_app.exceptions import ValidationError
from apps.safety_app.models import Alert, Geofence, LocationPoint, SimulatorSession, UserProfile

from .helpers import eager_tasks, make_child, make_parent


class ScenarioCatalogueTests(TestCase):
    def test_describe_scenarios(self):
        scenarios = {s['id']: s for s in simulator.describe_scenarios()}

        self.assertEqual(set(scenarios), {'normalDay', 'leavingSafeZone', 'emergency', 'marketTrip', 'wandering'})
        self.assertEqual(scenarios['emergency']['steps'], 3)
        self.assertEqual(scenarios['emergency']['duration'], 19000)
        self.assertEqual(scenarios['emergency']['estimatedTime'], '19s')
        self.assertEqual(scenarios['emergency']['features'], {'hasGeofenceAlert': False, 'hasPanicAlert': True})
        self.assertEqual(scenarios['marketTrip']['features'], {'hasGeofenceAlert': True, 'hasPanicAlert': False})
        self.assertFalse(scenarios['normalDay']['features']['hasGeofenceAlert'])


@patch('apps.safety_app.realtime.publish')
class SimulatorSessionTests(TestCase):
    def setUp(self):
        self.parent = make_parent('parent')

    def test_ensure_demo_child(self, mock_publish):
        child = simulator.ensure_demo_child(self.parent)
        again = simulator.ensure_demo_child(self.parent)

        self.assertEqual(child, again)
        self.assertEqual(child.username, f'demo_child_{self.parent.id}')
        profile = UserProfile.objects.get(user=child)
        self.assertEqual(profile.user_type, UserProfile.CHILD)
        self.assertEqual(profile.parent, self.parent)
        self.assertFalse(child.has_usable_password())
        zone = Geofence.objects.get(parent=self.parent, child=child)
        self.assertEqual(zone.name, simulator.HOME_ZONE_NAME)
        self.assertEqual(zone.radius, simulator.HOME_ZONE_RADIUS)

    def test_start_schedules_first_step(self, mock_publish):
        with self.captureOnCommitCallbacks() as callbacks:
            session = simulator.start(self.parent, 'marketTrip')

        self.assertTrue(session.is_running)
        self.assertEqual(session.current_step, 0)
        self.assertEqual(len(callbacks), 1)

    def test_invalid_scenario(self, mock_publish):
        with self.assertRaisesMessage(ValidationError, 'Invalid scenario'):
            simulator.start(self.parent, 'skydiving')

    def test_cannot_start_twice(self, mock_publish):
        simulator.start(self.parent, 'normalDay')
        with self.assertRaisesMessage(ValidationError, 'already running'):
            simulator.start(self.parent, 'emergency')

    def test_stop(self, mock_publish):
        session = simulator.start(self.parent, 'normalDay')
        old_run_id = session.run_id
        simulator.run_step(session.pk, old_run_id, 0)

        summary = simulator.stop(self.parent)

        self.assertEqual(summary, {
            'scenario': 'Normal Day at Home', 'stepsCompleted': 1, 'totalSteps': 4, 'locationsCreated': 1,
        })
        session.refresh_from_db()
        self.assertFalse(session.is_running)
        self.assertNotEqual(session.run_id, old_run_id)
        with self.assertRaisesMessage(ValidationError, 'not running'):
            simulator.stop(self.parent)

    def test_stale_step_does_nothing(self, mock_publish):
        session = simulator.start(self.parent, 'normalDay')
        self.assertIsNone(simulator.run_step(session.pk, uuid.uuid4(), 0))
        self.assertFalse(LocationPoint.objects.exists())

        stale_run_id = session.run_id
        simulator.stop(self.parent)
        self.assertIsNone(simulator.run_step(session.pk, stale_run_id, 1))
        self.assertFalse(LocationPoint.objects.exists())

    def test_restart_invalidates_previous_run(self, mock_publish):
        first = simulator.start(self.parent, 'normalDay')
        first_run_id = first.run_id
        simulator.stop(self.parent)
        second = simulator.start(self.parent, 'emergency')

        self.assertIsNone(simulator.run_step(first.pk, first_run_id, 1))
        self.assertIsNotNone(simulator.run_step(second.pk, second.run_id, 0))
        self.assertEqual(LocationPoint.objects.count(), 1)

    @override_settings(SIMULATOR_MIN_STEP_SECONDS=1)
    def test_run_step(self, mock_publish):
        session = simulator.start(self.parent, 'leavingSafeZone')

        wait = simulator.run_step(session.pk, session.run_id, 0)

        self.assertEqual(wait, 4)
        point = LocationPoint.objects.get()
        self.assertEqual(point.user, session.demo_child)
        self.assertEqual((point.latitude, point.longitude), (12.9716, 77.5946))
        session.refresh_from_db()
        self.assertEqual(session.current_step, 1)
        self.assertIn('simulator-progress', [c.args[1] for c in mock_publish.call_args_list])

    def test_panic_step_raises_alert(self, mock_publish):
        session = simulator.start(self.parent, 'emergency')
        simulator.run_step(session.pk, session.run_id, 1)

        alert = Alert.objects.get(alert_type=Alert.PANIC)
        self.assertEqual(alert.parent, self.parent)
        self.assertIn('EMERGENCY!', alert.message)

    def test_last_step_finishes_run(self, mock_publish):
        session = simulator.start(self.parent, 'emergency')
        self.assertIsNone(simulator.run_step(session.pk, session.run_id, 3))

        session.refresh_from_db()
        self.assertFalse(session.is_running)
        self.assertEqual(mock_publish.call_args.args[1], 'simulator-completed')

    def test_full_run_leaves_and_returns(self, mock_publish):
        with eager_tasks(), self.captureOnCommitCallbacks(execute=True):
            simulator.start(self.parent, 'leavingSafeZone')

        session = SimulatorSession.objects.get(parent=self.parent)
        self.assertFalse(session.is_running)
        self.assertEqual(session.current_step, 8)
        self.assertEqual(LocationPoint.objects.filter(user=session.demo_child).count(), 8)
        types = list(Alert.objects.order_by('timestamp', 'id').values_list('alert_type', flat=True))
        self.assertEqual(types, [Alert.GEOFENCE_ENTRY, Alert.GEOFENCE_EXIT, Alert.GEOFENCE_ENTRY])


@patch('apps.safety_app.realtime.publish')
class SimulatorApiTests(APITestCase):
    def setUp(self):
        self.parent = make_parent('parent')
        self.client.force_authenticate(user=self.parent)

    def test_start_status_stop(self, mock_publish):
        response = self.client.post(reverse('simulator-start'), {'scenarioName': 'marketTrip'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.data['data']
        self.assertEqual(data['demoChild']['name'], 'Demo Child')
        self.assertEqual(data['scenario']['steps'], 9)

        response = self.client.get(reverse('simulator-status'))
        self.assertEqual(response.data['data']['simulator']['progress'], '0/9')

        response = self.client.post(reverse('simulator-start'), {'scenarioName': 'emergency'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(reverse('simulator-stop'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['summary']['totalSteps'], 9)

        response = self.client.post(reverse('simulator-stop'))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_start_with_someone_elses_child(self, mock_publish):
        child = make_child('kid', parent=make_parent('other'))
        response = self.client.post(reverse('simulator-start'), {'childId': child.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_invalid_scenario(self, mock_publish):
        response = self.client.post(reverse('simulator-start'), {'scenarioName': 'nope'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_scenarios(self, mock_publish):
        response = self.client.get(reverse('simulator-scenarios'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['data']['scenarios']), 5)

    def test_child_cannot_start(self, mock_publish):
        self.client.force_authenticate(user=make_child('kid', parent=self.parent))
        response = self.client.post(reverse('simulator-start'), {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
