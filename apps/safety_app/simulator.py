# apps/safety_app/simulator.py
"""
Demo scenario player.

Each parent owns at most one SimulatorSession row. Steps run as Celery tasks that
carry the session's run_id; stopping or restarting a session rotates the run_id,
so any step still sitting in the queue finds a mismatch and does nothing.
Steps go through the normal store and evaluation path, without debouncing.
"""
import logging
import uuid

from django.conf import settings
from django.contrib.auth.models import User
from django.db import transaction
from django.utils import timezone

from . import alert_service, evaluation, location_store, realtime
from .exceptions import ValidationError
from .geo_utils import distance_in_meters
from .models import Geofence, SimulatorSession, UserProfile, display_name

logger = logging.getLogger(__name__)

HOME = (12.9716, 77.5946)
HOME_ZONE_NAME = 'Home Safe Zone'
HOME_ZONE_RADIUS = 200  # meters

SCENARIOS = {
    'normalDay': {
        'name': 'Normal Day at Home',
        'description': 'Child stays within safe zone, normal activities',
        'steps': [
            {'lat': 12.9716, 'lng': 77.5946, 'address': 'Home - Living Room', 'wait': 5000},
            {'lat': 12.9717, 'lng': 77.5947, 'address': 'Home - Kitchen', 'wait': 5000},
            {'lat': 12.9716, 'lng': 77.5946, 'address': 'Home - Bedroom', 'wait': 5000},
            {'lat': 12.9715, 'lng': 77.5945, 'address': 'Home - Garden', 'wait': 5000},
        ],
    },
    'leavingSafeZone': {
        'name': 'Leaving Safe Zone',
        'description': 'Child gradually moves outside geofence boundary',
        'steps': [
            {'lat': 12.9716, 'lng': 77.5946, 'address': 'Home - Starting Point', 'wait': 4000},
            {'lat': 12.9720, 'lng': 77.5950, 'address': 'Near Home Gate', 'wait': 4000},
            {'lat': 12.9725, 'lng': 77.5955, 'address': 'Walking on Street', 'wait': 4000},
            {'lat': 12.9735, 'lng': 77.5965, 'address': 'Outside Safe Zone', 'wait': 5000},
            {'lat': 12.9740, 'lng': 77.5970, 'address': 'Park', 'wait': 5000},
            {'lat': 12.9735, 'lng': 77.5965, 'address': 'Walking back', 'wait': 4000},
            {'lat': 12.9720, 'lng': 77.5950, 'address': 'Near home', 'wait': 4000},
            {'lat': 12.9716, 'lng': 77.5946, 'address': 'Back home safely', 'wait': 4000},
        ],
    },
    'emergency': {
        'name': 'Emergency Alert',
        'description': 'Child triggers panic button',
        'steps': [
            {'lat': 12.9716, 'lng': 77.5946, 'address': 'Home - Normal activity', 'wait': 6000},
            {'lat': 12.9716, 'lng': 77.5946, 'address': 'Home - Feeling unwell', 'wait': 5000, 'panic': True},
            {'lat': 12.9716, 'lng': 77.5946, 'address': 'Home - Help requested', 'wait': 8000},
        ],
    },
    'marketTrip': {
        'name': 'Trip to Market',
        'description': 'Planned trip outside safe zone',
        'steps': [
            {'lat': 12.9716, 'lng': 77.5946, 'address': 'Home', 'wait': 4000},
            {'lat': 12.9720, 'lng': 77.5950, 'address': 'Walking to bus stop', 'wait': 4000},
            {'lat': 12.9750, 'lng': 77.5980, 'address': 'Bus Stop', 'wait': 6000},
            {'lat': 12.9800, 'lng': 77.6050, 'address': 'Market Street', 'wait': 6000},
            {'lat': 12.9805, 'lng': 77.6055, 'address': 'Grocery Store', 'wait': 10000},
            {'lat': 12.9800, 'lng': 77.6050, 'address': 'Leaving market', 'wait': 4000},
            {'lat': 12.9750, 'lng': 77.5980, 'address': 'Bus stop return', 'wait': 6000},
            {'lat': 12.9720, 'lng': 77.5950, 'address': 'Near home', 'wait': 4000},
            {'lat': 12.9716, 'lng': 77.5946, 'address': 'Home - Safe return', 'wait': 4000},
        ],
    },
    'wandering': {
        'name': 'Wandering Pattern',
        'description': 'Child appears confused, moving erratically',
        'steps': [
            {'lat': 12.9716, 'lng': 77.5946, 'address': 'Home', 'wait': 4000},
            {'lat': 12.9720, 'lng': 77.5950, 'address': 'Left home', 'wait': 3000},
            {'lat': 12.9718, 'lng': 77.5952, 'address': 'Wandering - unclear direction', 'wait': 3000},
            {'lat': 12.9722, 'lng': 77.5948, 'address': 'Wandering - changed direction', 'wait': 3000},
            {'lat': 12.9719, 'lng': 77.5955, 'address': 'Wandering - appears lost', 'wait': 4000},
            {'lat': 12.9725, 'lng': 77.5960, 'address': 'Still wandering', 'wait': 4000},
            {'lat': 12.9723, 'lng': 77.5958, 'address': 'Circling around', 'wait': 4000},
            {'lat': 12.9730, 'lng': 77.5965, 'address': 'Far from home', 'wait': 6000, 'panic': True},
        ],
    },
}


def _leaves_home(scenario):
    return any(
        distance_in_meters(step['lat'], step['lng'], *HOME) > HOME_ZONE_RADIUS
        for step in scenario['steps']
    )


def describe_scenarios():
    scenarios = []
    for key, scenario in SCENARIOS.items():
        duration = sum(step['wait'] for step in scenario['steps'])
        scenarios.append({
            'id': key,
            'name': scenario['name'],
            'description': scenario['description'],
            'steps': len(scenario['steps']),
            'duration': duration,
            'estimatedTime': f"{round(duration / 1000)}s",
            'features': {
                'hasGeofenceAlert': _leaves_home(scenario),
                'hasPanicAlert': any(step.get('panic') for step in scenario['steps']),
            },
        })
    return scenarios


def ensure_demo_child(parent):
    """Find or create the parent's demo child, with a home zone around it."""
    username = f"demo_child_{parent.id}"
    child, created = User.objects.get_or_create(
        username=username,
        defaults={'first_name': 'Demo', 'last_name': 'Child', 'email': f"{username}@safesphere.app"},
    )
    if created:
        child.set_unusable_password()
        child.save(update_fields=['password'])
        profile, _ = UserProfile.objects.get_or_create(user=child)
        profile.user_type = UserProfile.CHILD
        profile.parent = parent
        profile.save()
        logger.info(f"Created demo child '{username}' for parent {parent.id}")

    if not Geofence.objects.filter(parent=parent, child=child).exists():
        Geofence.objects.create(
            parent=parent,
            child=child,
            name=HOME_ZONE_NAME,
            center_latitude=HOME[0],
            center_longitude=HOME[1],
            radius=HOME_ZONE_RADIUS,
        )
    return child


def start(parent, scenario_key, child=None):
    scenario = SCENARIOS.get(scenario_key)
    if scenario is None:
        raise ValidationError("Invalid scenario")

    if child is None:
        child = ensure_demo_child(parent)

    from .tasks import run_simulator_step_task

    with transaction.atomic():
        session, created = SimulatorSession.objects.select_for_update().get_or_create(
            parent=parent,
            defaults={'demo_child': child, 'scenario': scenario_key},
        )
        if not created and session.is_running:
            raise ValidationError("Simulator is already running. Stop it first.")

        session.demo_child = child
        session.scenario = scenario_key
        session.run_id = uuid.uuid4()
        session.is_running = True
        session.current_step = 0
        session.started_at = timezone.now()
        session.stopped_at = None
        session.save()

        session_id, run_id = session.pk, str(session.run_id)
        transaction.on_commit(lambda: run_simulator_step_task.delay(session_id, run_id, 0))

    logger.info(f"Simulator '{scenario_key}' started for parent {parent.id} (run {run_id})")
    return session


def stop(parent):
    session = SimulatorSession.objects.filter(parent=parent, is_running=True).first()
    if session is None:
        raise ValidationError("Simulator is not running")

    summary = {
        'scenario': SCENARIOS[session.scenario]['name'],
        'stepsCompleted': session.current_step,
        'totalSteps': len(SCENARIOS[session.scenario]['steps']),
        'locationsCreated': session.current_step,
    }
    SimulatorSession.objects.filter(pk=session.pk).update(
        is_running=False,
        stopped_at=timezone.now(),
        run_id=uuid.uuid4(),
    )
    logger.info(f"Simulator stopped for parent {parent.id} after {session.current_step} step(s)")
    return summary


def status(parent):
    session = SimulatorSession.objects.filter(parent=parent).first()
    if session is None or not session.is_running:
        return {
            'isRunning': False,
            'currentScenario': None,
            'currentStep': session.current_step if session else 0,
            'totalSteps': 0,
            'progress': 'Not running',
            'childId': None,
        }

    total = len(SCENARIOS[session.scenario]['steps'])
    return {
        'isRunning': True,
        'currentScenario': SCENARIOS[session.scenario]['name'],
        'currentStep': session.current_step,
        'totalSteps': total,
        'progress': f"{session.current_step}/{total}",
        'childId': session.demo_child_id,
    }


def _finish(session):
    SimulatorSession.objects.filter(pk=session.pk, run_id=session.run_id).update(
        is_running=False,
        stopped_at=timezone.now(),
    )
    realtime.publish(
        realtime.user_channel(session.parent_id),
        'simulator-completed',
        {'message': 'Simulation completed', 'timestamp': timezone.now().isoformat()},
    )
    logger.info(f"Simulator run {session.run_id} completed for parent {session.parent_id}")


def run_step(session_id, run_id, step_index):
    """
    Play one step. Returns the delay in seconds before the next step should run,
    or None when there is nothing more to schedule.
    """
    session = SimulatorSession.objects.select_related('demo_child').filter(pk=session_id).first()
    if session is None or not session.is_running or str(session.run_id) != str(run_id):
        logger.info(f"Skipping stale simulator step {step_index} (run {run_id})")
        return None

    steps = SCENARIOS[session.scenario]['steps']
    if step_index >= len(steps):
        _finish(session)
        return None

    step = steps[step_index]
    child = session.demo_child
    now = timezone.now()

    with transaction.atomic():
        point = location_store.append(
            child,
            latitude=step['lat'],
            longitude=step['lng'],
            accuracy=10,
            speed=1.5 if step_index > 0 else 0,
            timestamp=now,
        )
        UserProfile.objects.filter(user=child).update(last_seen_at=now)
        SimulatorSession.objects.filter(pk=session.pk).update(current_step=step_index + 1)

    realtime.publish(
        realtime.user_channel(session.parent_id),
        'simulator-progress',
        {'currentStep': step_index + 1, 'totalSteps': len(steps), 'address': step['address']},
    )

    evaluation.evaluate_location(point)

    if step.get('panic'):
        alert_service.emit_panic(
            child,
            step['lat'],
            step['lng'],
            message=f"EMERGENCY! {display_name(child)} triggered a panic alert!",
        )

    return max(step['wait'] / 1000, settings.SIMULATOR_MIN_STEP_SECONDS)
