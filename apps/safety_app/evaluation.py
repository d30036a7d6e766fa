# apps/safety_app/evaluation.py
"""
Location ingestion and the geofence evaluation that follows it.

`record_location` runs on the request path: validate, debounce, store. Everything
after the write (raw position push, geofence evaluation, alerting) runs in
`evaluate_location`, queued as a Celery task once the write has committed.
"""
import logging
from collections import namedtuple

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from . import alert_service, debounce, geofence_registry, geofence_state, location_store, realtime
from .exceptions import StaleLocation, ValidationError
from .geo_utils import validate_accuracy, validate_coordinates, validate_timestamp_freshness
from .models import UserProfile, display_name

logger = logging.getLogger(__name__)

IngestResult = namedtuple('IngestResult', ['decision', 'location'])


def _validate_battery_level(battery_level):
    if battery_level is None:
        return None
    if isinstance(battery_level, bool):
        raise ValidationError("Battery level must be an integer between 0 and 100")
    try:
        level = int(battery_level)
    except (TypeError, ValueError):
        raise ValidationError("Battery level must be an integer between 0 and 100")
    if level < 0 or level > 100:
        raise ValidationError("Battery level must be an integer between 0 and 100")
    return level


def record_location(user, latitude, longitude, accuracy=None, speed=None, heading=None,
                    timestamp=None, battery_level=None, now=None):
    received_at = now or timezone.now()

    validate_coordinates(latitude, longitude)
    accuracy = validate_accuracy(accuracy)
    battery_level = _validate_battery_level(battery_level)

    sample_time = timestamp or received_at
    try:
        validate_timestamp_freshness(
            sample_time,
            settings.LOCATION_MAX_AGE_MS,
            now=received_at,
            future_tolerance_ms=settings.LOCATION_FUTURE_TOLERANCE_MS,
        )
    except StaleLocation as e:
        logger.info(f"Using receipt time for location from user {user.id}: {e}")
        sample_time = received_at

    previous = location_store.latest(user)
    decision = debounce.evaluate(previous, latitude, longitude, sample_time)
    if decision != debounce.ACCEPT:
        logger.debug(f"Location from user {user.id} skipped ({decision})")
        return IngestResult(decision, previous)

    with transaction.atomic():
        point = location_store.append(
            user,
            latitude=latitude,
            longitude=longitude,
            accuracy=accuracy,
            speed=speed,
            heading=heading,
            timestamp=sample_time,
        )
        profile_updates = {'last_seen_at': received_at}
        if battery_level is not None:
            profile_updates['battery_level'] = battery_level
        UserProfile.objects.filter(user=user).update(**profile_updates)

        schedule_evaluation(point, battery_level)

    return IngestResult(debounce.ACCEPT, point)


def schedule_evaluation(point, battery_level=None):
    from .tasks import evaluate_location_task

    point_id = point.pk
    transaction.on_commit(lambda: evaluate_location_task.delay(point_id, battery_level))


def location_payload(point):
    return {
        'childId': point.user_id,
        'childName': display_name(point.user),
        'latitude': point.latitude,
        'longitude': point.longitude,
        'accuracy': point.accuracy,
        'timestamp': point.timestamp.isoformat(),
    }


def evaluate_location(point, battery_level=None):
    """
    Push the raw position to the parent, then run every applicable geofence through
    the state machine. Each geofence is evaluated in its own transaction so one
    failure leaves the others untouched. Returns the alerts created.
    """
    user = point.user
    profile = UserProfile.objects.select_related('parent').filter(user=user).first()
    parent = profile.parent if profile else None
    if parent is None:
        logger.debug(f"User {user.id} has no parent, nothing to evaluate")
        return []

    realtime.publish(realtime.user_channel(parent.id), 'location-update', location_payload(point))

    alerts = []
    now = timezone.now()
    for geofence in geofence_registry.applicable(parent, user):
        try:
            with transaction.atomic():
                inside = geofence.contains(point.latitude, point.longitude)
                transition = geofence_state.evaluate_pair(user, geofence, inside, now=now)
                if transition.event:
                    alerts.append(
                        alert_service.emit_transition(user, geofence, transition.event, point.latitude, point.longitude)
                    )
        except Exception:
            logger.exception(f"Failed to evaluate geofence {geofence.id} for user {user.id}")

    if battery_level is not None and battery_level < settings.LOW_BATTERY_THRESHOLD:
        try:
            with transaction.atomic():
                alert = alert_service.emit_low_battery(user, parent, battery_level, point.latitude, point.longitude)
            if alert:
                alerts.append(alert)
        except Exception:
            logger.exception(f"Failed to raise low battery alert for user {user.id}")

    logger.info(f"Evaluated location {point.id} for user {user.id}: {len(alerts)} alert(s)")
    return alerts
