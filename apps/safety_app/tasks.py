# apps/safety_app/tasks.py
from celery import shared_task
from django.conf import settings
from django.utils import timezone
from datetime import timedelta
import logging

from . import alert_service, evaluation, geofence_state, location_store, simulator
from .models import Alert, LocationPoint

logger = logging.getLogger(__name__)


@shared_task(name="evaluate_location")
def evaluate_location_task(location_id, battery_level=None):
    point = LocationPoint.objects.select_related('user').filter(pk=location_id).first()
    if point is None:
        logger.warning(f"Location {location_id} no longer exists. Skipping geofence evaluation.")
        return 0
    alerts = evaluation.evaluate_location(point, battery_level=battery_level)
    return len(alerts)


@shared_task(name="dispatch_alert_notifications")
def dispatch_alert_task(alert_id):
    """
    Push and notify for one alert. Runs once per alert and is never retried; the
    outcome is written back to the alert.
    """
    alert = Alert.objects.select_related('user', 'parent', 'parent__profile').filter(pk=alert_id).first()
    if alert is None:
        logger.warning(f"Alert {alert_id} no longer exists. Nothing to dispatch.")
        return False

    if alert.notification_sent or alert.notification_error:
        logger.info(f"Alert {alert_id} was already dispatched. Skipping.")
        return alert.notification_sent

    return alert_service.fan_out(alert)


@shared_task(name="purge_expired_locations")
def purge_expired_locations():
    cutoff = timezone.now() - timedelta(days=settings.LOCATION_RETENTION_DAYS)
    deleted = location_store.purge_older_than(cutoff)
    logger.info(f"Location retention sweep finished: {deleted} removed")
    return deleted


@shared_task(name="purge_expired_alerts")
def purge_expired_alerts():
    cutoff = timezone.now() - timedelta(days=settings.ALERT_RETENTION_DAYS)
    deleted, _ = Alert.objects.filter(timestamp__lt=cutoff).delete()
    logger.info(f"Alert retention sweep finished: {deleted} removed")
    return deleted


@shared_task(name="purge_stale_geofence_states")
def purge_stale_geofence_states():
    cutoff = timezone.now() - timedelta(days=settings.GEOFENCE_STATE_RETENTION_DAYS)
    deleted = geofence_state.purge_stale(cutoff)
    logger.info(f"Geofence state retention sweep finished: {deleted} removed")
    return deleted


@shared_task(name="run_simulator_step")
def run_simulator_step_task(session_id, run_id, step_index):
    wait_seconds = simulator.run_step(session_id, run_id, step_index)
    if wait_seconds is not None:
        run_simulator_step_task.apply_async(
            args=[session_id, run_id, step_index + 1],
            countdown=wait_seconds,
        )
