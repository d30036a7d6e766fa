# apps/safety_app/alert_service.py
import logging
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from . import notification_service, realtime
from .exceptions import ValidationError
from .fcm_service import send_fcm_to_user
from .geo_utils import validate_coordinates
from .geofence_state import ENTRY, EXIT
from .models import Alert, display_name

logger = logging.getLogger(__name__)

DEFAULT_PANIC_MESSAGE = "Emergency! Child needs help!"


def emit_transition(user, geofence, event, latitude, longitude):
    if event == ENTRY:
        alert_type, action = Alert.GEOFENCE_ENTRY, "entered"
    elif event == EXIT:
        alert_type, action = Alert.GEOFENCE_EXIT, "left"
    else:
        raise ValueError(f"Unknown geofence event: {event}")

    alert = Alert.objects.create(
        user=user,
        parent=geofence.parent,
        alert_type=alert_type,
        latitude=latitude,
        longitude=longitude,
        geofence=geofence,
        geofence_name=geofence.name,
        message=f"{display_name(user)} {action} {geofence.name}",
    )
    logger.info(f"Created {alert_type} alert {alert.id} for user {user.id} / geofence '{geofence.name}'")
    schedule_fan_out(alert)
    return alert


def emit_panic(user, latitude, longitude, message=None):
    profile = getattr(user, 'profile', None)
    parent = profile.parent if profile else None
    if parent is None:
        raise ValidationError("No parent found. Cannot send panic alert.")
    validate_coordinates(latitude, longitude)

    alert = Alert.objects.create(
        user=user,
        parent=parent,
        alert_type=Alert.PANIC,
        latitude=latitude,
        longitude=longitude,
        message=message or DEFAULT_PANIC_MESSAGE,
    )
    logger.warning(f"PANIC alert {alert.id} raised by user {user.id} for parent {parent.id}")
    schedule_fan_out(alert)
    return alert


def emit_low_battery(user, parent, battery_level, latitude, longitude, now=None):
    """Returns the new alert, or None while the previous one is still in its cooldown."""
    now = now or timezone.now()
    cooldown_start = now - timedelta(minutes=settings.LOW_BATTERY_ALERT_COOLDOWN_MINUTES)
    if Alert.objects.filter(user=user, alert_type=Alert.LOW_BATTERY, timestamp__gte=cooldown_start).exists():
        logger.debug(f"Low battery alert for user {user.id} suppressed (cooldown)")
        return None

    alert = Alert.objects.create(
        user=user,
        parent=parent,
        alert_type=Alert.LOW_BATTERY,
        latitude=latitude,
        longitude=longitude,
        message=f"{display_name(user)}'s phone battery is low ({battery_level}%)",
        timestamp=now,
    )
    logger.info(f"Created LOW_BATTERY alert {alert.id} for user {user.id} ({battery_level}%)")
    schedule_fan_out(alert)
    return alert


def schedule_fan_out(alert):
    # Imported here, tasks imports this module
    from .tasks import dispatch_alert_task

    alert_id = alert.pk
    transaction.on_commit(lambda: dispatch_alert_task.delay(alert_id))


def alert_payload(alert):
    return {
        'id': alert.id,
        'type': alert.alert_type,
        'message': alert.message,
        'timestamp': alert.timestamp.isoformat(),
        'userId': alert.user_id,
        'userName': display_name(alert.user),
        'location': alert.location,
        'geofenceId': alert.geofence_id,
        'geofenceName': alert.geofence_name,
    }


def fan_out(alert):
    """
    Push the alert to the parent's live channel and devices, then send the external
    notifications and record how that went. Returns the final notification_sent.
    """
    realtime.publish(realtime.user_channel(alert.parent_id), 'alert-received', alert_payload(alert))

    title = "Emergency Alert" if alert.alert_type == Alert.PANIC else alert.get_alert_type_display()
    try:
        send_fcm_to_user(
            alert.parent,
            title=title,
            body=alert.message,
            data={'alert_id': alert.id, 'type': alert.alert_type},
        )
    except Exception as e:
        logger.error(f"Push notification for alert {alert.id} failed: {e}", exc_info=True)

    try:
        outcomes = notification_service.notify_for_alert(alert)
    except Exception as e:
        logger.error(f"Notification dispatch for alert {alert.id} failed: {e}", exc_info=True)
        outcomes = [{'type': 'parent', 'method': 'dispatch', 'recipient': None, 'status': 'failed', 'error': str(e)}]

    return record_notification_outcome(alert, outcomes)


def record_notification_outcome(alert, outcomes):
    sent = any(outcome['status'] == 'success' for outcome in outcomes)
    if sent:
        error = None
    elif not outcomes:
        error = "No notification recipients configured"
    else:
        failures = "; ".join(
            f"{o['method']} to {o['recipient']}: {o.get('error', 'unknown error')}" for o in outcomes
        )
        error = f"All notifications failed ({failures})"

    # Second write against the stored alert; the alert itself is already visible
    Alert.objects.filter(pk=alert.pk).update(notification_sent=sent, notification_error=error)
    alert.notification_sent = sent
    alert.notification_error = error

    if sent:
        logger.info(f"Notifications for alert {alert.id}: {len(outcomes)} attempted, at least one delivered")
    else:
        logger.warning(f"Notifications for alert {alert.id} not delivered: {error}")
    return sent
