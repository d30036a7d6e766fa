# apps/safety_app/notification_service.py
"""
Outbound SMS (Twilio) and email (Django mail) for alerts.

Every send is isolated: a failure for one recipient is captured as a failed
outcome and never prevents the remaining recipients from being contacted.
"""
import logging
from smtplib import SMTPException

from django.conf import settings
from django.core.mail import send_mail
from django.utils import timezone
from twilio.base.exceptions import TwilioException
from twilio.rest import Client

from .exceptions import NotificationDispatchError
from .models import Alert, TrustedContact, display_name

logger = logging.getLogger(__name__)


def _twilio_client():
    if not (settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN and settings.TWILIO_PHONE_NUMBER):
        raise NotificationDispatchError("SMS provider is not configured")
    return Client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)


def send_sms(phone_number, text):
    if not phone_number:
        raise NotificationDispatchError("No phone number provided")

    client = _twilio_client()
    try:
        message = client.messages.create(
            body=text,
            from_=settings.TWILIO_PHONE_NUMBER,
            to=phone_number,
        )
    except TwilioException as e:
        raise NotificationDispatchError(f"Failed to send SMS: {e}") from e

    logger.info(f"SMS sent to {phone_number} (sid={message.sid})")
    return {
        'success': True,
        'message_id': message.sid,
        'status': message.status,
        'to': phone_number,
        'provider': 'twilio',
    }


def _send_email(recipient_email, subject, text):
    try:
        send_mail(
            subject,
            text,
            settings.DEFAULT_FROM_EMAIL,
            [recipient_email],
            fail_silently=False,
        )
    except (SMTPException, OSError) as e:
        raise NotificationDispatchError(f"Failed to send email: {e}") from e
    logger.info(f"Email '{subject}' sent to {recipient_email}")


def _format_location(latitude, longitude):
    return f"{latitude:.6f}, {longitude:.6f}"


def _format_time(when):
    return timezone.localtime(when).strftime('%Y-%m-%d %H:%M:%S %Z')


def panic_text(child_name, latitude, longitude, message, when):
    return (
        f"URGENT ALERT - {settings.APP_NAME}\n"
        f"{child_name} has triggered an emergency alert and may need immediate assistance.\n\n"
        f"Location: {_format_location(latitude, longitude)}\n"
        f"Time: {_format_time(when)}\n"
        f"Message: {message or 'No additional message'}\n\n"
        f"Please check on {child_name} as soon as possible. "
        f"If you cannot reach them, consider contacting local authorities."
    )


def geofence_text(child_name, geofence_name, alert_type, latitude, longitude, when):
    action = "entered" if alert_type == Alert.GEOFENCE_ENTRY else "left"
    return (
        f"{settings.APP_NAME} Location Update\n\n"
        f"{child_name} has {action} the designated area \"{geofence_name}\".\n\n"
        f"Location: {_format_location(latitude, longitude)}\n"
        f"Time: {_format_time(when)}\n\n"
        f"This is an automated notification to keep you informed of your family's whereabouts."
    )


def send_panic_email(child_name, recipient_email, latitude, longitude, message, when):
    subject = f"URGENT: Emergency Alert from {child_name}"
    text = (
        f"{panic_text(child_name, latitude, longitude, message, when)}\n\n"
        f"View on map: https://www.google.com/maps?q={latitude},{longitude}"
    )
    _send_email(recipient_email, subject, text)


def send_geofence_email(child_name, recipient_email, geofence_name, alert_type, latitude, longitude, when):
    action = "entered" if alert_type == Alert.GEOFENCE_ENTRY else "left"
    subject = f"{child_name} {action} {geofence_name}"
    text = geofence_text(child_name, geofence_name, alert_type, latitude, longitude, when)
    _send_email(recipient_email, subject, text)


def _attempt(outcomes, recipient_type, method, recipient, func, *args):
    outcome = {'type': recipient_type, 'method': method, 'recipient': recipient}
    try:
        func(*args)
    except NotificationDispatchError as e:
        logger.warning(f"{method} to {recipient_type} {recipient} failed: {e}")
        outcome.update(status='failed', error=str(e))
    except Exception as e:
        logger.exception(f"Unexpected error sending {method} to {recipient_type} {recipient}")
        outcome.update(status='failed', error=str(e))
    else:
        outcome['status'] = 'success'
    outcomes.append(outcome)


def notify_for_alert(alert):
    """
    Sends the external notifications for an alert and returns one outcome dict per
    attempted delivery: {'type', 'method', 'recipient', 'status', 'error'?}.
    Recipients without a phone number or email address are skipped.
    """
    child_name = display_name(alert.user)
    parent = alert.parent
    parent_phone = getattr(getattr(parent, 'profile', None), 'phone_number', None)
    outcomes = []

    if alert.alert_type == Alert.PANIC:
        text = panic_text(child_name, alert.latitude, alert.longitude, alert.message, alert.timestamp)
        if parent_phone:
            _attempt(outcomes, 'parent', 'sms', parent_phone, send_sms, parent_phone, text)
        if parent.email:
            _attempt(outcomes, 'parent', 'email', parent.email, send_panic_email,
                     child_name, parent.email, alert.latitude, alert.longitude, alert.message, alert.timestamp)
        for contact in TrustedContact.objects.filter(owner=parent):
            if contact.phone_number:
                _attempt(outcomes, 'trusted_contact', 'sms', contact.phone_number, send_sms, contact.phone_number, text)
            if contact.email:
                _attempt(outcomes, 'trusted_contact', 'email', contact.email, send_panic_email,
                         child_name, contact.email, alert.latitude, alert.longitude, alert.message, alert.timestamp)

    elif alert.alert_type in (Alert.GEOFENCE_ENTRY, Alert.GEOFENCE_EXIT):
        geofence_name = alert.geofence_name or "a safe zone"
        if parent_phone:
            text = geofence_text(child_name, geofence_name, alert.alert_type,
                                 alert.latitude, alert.longitude, alert.timestamp)
            _attempt(outcomes, 'parent', 'sms', parent_phone, send_sms, parent_phone, text)
        if parent.email:
            _attempt(outcomes, 'parent', 'email', parent.email, send_geofence_email,
                     child_name, parent.email, geofence_name, alert.alert_type,
                     alert.latitude, alert.longitude, alert.timestamp)

    elif alert.alert_type == Alert.LOW_BATTERY:
        if parent_phone:
            text = f"{settings.APP_NAME}: {alert.message}"
            _attempt(outcomes, 'parent', 'sms', parent_phone, send_sms, parent_phone, text)

    return outcomes
