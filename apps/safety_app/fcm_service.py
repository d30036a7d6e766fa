import json
import logging

import firebase_admin
from firebase_admin import credentials, messaging
from django.conf import settings

from .models import UserDevice

logger = logging.getLogger(__name__)

# Initialize Firebase
fcm_key_json = settings.FCM_SERVICE_ACCOUNT_KEY
if fcm_key_json:
    try:
        cred_dict = json.loads(fcm_key_json)
        cred = credentials.Certificate(cred_dict)
        firebase_app = firebase_admin.initialize_app(cred)
        logger.info("Firebase initialized successfully")
    except Exception as e:
        logger.error(f"Error initializing Firebase: {e}")
        firebase_app = None
else:
    logger.info("FCM_SERVICE_ACCOUNT_KEY not set. Firebase not initialized.")
    firebase_app = None


def send_fcm_to_user(user, title, body, data=None):
    """
    Send an FCM notification to every active device registered by `user`.
    :param user: Recipient User
    :param title: Notification title
    :param body: Notification body
    :param data: Additional data payload (dict); values are sent as strings
    :return: BatchResponse if anything was sent, None otherwise
    """
    if not firebase_app:
        logger.warning("Firebase not initialized. Message not sent.")
        return None

    tokens = list(
        UserDevice.objects.filter(user=user, is_active=True).values_list('device_token', flat=True)
    )
    if not tokens:
        logger.info(f"No active devices for user {user.id}. FCM message not sent.")
        return None

    message = messaging.MulticastMessage(
        notification=messaging.Notification(
            title=title,
            body=body,
        ),
        data={key: str(value) for key, value in (data or {}).items()},
        tokens=tokens,
    )

    try:
        response = messaging.send_each_for_multicast(message, app=firebase_app)
    except Exception as e:
        logger.error(f"Error sending FCM message to user {user.id}: {e}", exc_info=True)
        return None

    # Tokens the backend no longer recognises are retired
    stale_tokens = [
        tokens[idx] for idx, result in enumerate(response.responses)
        if not result.success and isinstance(result.exception, messaging.UnregisteredError)
    ]
    if stale_tokens:
        UserDevice.objects.filter(device_token__in=stale_tokens).update(is_active=False)
        logger.info(f"Deactivated {len(stale_tokens)} unregistered device(s) for user {user.id}")

    logger.info(
        f"FCM for user {user.id}: {response.success_count} sent, {response.failure_count} failed"
    )
    return response
