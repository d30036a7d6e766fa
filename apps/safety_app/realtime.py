# apps/safety_app/realtime.py
import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)


def user_channel(user_id):
    return f'user_{user_id}_notifications'


def publish(channel_key, event_name, payload):
    """
    Best-effort push to a websocket group. Delivery is not acknowledged; a
    failure is logged and reported as False, never raised.
    """
    channel_layer = get_channel_layer()
    if channel_layer is None:
        logger.warning(f"No channel layer configured, dropping '{event_name}' for {channel_key}")
        return False

    try:
        async_to_sync(channel_layer.group_send)(
            channel_key,
            {"type": "broadcast.event", "event": event_name, "payload": payload}
        )
    except Exception as e:
        logger.error(f"Failed to publish '{event_name}' to {channel_key}: {e}", exc_info=True)
        return False

    logger.debug(f"Published '{event_name}' to {channel_key}")
    return True
