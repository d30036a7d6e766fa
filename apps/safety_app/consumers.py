import json
import logging

from channels.generic.websocket import AsyncWebsocketConsumer

from .realtime import user_channel

logger = logging.getLogger(__name__)


class NotificationConsumer(AsyncWebsocketConsumer):
    async def connect(self):
        self.user = self.scope.get("user")
        if not self.user or not self.user.is_authenticated:
            await self.close()
            return

        self.room_group_name = user_channel(self.user.id)

        # Join room group
        await self.channel_layer.group_add(
            self.room_group_name,
            self.channel_name
        )
        await self.accept()
        await self.send(text_data=json.dumps({
            'type': 'connection_established',
            'message': f'Connected to notification channel. Group: {self.room_group_name}!'
        }))

    async def disconnect(self, close_code):
        # Leave room group
        if hasattr(self, 'room_group_name'):
            await self.channel_layer.group_discard(
                self.room_group_name,
                self.channel_name
            )

    # Server-to-client only
    async def receive(self, text_data=None, bytes_data=None):
        await self.send(text_data=json.dumps({
            'type': 'info',
            'message': 'This channel is primarily for server-to-client notifications.'
        }))

    # Receives realtime.publish() events: {"type": "broadcast.event", "event": ..., "payload": ...}
    async def broadcast_event(self, event):
        await self.send(text_data=json.dumps({
            'type': event['event'],
            'payload': event['payload']
        }))
        logger.debug(f"Relayed '{event['event']}' to {self.room_group_name}")
