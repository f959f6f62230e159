import json

from channels.generic.websocket import AsyncWebsocketConsumer

from core.services.realtime import ADMIN_GROUP, BROADCAST_GROUP, role_group, user_group


class EventsConsumer(AsyncWebsocketConsumer):
    """Per-connection fan-out: own user room, role room, broadcast, admin."""

    async def connect(self):
        user = self.scope.get("user")
        if not user or not user.is_authenticated:
            await self.close(code=4401)
            return
        self.groups_joined = [user_group(user.id), role_group(user.role), BROADCAST_GROUP]
        if user.role == "SUPER_ADMIN":
            self.groups_joined.append(ADMIN_GROUP)
        for group in self.groups_joined:
            await self.channel_layer.group_add(group, self.channel_name)
        await self.accept()
        await self.send(json.dumps({"event": "welcome", "data": {"userId": user.id, "role": user.role}}))

    async def disconnect(self, close_code):
        for group in getattr(self, "groups_joined", []):
            await self.channel_layer.group_discard(group, self.channel_name)

    async def receive(self, text_data=None, bytes_data=None):
        # clients only ever ping; everything else is server -> client
        if text_data and text_data.strip() == "ping":
            await self.send(json.dumps({"event": "pong", "data": None}))

    async def realtime_event(self, event):
        # event: {"type": "realtime.event", "event": "...", "data": {...}}
        await self.send(json.dumps({"event": event["event"], "data": event.get("data")}))
