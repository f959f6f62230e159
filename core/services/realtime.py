"""
Room based fan-out over the channel layer.

Every authenticated websocket joins ``user.<id>``, ``role.<ROLE>`` and
``broadcast``; super admins also join ``admin``.  Services call the
``emit_*`` helpers after a write.  Events leave once the surrounding
transaction commits and are dropped if it rolls back; the consumer
forwards each one as ``{"event": name, "data": payload}``.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Iterable

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction

logger = logging.getLogger(__name__)

ADMIN_GROUP = "admin"
BROADCAST_GROUP = "broadcast"


def user_group(user_id) -> str:
    return f"user.{user_id}"


def role_group(role: str) -> str:
    return f"role.{role}"


def _plain(payload: Any) -> Any:
    # Decimal/datetime values are not msgpack-serialisable on the redis layer
    return json.loads(json.dumps(payload, cls=DjangoJSONEncoder))


def _group_send(group: str, message: dict) -> None:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    try:
        async_to_sync(channel_layer.group_send)(group, message)
    except Exception:
        logger.exception("realtime emit failed (group=%s event=%s)", group, message["event"])


def _send(group: str, event: str, payload: Any) -> None:
    message = {"type": "realtime.event", "event": event, "data": _plain(payload)}
    # listeners only hear about writes that committed
    transaction.on_commit(lambda: _group_send(group, message))


def emit_to_user(user_id, event: str, payload: Any) -> None:
    if user_id:
        _send(user_group(user_id), event, payload)


def emit_to_users(user_ids: Iterable, event: str, payload: Any) -> None:
    for uid in {u for u in user_ids if u}:
        _send(user_group(uid), event, payload)


def emit_to_role(role: str, event: str, payload: Any) -> None:
    _send(role_group(role), event, payload)


def emit_to_admin(event: str, payload: Any) -> None:
    _send(ADMIN_GROUP, event, payload)


def emit_to_all(event: str, payload: Any) -> None:
    _send(BROADCAST_GROUP, event, payload)
