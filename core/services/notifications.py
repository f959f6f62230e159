"""
Notification persistence and channel dispatch.

A notification row is always written first.  Dispatch then depends on
the channel.  Push is delivered over the realtime layer straight away.
E-mail (Django mail), SMS and WhatsApp (HTTP gateway, only logged when
none is configured) are sent once the surrounding transaction commits.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

import requests
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import send_mail
from django.db import transaction

from core.models import Notification
from core.services.realtime import emit_to_user

logger = logging.getLogger(__name__)

User = get_user_model()


class DispatchError(Exception):
    pass


def serialize_notification(n: Notification) -> dict:
    return {
        'id': n.id,
        'userId': n.user_id,
        'channel': n.channel,
        'title': n.title,
        'message': n.message,
        'status': n.status,
        'metadata': n.metadata,
        'errorMessage': n.error_message or None,
        'readAt': n.read_at.isoformat() if n.read_at else None,
        'createdAt': n.created_at.isoformat() if n.created_at else None,
    }


def _post_gateway(url: str, to: str, text: str) -> None:
    headers = {'Authorization': f'Bearer {settings.NOTIFY_API_KEY}'} if settings.NOTIFY_API_KEY else {}
    try:
        r = requests.post(url, json={'to': to, 'message': text}, headers=headers, timeout=settings.NOTIFY_TIMEOUT)
        r.raise_for_status()
    except requests.RequestException as e:
        raise DispatchError(str(e)) from e


def _dispatch(n: Notification) -> None:
    user = n.user
    if n.channel == 'EMAIL':
        if not user.email:
            raise DispatchError('user has no e-mail address')
        send_mail(n.title, n.message, settings.DEFAULT_FROM_EMAIL, [user.email], fail_silently=False)
    elif n.channel in ('SMS', 'WHATSAPP'):
        url = settings.NOTIFY_SMS_URL if n.channel == 'SMS' else settings.NOTIFY_WHATSAPP_URL
        if not user.phone:
            raise DispatchError('user has no phone number')
        if not url:
            logger.info("%s gateway not configured; to=%s title=%r", n.channel, user.phone, n.title)
            return
        _post_gateway(url, user.phone, f"{n.title}\n{n.message}")


def deliver(notification_id) -> Optional[Notification]:
    """Send a stored notification over its channel and record the outcome."""
    n = Notification.objects.select_related('user').filter(pk=notification_id).first()
    if n is None:
        return None
    try:
        _dispatch(n)
    except (DispatchError, OSError) as e:
        logger.warning("notification %s via %s failed: %s", n.id, n.channel, e)
        n.status = 'FAILED'
        n.error_message = str(e)
    else:
        n.status = 'SENT'
    n.save(update_fields=['status', 'error_message'])
    emit_to_user(n.user_id, 'notification:new', serialize_notification(n))
    return n


def create_notification(user, title: str, message: str, *, channel: str = 'PUSH',
                        metadata: Optional[dict[str, Any]] = None) -> Notification:
    if channel == 'PUSH':
        n = Notification.objects.create(
            user=user, channel=channel, title=title, message=message, metadata=metadata or {}, status='SENT'
        )
        emit_to_user(n.user_id, 'notification:new', serialize_notification(n))
        return n
    n = Notification.objects.create(
        user=user, channel=channel, title=title, message=message, metadata=metadata or {}, status='PENDING'
    )
    # mail and gateways only go out for rows that committed
    transaction.on_commit(lambda: deliver(n.id), robust=True)
    return n


def notify_users(users: Iterable, title: str, message: str, **kwargs) -> list[Notification]:
    return [create_notification(u, title, message, **kwargs) for u in users]


def notify_super_admins(title: str, message: str, **kwargs) -> list[Notification]:
    admins = User.objects.filter(role=User.SUPER_ADMIN, is_active=True)
    return notify_users(admins, title, message, **kwargs)
