from typing import Optional, Any, Dict
from django.contrib.auth import get_user_model
from core.models import AuditEvent

User = get_user_model()

REDACTED_KEYS = {'password', 'pwd', 'refresh', 'token', 'deliveryOtp'}


def redact(data: Any) -> Any:
    if isinstance(data, dict):
        return {k: ('***' if k in REDACTED_KEYS else redact(v)) for k, v in data.items()}
    if isinstance(data, list):
        return [redact(v) for v in data]
    return data


def log_action(*, user: Optional[User], action: str, object_type: Optional[str] = None, object_id=None,
               detail: Optional[Dict[str, Any]] = None, method: str = '', path: str = '',
               status_code: Optional[int] = None) -> AuditEvent:
    return AuditEvent.objects.create(
        user=user if getattr(user, 'pk', None) else None,
        action=action,
        method=method, path=path[:500],
        object_type=object_type, object_id=str(object_id) if object_id is not None else None,
        status_code=status_code,
        detail=redact(detail or {}),
    )
