"""
Placeholder substitution for stored HTML templates.

Tokens look like ``{{key}}`` (surrounding blanks allowed).  Declared
variables are resolved first from the request data, then from their
``defaultValue``, then to an empty string; afterwards the common keys
and any remaining request keys are substituted.  Unknown tokens are
left untouched.  Values are HTML-escaped unless already marked safe.
"""
from __future__ import annotations

import re
from typing import Any, Mapping, Optional

from django.db.models import Q
from django.utils import timezone
from django.utils.html import conditional_escape

from core.exceptions import ApiError
from core.models import Template

TOKEN_RE = re.compile(r"\{\{\s*([A-Za-z_][\w.-]*)\s*\}\}")


def serialize_template(t: Template) -> dict:
    return {
        'id': t.id,
        'name': t.name,
        'type': t.type,
        'hospitalId': t.hospital_id,
        'content': t.content,
        'variables': t.variables or [],
        'headerImageUrl': t.header_image_url or None,
        'footerText': t.footer_text,
        'isActive': t.is_active,
        'isDefault': t.is_default,
        'createdAt': t.created_at.isoformat() if t.created_at else None,
        'updatedAt': t.updated_at.isoformat() if t.updated_at else None,
    }


def _to_text(value: Any) -> str:
    if value is None:
        return ''
    return str(conditional_escape(value))


def substitute(content: str, values: Mapping[str, Any]) -> str:
    def repl(m: re.Match) -> str:
        key = m.group(1)
        if key in values:
            return _to_text(values[key])
        return m.group(0)
    return TOKEN_RE.sub(repl, content)


def missing_required(template: Template, data: Mapping[str, Any]) -> list[str]:
    missing = []
    for var in template.variables or []:
        key = var.get('key')
        if key and var.get('required') and data.get(key) in (None, '') and not var.get('defaultValue'):
            missing.append(key)
    return missing


def render_template(template: Template, data: Optional[Mapping[str, Any]] = None, *, now=None) -> str:
    data = dict(data or {})
    missing = missing_required(template, data)
    if missing:
        raise ApiError(f"Missing required template variables: {', '.join(missing)}")

    declared = {}
    for var in template.variables or []:
        key = var.get('key')
        if not key:
            continue
        value = data.get(key)
        if value in (None, ''):
            value = var.get('defaultValue') or ''
        declared[key] = value
    rendered = substitute(template.content, declared)

    now = timezone.localtime(now or timezone.now())
    common = {
        'hospitalName': data.get('hospitalName') or '',
        'doctorName': data.get('doctorName') or '',
        'patientName': data.get('patientName') or '',
        'date': data.get('date') or now.strftime('%Y-%m-%d'),
        'time': data.get('time') or now.strftime('%H:%M'),
        **data,
    }
    return substitute(rendered, common)


def find_default_template(type_: str, hospital_id=None) -> Optional[Template]:
    """Hospital-specific default first, then the global one."""
    qs = Template.objects.filter(type=type_, is_active=True, is_default=True)
    if hospital_id:
        tpl = qs.filter(hospital_id=hospital_id).order_by('-updated_at').first()
        if tpl:
            return tpl
    return qs.filter(hospital__isnull=True).order_by('-updated_at').first()


def clear_other_defaults(template: Template) -> int:
    """Keep a single default per (type, hospital)."""
    scope = Q(hospital_id=template.hospital_id) if template.hospital_id else Q(hospital__isnull=True)
    return (Template.objects.filter(scope, type=template.type, is_default=True)
            .exclude(pk=template.pk).update(is_default=False))
