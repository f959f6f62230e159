"""
Activity feed: append-only events for dashboards, mirrored to admins.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from core.models import Activity
from core.services.realtime import emit_to_admin

logger = logging.getLogger(__name__)


def serialize_activity(a: Activity) -> dict:
    return {
        'id': a.id,
        'type': a.type,
        'title': a.title,
        'description': a.description,
        'userId': a.user_id,
        'hospitalId': a.hospital_id,
        'pharmacyId': a.pharmacy_id,
        'distributorId': a.distributor_id,
        'doctorId': a.doctor_id,
        'patientId': a.patient_id,
        'metadata': a.metadata,
        'createdAt': a.created_at.isoformat() if a.created_at else None,
    }


def create_activity(type: str, title: str, description: str = '', *, user_id=None, hospital_id=None,
                    pharmacy_id=None, distributor_id=None, doctor_id=None, patient_id=None,
                    metadata: Optional[dict[str, Any]] = None) -> Activity:
    activity = Activity.objects.create(
        type=type,
        title=title,
        description=description,
        user_id=user_id,
        hospital_id=hospital_id,
        pharmacy_id=pharmacy_id,
        distributor_id=distributor_id,
        doctor_id=doctor_id,
        patient_id=patient_id,
        metadata=metadata or {},
    )
    logger.info("activity %s: %s", type, description or title)
    emit_to_admin('activity:new', serialize_activity(activity))
    return activity
