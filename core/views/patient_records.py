"""
Per-patient medical record (one row per patient).
"""
from __future__ import annotations

import bleach
from django.db import transaction
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from core.models import PatientRecord, User
from core.permissions import CLINICAL_ROLES, IsClinicalRole
from core.serializers.clinical import RECORD_LIST_FIELDS, PatientRecordUpdateSerializer
from core.views.common import fail, ok


def serialize_record(r: PatientRecord) -> dict:
    data = {'id': r.id, 'patientId': r.patient_id}
    for key, field in RECORD_LIST_FIELDS.items():
        data[key] = getattr(r, field) or []
    data.update({
        'notes': r.notes,
        'updatedBy': r.updated_by_id,
        'createdAt': r.created_at.isoformat() if r.created_at else None,
        'updatedAt': r.updated_at.isoformat() if r.updated_at else None,
    })
    return data


def _record_for(patient_id):
    patient = User.objects.filter(pk=patient_id, role=User.PATIENT).first()
    if patient is None:
        return None
    record, _ = PatientRecord.objects.get_or_create(patient=patient)
    return record


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
def patient_record(request, patient_id):
    user = request.user
    if user.role == User.PATIENT and user.id != int(patient_id):
        return fail('Patients may only view their own record', status.HTTP_403_FORBIDDEN)
    if user.role not in CLINICAL_ROLES | {User.PATIENT}:
        return fail('Not allowed to view medical records', status.HTTP_403_FORBIDDEN)
    if request.method == 'PATCH' and user.role not in CLINICAL_ROLES:
        return fail('Only doctors and administrators may edit records', status.HTTP_403_FORBIDDEN)

    with transaction.atomic():
        record = _record_for(patient_id)
        if record is None:
            return fail('Patient not found', status.HTTP_404_NOT_FOUND)
        if request.method == 'GET':
            return ok(serialize_record(record))

        s = PatientRecordUpdateSerializer(data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        vd = s.validated_data
        for key, field in RECORD_LIST_FIELDS.items():
            if key in vd:
                setattr(record, field, vd[key])
        if 'notes' in vd:
            record.notes = bleach.clean(vd['notes'], strip=True)
        record.updated_by = user
        record.save()
    return ok(serialize_record(record))


def _append(request, patient_id, field: str):
    value = request.data.get('value', request.data.get(field))
    if isinstance(value, str):
        value = bleach.clean(value.strip(), strip=True)
    if value in (None, '', [], {}):
        return fail(f"{field} value is required")
    with transaction.atomic():
        record = _record_for(patient_id)
        if record is None:
            return fail('Patient not found', status.HTTP_404_NOT_FOUND)
        record = PatientRecord.objects.select_for_update().get(pk=record.pk)
        current = list(getattr(record, field) or [])
        if value not in current:
            current.append(value)
            setattr(record, field, current)
            record.updated_by = request.user
            record.save()
    return ok(serialize_record(record))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicalRole])
def add_diagnosis(request, patient_id):
    return _append(request, patient_id, 'diagnosis')


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicalRole])
def add_allergy(request, patient_id):
    return _append(request, patient_id, 'allergies')
