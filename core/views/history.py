"""
Doctor and patient consultation history.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from core.models import User
from core.permissions import IsDoctor, IsPatientRole
from core.services import history
from core.views.common import fail, ok


def _limit(request) -> int:
    try:
        return int(request.query_params.get('limit') or history.DEFAULT_LIMIT)
    except ValueError:
        return history.DEFAULT_LIMIT


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDoctor])
def doctor_history(request):
    patient = None
    patient_id = request.query_params.get('patientId')
    if patient_id:
        patient = User.objects.filter(pk=patient_id, role=User.PATIENT).first() if patient_id.isdigit() else None
        if patient is None:
            return fail('Patient not found', status.HTTP_404_NOT_FOUND)
    return ok(history.timeline(doctor=request.user, patient=patient, limit=_limit(request)))


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDoctor])
def doctor_history_stats(request):
    return ok(history.doctor_stats(request.user))


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDoctor])
def doctor_patient_count(request):
    return ok({'totalPatients': len(history.doctor_patient_ids(request.user))})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDoctor])
def doctor_patient_history(request, patient_id):
    patient = User.objects.filter(pk=patient_id, role=User.PATIENT).first()
    if patient is None or not history.has_seen(request.user, patient_id):
        return fail('Patient not found', status.HTTP_404_NOT_FOUND)
    return ok(history.timeline(doctor=request.user, patient=patient, limit=_limit(request)))


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPatientRole])
def patient_history(request):
    return ok(history.timeline(patient=request.user, limit=_limit(request)))


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPatientRole])
def patient_history_stats(request):
    return ok(history.patient_stats(request.user))
