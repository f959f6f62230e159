"""
Prescription endpoints, including dictation and document rendering.
"""
from __future__ import annotations

import bleach
from django.db import transaction
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from core.exceptions import ApiError
from core.models import Appointment, Pharmacy, Prescription, User
from core.permissions import ADMIN_ROLES, IsClinicalRole
from core.serializers.clinical import (
    PrescriptionCreateSerializer, PrescriptionUpdateSerializer, VoicePrescriptionSerializer,
)
from core.services.prescriptions import (
    create_prescription, parse_voice_text, render_prescription_document, replace_items,
)
from core.services.templates import serialize_template
from core.views.common import created, fail, ok


def serialize_prescription(p: Prescription) -> dict:
    return {
        'id': p.id,
        'appointmentId': p.appointment_id,
        'doctorId': p.doctor_id,
        'patientId': p.patient_id,
        'pharmacyId': p.pharmacy_id,
        'conversationId': p.conversation_id,
        'notes': p.notes,
        'reportStatus': p.report_status,
        'items': [
            {'id': i.id, 'medicineName': i.medicine_name, 'dosage': i.dosage, 'frequency': i.frequency,
             'duration': i.duration, 'notes': i.notes}
            for i in p.items.all()
        ],
        'createdAt': p.created_at.isoformat() if p.created_at else None,
        'updatedAt': p.updated_at.isoformat() if p.updated_at else None,
    }


def _visible(user):
    qs = Prescription.objects.prefetch_related('items')
    if user.role == User.SUPER_ADMIN:
        return qs
    if user.role == User.HOSPITAL_ADMIN:
        return qs.filter(appointment__hospital_id=user.hospital_id) if user.hospital_id else qs.none()
    if user.role == User.DOCTOR:
        return qs.filter(doctor=user)
    if user.role == User.PATIENT:
        return qs.filter(patient=user)
    if user.role == User.PHARMACY_STAFF:
        return qs.filter(pharmacy_id=user.pharmacy_id) if user.pharmacy_id else qs.none()
    return qs.none()


def _resolve_parties(request, vd):
    """Return (doctor, patient, appointment) for a new prescription."""
    appointment = None
    if vd.get('appointmentId'):
        appointment = Appointment.objects.select_related('doctor', 'patient').filter(pk=vd['appointmentId']).first()
        if appointment is None:
            raise ApiError('Appointment not found', 404)
    if request.user.role == User.DOCTOR:
        doctor = request.user
    else:
        doctor_id = vd.get('doctorId') or (appointment.doctor_id if appointment else None)
        doctor = User.objects.filter(pk=doctor_id, role=User.DOCTOR).first()
        if doctor is None:
            raise ApiError('doctorId is required')
    if appointment is not None:
        if appointment.doctor_id != doctor.id:
            raise ApiError('Appointment belongs to another doctor', 403)
        patient = appointment.patient
    else:
        patient = User.objects.filter(pk=vd.get('patientId'), role=User.PATIENT).first()
        if patient is None:
            raise ApiError('Patient not found', 404)
    if vd.get('pharmacyId') and not Pharmacy.objects.filter(pk=vd['pharmacyId']).exists():
        raise ApiError('Pharmacy not found', 404)
    return doctor, patient, appointment


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def prescription_collection(request):
    if request.method == 'POST':
        if request.user.role not in ADMIN_ROLES | {User.DOCTOR}:
            return fail('Only doctors may write prescriptions', status.HTTP_403_FORBIDDEN)
        s = PrescriptionCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = s.validated_data
        doctor, patient, appointment = _resolve_parties(request, vd)
        prescription = create_prescription(
            doctor=doctor, patient=patient, items=vd['items'], appointment=appointment,
            pharmacy_id=vd.get('pharmacyId'), notes=bleach.clean(vd.get('notes') or '', strip=True),
        )
        return created(serialize_prescription(prescription))

    qs = _visible(request.user)
    qp = request.query_params
    for key, field in (('doctorId', 'doctor_id'), ('patientId', 'patient_id'), ('pharmacyId', 'pharmacy_id')):
        if qp.get(key):
            qs = qs.filter(**{field: qp[key]})
    if qp.get('reportStatus'):
        qs = qs.filter(report_status=qp['reportStatus'].upper())
    return ok([serialize_prescription(p) for p in qs.order_by('-created_at')[:100]])


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicalRole])
def prescription_voice(request):
    s = VoicePrescriptionSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    items = parse_voice_text(vd['voiceText'])
    if not items:
        return fail('Could not extract any medicine from the dictation')
    doctor, patient, appointment = _resolve_parties(request, vd)
    prescription = create_prescription(
        doctor=doctor, patient=patient, items=items, appointment=appointment,
        pharmacy_id=vd.get('pharmacyId'), notes=bleach.clean(vd['voiceText'], strip=True),
    )
    return created(serialize_prescription(prescription))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def prescriptions_by_patient(request, patient_id):
    qs = _visible(request.user).filter(patient_id=patient_id).order_by('-created_at')[:50]
    return ok([serialize_prescription(p) for p in qs])


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def prescriptions_by_pharmacy(request, pharmacy_id):
    qs = _visible(request.user).filter(pharmacy_id=pharmacy_id).order_by('-created_at')[:50]
    return ok([serialize_prescription(p) for p in qs])


@api_view(['GET', 'PUT'])
@permission_classes([IsAuthenticated])
def prescription_detail(request, pk):
    prescription = _visible(request.user).filter(pk=pk).first()
    if not prescription:
        return fail('Prescription not found', status.HTTP_404_NOT_FOUND)
    if request.method == 'GET':
        return ok(serialize_prescription(prescription))

    if request.user.role != User.SUPER_ADMIN and request.user.id != prescription.doctor_id:
        return fail('Only the prescribing doctor may edit this prescription', status.HTTP_403_FORBIDDEN)
    s = PrescriptionUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    with transaction.atomic():
        if 'items' in vd:
            replace_items(prescription, vd['items'])
        if 'notes' in vd:
            prescription.notes = bleach.clean(vd['notes'], strip=True)
        if 'pharmacyId' in vd:
            prescription.pharmacy_id = vd['pharmacyId']
        if 'reportStatus' in vd:
            prescription.report_status = vd['reportStatus']
        prescription.save()
    prescription.refresh_from_db()
    return ok(serialize_prescription(prescription))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def prescription_document(request, pk):
    prescription = _visible(request.user).select_related('appointment__hospital', 'doctor', 'patient').filter(
        pk=pk).first()
    if not prescription:
        return fail('Prescription not found', status.HTTP_404_NOT_FOUND)
    rendered, template = render_prescription_document(prescription)
    return ok({'rendered': rendered, 'template': serialize_template(template)})
