"""
Doctor-initiated report requests and patient uploads.
"""
from __future__ import annotations

import os

import bleach
from django.conf import settings
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, parser_classes, permission_classes
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated

from core.models import Appointment, ReportRequest, User
from core.permissions import IsDoctor
from core.serializers.clinical import (
    ReportRequestCreateSerializer, ReportReviewSerializer, ReportStatusQuerySerializer,
)
from core.services.notifications import create_notification
from core.services.realtime import emit_to_user
from core.views.common import created, fail, ok


def serialize_report(r: ReportRequest, request=None) -> dict:
    url = None
    if r.file:
        url = request.build_absolute_uri(r.file.url) if request is not None else r.file.url
    return {
        'id': r.id,
        'doctorId': r.doctor_id,
        'patientId': r.patient_id,
        'appointmentId': r.appointment_id,
        'title': r.title,
        'description': r.description,
        'status': r.status,
        'fileUrl': url,
        'fileName': r.file_name or None,
        'contentType': r.content_type or None,
        'size': r.size,
        'uploadedAt': r.uploaded_at.isoformat() if r.uploaded_at else None,
        'reviewNotes': r.review_notes,
        'reviewedAt': r.reviewed_at.isoformat() if r.reviewed_at else None,
        'createdAt': r.created_at.isoformat() if r.created_at else None,
    }


def _visible(user):
    qs = ReportRequest.objects.all()
    if user.role == User.DOCTOR:
        return qs.filter(doctor=user)
    if user.role == User.PATIENT:
        return qs.filter(patient=user)
    if user.role == User.SUPER_ADMIN:
        return qs
    return qs.none()


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def report_collection(request):
    if request.method == 'POST':
        if request.user.role != User.DOCTOR:
            return fail('Only doctors can request reports', status.HTTP_403_FORBIDDEN)
        s = ReportRequestCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = s.validated_data
        patient = User.objects.filter(pk=vd['patientId'], role=User.PATIENT).first()
        if not patient:
            return fail('Patient not found', status.HTTP_404_NOT_FOUND)
        appointment_id = vd.get('appointmentId')
        if appointment_id and not Appointment.objects.filter(pk=appointment_id, patient=patient).exists():
            return fail('Appointment not found', status.HTTP_404_NOT_FOUND)
        report = ReportRequest.objects.create(
            doctor=request.user, patient=patient, appointment_id=appointment_id,
            title=bleach.clean(vd['title'], strip=True),
            description=bleach.clean(vd.get('description') or '', strip=True),
        )
        create_notification(patient, 'Report requested',
                            f"Dr. {request.user.display_name} requested: {report.title}",
                            metadata={'reportRequestId': report.id})
        payload = serialize_report(report, request)
        emit_to_user(patient.id, 'report:requested', payload)
        return created(payload)

    q = ReportStatusQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    qs = _visible(request.user)
    if q.validated_data.get('status'):
        qs = qs.filter(status=q.validated_data['status'])
    return ok([serialize_report(r, request) for r in qs.order_by('-created_at')[:100]])


@api_view(['GET', 'DELETE'])
@permission_classes([IsAuthenticated])
def report_detail(request, pk):
    report = _visible(request.user).filter(pk=pk).first()
    if not report:
        return fail('Report request not found', status.HTTP_404_NOT_FOUND)
    if request.method == 'GET':
        return ok(serialize_report(report, request))
    if request.user.id not in (report.doctor_id, report.patient_id):
        return fail('Only the doctor or the patient may delete this request', status.HTTP_403_FORBIDDEN)
    if report.file:
        report.file.delete(save=False)
    report.delete()
    return ok({'id': pk})


def _check_upload(f):
    max_bytes = settings.UPLOAD_MAX_MB * 1024 * 1024
    if f.size > max_bytes:
        return f"File too large (max {settings.UPLOAD_MAX_MB} MB)"
    ext = os.path.splitext(f.name)[1].lower().lstrip('.')
    if ext not in settings.ALLOWED_UPLOAD_EXTENSIONS:
        return f"Unsupported file type .{ext or '?'}"
    content_type = (getattr(f, 'content_type', '') or '').lower()
    if content_type and content_type not in settings.ALLOWED_UPLOAD_TYPES:
        return f"Unsupported content type {content_type}"
    return None


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@parser_classes([MultiPartParser, FormParser])
def report_upload(request, pk):
    report = ReportRequest.objects.filter(pk=pk).select_related('doctor').first()
    if not report:
        return fail('Report request not found', status.HTTP_404_NOT_FOUND)
    if report.patient_id != request.user.id:
        return fail('Only the patient may upload this report', status.HTTP_403_FORBIDDEN)
    if report.status != ReportRequest.STATUS_PENDING:
        return fail(f"Report request is already {report.status}")
    f = request.FILES.get('file')
    if f is None:
        return fail('file is required')
    problem = _check_upload(f)
    if problem:
        return fail(problem)

    report.file.save(f.name, f, save=False)
    report.file_name = f.name[:255]
    report.content_type = (getattr(f, 'content_type', '') or '')[:120]
    report.size = f.size
    report.uploaded_at = timezone.now()
    report.status = ReportRequest.STATUS_UPLOADED
    report.save()
    create_notification(report.doctor, 'Report uploaded',
                        f"{request.user.display_name} uploaded: {report.title}",
                        metadata={'reportRequestId': report.id})
    payload = serialize_report(report, request)
    emit_to_user(report.doctor_id, 'report:uploaded', payload)
    return ok(payload)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, IsDoctor])
def report_review(request, pk):
    report = ReportRequest.objects.filter(pk=pk).select_related('patient').first()
    if not report:
        return fail('Report request not found', status.HTTP_404_NOT_FOUND)
    if report.doctor_id != request.user.id:
        return fail('Only the requesting doctor may review this report', status.HTTP_403_FORBIDDEN)
    if report.status != ReportRequest.STATUS_UPLOADED:
        return fail('Report must be UPLOADED before review')
    s = ReportReviewSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    report.review_notes = bleach.clean(s.validated_data.get('reviewNotes') or '', strip=True)
    report.reviewed_at = timezone.now()
    report.status = ReportRequest.STATUS_REVIEWED
    report.save()
    create_notification(report.patient, 'Report reviewed',
                        f"Dr. {request.user.display_name} reviewed: {report.title}",
                        metadata={'reportRequestId': report.id})
    payload = serialize_report(report, request)
    emit_to_user(report.patient_id, 'report:reviewed', payload)
    return ok(payload)
