"""
Consultation history between doctors and patients.

The timeline is assembled from the records themselves (appointments,
prescriptions and report requests) so it never drifts from them and
needs no backfill.  Each entry carries a ``type`` and a ``date``; the
newest entries come first.
"""
from __future__ import annotations

from django.utils import timezone

from core.models import Appointment, Prescription, ReportRequest, User

DEFAULT_LIMIT = 100
MAX_LIMIT = 500


def _iso(value):
    return value.isoformat() if value else None


def _person(u: User) -> dict:
    return {'id': u.id, 'name': u.display_name, 'email': u.email}


def _appointment_entry(a: Appointment) -> dict:
    return {
        'type': 'APPOINTMENT',
        'date': _iso(a.scheduled_at),
        'appointmentId': a.id,
        'appointmentDate': _iso(a.scheduled_at),
        'appointmentStatus': a.status,
        'channel': a.channel,
        'reason': a.reason,
    }


def _prescription_entry(p: Prescription) -> dict:
    return {
        'type': 'PRESCRIPTION',
        'date': _iso(p.created_at),
        'prescriptionId': p.id,
        'appointmentId': p.appointment_id,
        'prescriptionItems': [
            {'medicineName': i.medicine_name, 'dosage': i.dosage, 'frequency': i.frequency, 'duration': i.duration}
            for i in p.items.all()
        ],
        'prescriptionNotes': p.notes,
    }


def _report_entry(r: ReportRequest) -> dict:
    received = r.status != ReportRequest.STATUS_PENDING
    return {
        'type': 'REPORT_RECEIVED' if received else 'REPORT_REQUEST',
        'date': _iso((r.uploaded_at if received else None) or r.created_at),
        'reportRequestId': r.id,
        'appointmentId': r.appointment_id,
        'reportRequest': r.title,
        'reportStatus': r.status,
        'reviewNotes': r.review_notes,
    }


def timeline(*, doctor=None, patient=None, limit: int = DEFAULT_LIMIT) -> list[dict]:
    """History entries for a doctor, a patient, or the pair, newest first."""
    where = {}
    if doctor is not None:
        where['doctor'] = doctor
    if patient is not None:
        where['patient'] = patient
    limit = max(1, min(limit, MAX_LIMIT))

    sources = [
        (Appointment.objects.filter(**where).order_by('-scheduled_at'), _appointment_entry),
        (Prescription.objects.filter(**where).prefetch_related('items').order_by('-created_at'),
         _prescription_entry),
        (ReportRequest.objects.filter(**where).order_by('-created_at'), _report_entry),
    ]
    entries = []
    for qs, build in sources:
        for row in qs.select_related('doctor', 'patient')[:limit]:
            entry = build(row)
            entry['doctor'] = _person(row.doctor)
            entry['patient'] = _person(row.patient)
            entries.append(entry)
    entries.sort(key=lambda e: e['date'] or '', reverse=True)
    return entries[:limit]


def doctor_patient_ids(doctor) -> set:
    """Every patient the doctor has seen, prescribed for or asked for a report."""
    ids = set(Appointment.objects.filter(doctor=doctor).values_list('patient_id', flat=True))
    ids.update(Prescription.objects.filter(doctor=doctor).values_list('patient_id', flat=True))
    ids.update(ReportRequest.objects.filter(doctor=doctor).values_list('patient_id', flat=True))
    return ids


def doctor_stats(doctor) -> dict:
    now = timezone.now()
    appointments = Appointment.objects.filter(doctor=doctor)
    open_statuses = (Appointment.STATUS_PENDING, Appointment.STATUS_CONFIRMED)
    return {
        'totalPatients': len(doctor_patient_ids(doctor)),
        'totalAppointments': appointments.count(),
        'completedAppointments': appointments.filter(status=Appointment.STATUS_COMPLETED).count(),
        'upcomingAppointments': appointments.filter(status__in=open_statuses, scheduled_at__gte=now).count(),
        'totalPrescriptions': Prescription.objects.filter(doctor=doctor).count(),
        'totalReportRequests': ReportRequest.objects.filter(doctor=doctor).count(),
        'pendingReportRequests': ReportRequest.objects.filter(
            doctor=doctor, status=ReportRequest.STATUS_PENDING).count(),
    }


def patient_stats(patient) -> dict:
    appointments = Appointment.objects.filter(patient=patient)
    doctors = set(appointments.values_list('doctor_id', flat=True))
    doctors.update(Prescription.objects.filter(patient=patient).values_list('doctor_id', flat=True))
    return {
        'totalConsultations': appointments.filter(status=Appointment.STATUS_COMPLETED).count(),
        'totalAppointments': appointments.count(),
        'totalPrescriptions': Prescription.objects.filter(patient=patient).count(),
        'totalReportRequests': ReportRequest.objects.filter(patient=patient).count(),
        'totalDoctors': len(doctors),
    }


def has_seen(doctor, patient_id) -> bool:
    return (Appointment.objects.filter(doctor=doctor, patient_id=patient_id).exists()
            or Prescription.objects.filter(doctor=doctor, patient_id=patient_id).exists()
            or ReportRequest.objects.filter(doctor=doctor, patient_id=patient_id).exists())
