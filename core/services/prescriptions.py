"""
Prescription creation, dictation parsing and document rendering.
"""
from __future__ import annotations

import re
from typing import Iterable, Optional

from django.db import transaction
from django.utils.html import format_html, format_html_join

from core.exceptions import ApiError
from core.models import Conversation, Prescription, PrescriptionItem
from core.services.activity import create_activity
from core.services.notifications import create_notification
from core.services.templates import find_default_template, render_template

DOSAGE_RE = re.compile(r"(\d+\s*(mg|ml|g|tablet|tab|capsule|cap))", re.I)
FREQUENCY_RE = re.compile(r"((once|twice|thrice|\d+)\s*(daily|day|week|hour))", re.I)
DURATION_RE = re.compile(r"for\s+(\d+\s*(day|week|month|hour)s?)", re.I)
SPLIT_RE = re.compile(r"[.,;]")
CAPITALISED_RE = re.compile(r"\b([A-Z][A-Za-z0-9-]*)")


def parse_voice_text(text: str) -> list[dict]:
    """Turn free dictation into prescription items.

    >>> parse_voice_text("Amoxicillin 500mg twice daily for 5 days")[0]['dosage']
    '500mg'
    """
    items = []
    for fragment in SPLIT_RE.split(text or ''):
        line = fragment.strip()
        if len(line) < 5:
            continue
        cap = CAPITALISED_RE.search(line)
        name = cap.group(1) if cap else line.split()[0]
        dosage = DOSAGE_RE.search(line)
        frequency = FREQUENCY_RE.search(line)
        duration = DURATION_RE.search(line)
        items.append({
            'medicineName': name,
            'dosage': dosage.group(0) if dosage else 'As directed',
            'frequency': frequency.group(0) if frequency else 'As needed',
            'duration': duration.group(0) if duration else 'As directed',
            'notes': line,
        })
    return items


def replace_items(prescription: Prescription, items: Iterable[dict]) -> None:
    prescription.items.all().delete()
    PrescriptionItem.objects.bulk_create([
        PrescriptionItem(
            prescription=prescription,
            position=i,
            medicine_name=it['medicineName'],
            dosage=it['dosage'],
            frequency=it['frequency'],
            duration=it['duration'],
            notes=it.get('notes') or '',
        )
        for i, it in enumerate(items)
    ])


@transaction.atomic
def create_prescription(*, doctor, patient, items: list[dict], appointment=None, pharmacy_id=None,
                        notes: str = '') -> Prescription:
    if not items:
        raise ApiError('At least one prescription item is required')
    conversation: Optional[Conversation] = None
    if appointment is not None:
        conversation = appointment.conversations.filter(is_active=True).order_by('-started_at').first()
    prescription = Prescription.objects.create(
        appointment=appointment,
        doctor=doctor,
        patient=patient,
        pharmacy_id=pharmacy_id,
        conversation=conversation,
        notes=notes,
    )
    replace_items(prescription, items)
    if conversation is not None and conversation.prescription_id is None:
        conversation.prescription = prescription
        conversation.save(update_fields=['prescription', 'updated_at'])

    create_activity(
        'PRESCRIPTION_CREATED',
        'Prescription created',
        f"Dr. {doctor.display_name} prescribed {len(items)} item(s) for {patient.display_name}",
        user_id=doctor.id,
        doctor_id=doctor.id,
        patient_id=patient.id,
        pharmacy_id=pharmacy_id,
        hospital_id=getattr(appointment, 'hospital_id', None),
        metadata={'prescriptionId': prescription.id, 'itemCount': len(items)},
    )
    create_notification(
        patient, 'New prescription', f"Dr. {doctor.display_name} has issued a new prescription.",
        metadata={'prescriptionId': prescription.id},
    )
    return prescription


def medicines_table(prescription: Prescription):
    rows = format_html_join(
        '\n', '<tr><td>{}</td><td>{}</td><td>{}</td><td>{}</td><td>{}</td></tr>',
        ((it.medicine_name, it.dosage, it.frequency, it.duration, it.notes) for it in prescription.items.all()),
    )
    return format_html(
        '<table class="medicines"><thead><tr><th>Medicine</th><th>Dosage</th><th>Frequency</th>'
        '<th>Duration</th><th>Notes</th></tr></thead><tbody>{}</tbody></table>',
        rows,
    )


def render_prescription_document(prescription: Prescription) -> tuple[str, object]:
    appointment = prescription.appointment
    hospital = appointment.hospital if appointment else None
    template = find_default_template('PRESCRIPTION', hospital.id if hospital else None)
    if template is None:
        raise ApiError('No PRESCRIPTION template configured', 404)
    data = {
        'hospitalName': hospital.name if hospital else '',
        'doctorName': prescription.doctor.display_name,
        'patientName': prescription.patient.display_name,
        'prescriptionId': prescription.id,
        'notes': prescription.notes,
        'medicines': medicines_table(prescription),
        'date': prescription.created_at.strftime('%Y-%m-%d') if prescription.created_at else '',
    }
    return render_template(template, data), template
