from django.core.management.base import BaseCommand
from django.db import transaction

from core.models import Template
from core.services.templates import find_default_template

DEFAULTS = [
    {
        "name": "Standard prescription",
        "type": "PRESCRIPTION",
        "content": (
            "<h1>{{hospitalName}}</h1>"
            "<p>Doctor: {{doctorName}}<br>Patient: {{patientName}}<br>Date: {{date}}</p>"
            "{{medicines}}"
            "<p>{{notes}}</p>"
        ),
        "variables": [
            {"key": "notes", "label": "Notes", "defaultValue": "", "required": False},
        ],
    },
    {
        "name": "Standard bill",
        "type": "BILL",
        "content": (
            "<h1>{{hospitalName}}</h1>"
            "<p>Bill for {{patientName}} on {{date}}</p>"
            "<p>Amount due: {{amount}} {{currency}}</p>"
        ),
        "variables": [
            {"key": "amount", "label": "Amount", "defaultValue": "", "required": True},
            {"key": "currency", "label": "Currency", "defaultValue": "INR", "required": False},
        ],
    },
    {
        "name": "Standard report",
        "type": "REPORT",
        "content": "<h1>{{title}}</h1><p>Patient: {{patientName}}</p><div>{{body}}</div>",
        "variables": [
            {"key": "title", "label": "Title", "defaultValue": "Medical report", "required": False},
            {"key": "body", "label": "Body", "defaultValue": "", "required": True},
        ],
    },
    {
        "name": "Appointment letter",
        "type": "APPOINTMENT_LETTER",
        "content": (
            "<p>Dear {{patientName}},</p>"
            "<p>Your appointment with {{doctorName}} at {{hospitalName}} is on {{appointmentDate}}.</p>"
        ),
        "variables": [
            {"key": "appointmentDate", "label": "Appointment date", "defaultValue": "", "required": True},
        ],
    },
]


class Command(BaseCommand):
    help = "Install the default global templates (existing ones are left untouched)."

    @transaction.atomic
    def handle(self, *args, **options):
        created_count = 0
        for entry in DEFAULTS:
            is_default = find_default_template(entry["type"]) is None
            _, created = Template.objects.get_or_create(
                name=entry["name"], type=entry["type"], hospital=None,
                defaults={"content": entry["content"], "variables": entry["variables"], "is_default": is_default},
            )
            created_count += int(created)
        self.stdout.write(self.style.SUCCESS(f"{created_count} template(s) installed"))
