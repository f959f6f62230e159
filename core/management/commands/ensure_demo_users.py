from django.core.management.base import BaseCommand
from django.contrib.auth.hashers import make_password

from core.models import Distributor, Hospital, Pharmacy, User

DEMO_SET = [
    ("superadmin@carehub.local", "Super Admin", User.SUPER_ADMIN),
    ("hospital.admin@carehub.local", "Hospital Admin", User.HOSPITAL_ADMIN),
    ("doctor@carehub.local", "Demo Doctor", User.DOCTOR),
    ("pharmacy@carehub.local", "Pharmacy Staff", User.PHARMACY_STAFF),
    ("distributor@carehub.local", "Demo Distributor", User.DISTRIBUTOR),
    ("patient@carehub.local", "Demo Patient", User.PATIENT),
]


class Command(BaseCommand):
    help = "Ensure one demo user per role exists (idempotent)."

    def add_arguments(self, parser):
        parser.add_argument("--password", default="carehub123", help="password set on every demo user")

    def handle(self, *args, **opts):
        hospital, _ = Hospital.objects.get_or_create(name="Demo Hospital")
        pharmacy, _ = Pharmacy.objects.get_or_create(name="Demo Pharmacy")
        distributor, _ = Distributor.objects.get_or_create(name="Demo Distributor")
        tenants = {
            User.HOSPITAL_ADMIN: {"hospital": hospital},
            User.DOCTOR: {"hospital": hospital},
            User.PHARMACY_STAFF: {"pharmacy": pharmacy},
            User.DISTRIBUTOR: {"distributor": distributor},
        }
        password = make_password(opts["password"])
        for email, name, role in DEMO_SET:
            u, created = User.objects.update_or_create(
                username=email,
                defaults={
                    "email": email,
                    "first_name": name,
                    "role": role,
                    "password": password,
                    "is_active": True,
                    "is_staff": role == User.SUPER_ADMIN,
                    "is_superuser": role == User.SUPER_ADMIN,
                    **tenants.get(role, {}),
                },
            )
            self.stdout.write(self.style.SUCCESS(f"{'created' if created else 'ok'}: {email} ({role})"))
        self.stdout.write(self.style.SUCCESS("All demo users ensured."))
