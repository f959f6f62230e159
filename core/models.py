"""
Database models for the carehub backend.

The data model is flat: tenants (hospitals, pharmacies,
distributors) own users, stock and orders; clinical objects reference
users and tenants by nullable foreign keys so that partially linked
records (an appointment without a hospital, a prescription without a
pharmacy yet) can still be stored.
"""
from __future__ import annotations

from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.db import models


# ---------------------------------------------------------------------
# Tenants
# ---------------------------------------------------------------------
class OrgUnit(models.Model):
    """Common fields shared by every tenant kind."""
    name = models.CharField(max_length=255)
    address = models.CharField(max_length=500, blank=True)
    phone = models.CharField(max_length=32, blank=True)
    email = models.EmailField(blank=True)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
        ordering = ['name']

    def __str__(self) -> str:
        return self.name


class Hospital(OrgUnit):
    pass


class Pharmacy(OrgUnit):
    class Meta(OrgUnit.Meta):
        verbose_name_plural = 'pharmacies'


class Distributor(OrgUnit):
    pass


# ---------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------
class User(AbstractUser):
    """Custom user with a role and optional tenant bindings.

    ``username`` is set to the e-mail address at signup so that the
    stock authentication backend can log users in by e-mail.  The display
    name lives in ``first_name``.
    """
    SUPER_ADMIN = 'SUPER_ADMIN'
    HOSPITAL_ADMIN = 'HOSPITAL_ADMIN'
    DOCTOR = 'DOCTOR'
    PHARMACY_STAFF = 'PHARMACY_STAFF'
    DISTRIBUTOR = 'DISTRIBUTOR'
    PATIENT = 'PATIENT'

    ROLE_CHOICES = [
        (SUPER_ADMIN, 'Super Administrator'),
        (HOSPITAL_ADMIN, 'Hospital Administrator'),
        (DOCTOR, 'Doctor'),
        (PHARMACY_STAFF, 'Pharmacy Staff'),
        (DISTRIBUTOR, 'Distributor'),
        (PATIENT, 'Patient'),
    ]

    email = models.EmailField(unique=True)
    phone = models.CharField(max_length=32, blank=True)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=PATIENT, db_index=True)
    hospital = models.ForeignKey(Hospital, null=True, blank=True, on_delete=models.SET_NULL, related_name='users')
    pharmacy = models.ForeignKey(Pharmacy, null=True, blank=True, on_delete=models.SET_NULL, related_name='users')
    distributor = models.ForeignKey(
        Distributor, null=True, blank=True, on_delete=models.SET_NULL, related_name='users'
    )

    @property
    def display_name(self) -> str:
        return self.get_full_name() or self.username

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


# ---------------------------------------------------------------------
# Appointments & conversations
# ---------------------------------------------------------------------
class Appointment(models.Model):
    STATUS_PENDING = 'PENDING'
    STATUS_CONFIRMED = 'CONFIRMED'
    STATUS_COMPLETED = 'COMPLETED'
    STATUS_CANCELLED = 'CANCELLED'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_CONFIRMED, 'Confirmed'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]
    CHANNEL_PHYSICAL = 'PHYSICAL'
    CHANNEL_VIDEO = 'VIDEO'
    CHANNEL_CHOICES = [(CHANNEL_PHYSICAL, 'Physical'), (CHANNEL_VIDEO, 'Video')]

    hospital = models.ForeignKey(Hospital, null=True, blank=True, on_delete=models.SET_NULL, related_name='appointments')
    doctor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='doctor_appointments')
    patient = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='patient_appointments')
    scheduled_at = models.DateTimeField(db_index=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    reason = models.TextField(blank=True)
    channel = models.CharField(max_length=20, choices=CHANNEL_CHOICES, default=CHANNEL_PHYSICAL)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"Appointment {self.pk} ({self.status})"


class Conversation(models.Model):
    TYPE_ONLINE = 'ONLINE'
    TYPE_OFFLINE = 'OFFLINE'
    TYPE_CHOICES = [(TYPE_ONLINE, 'Online'), (TYPE_OFFLINE, 'Offline')]

    appointment = models.ForeignKey(Appointment, on_delete=models.CASCADE, related_name='conversations')
    doctor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='doctor_conversations')
    patient = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='patient_conversations')
    consultation_type = models.CharField(max_length=10, choices=TYPE_CHOICES, default=TYPE_OFFLINE)
    is_active = models.BooleanField(default=True, db_index=True)
    started_at = models.DateTimeField(auto_now_add=True)
    ended_at = models.DateTimeField(null=True, blank=True)
    summary = models.TextField(blank=True)
    prescription = models.ForeignKey(
        'Prescription', null=True, blank=True, on_delete=models.SET_NULL, related_name='+'
    )
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"Conversation {self.pk} for appointment {self.appointment_id}"


class ConversationMessage(models.Model):
    SENDER_ROLE_CHOICES = [('DOCTOR', 'Doctor'), ('PATIENT', 'Patient')]
    TYPE_CHOICES = [('TEXT', 'Text'), ('AUDIO', 'Audio'), ('IMAGE', 'Image'), ('FILE', 'File')]

    conversation = models.ForeignKey(Conversation, on_delete=models.CASCADE, related_name='messages')
    sender = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='conversation_messages')
    sender_role = models.CharField(max_length=10, choices=SENDER_ROLE_CHOICES)
    message_type = models.CharField(max_length=10, choices=TYPE_CHOICES, default='TEXT')
    content = models.TextField()
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'id']


# ---------------------------------------------------------------------
# Prescriptions
# ---------------------------------------------------------------------
class Prescription(models.Model):
    REPORT_STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('FORMATTED', 'Formatted'),
        ('FINALIZED', 'Finalized'),
    ]

    appointment = models.ForeignKey(
        Appointment, null=True, blank=True, on_delete=models.SET_NULL, related_name='prescriptions'
    )
    doctor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='written_prescriptions')
    patient = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='prescriptions')
    pharmacy = models.ForeignKey(Pharmacy, null=True, blank=True, on_delete=models.SET_NULL, related_name='prescriptions')
    conversation = models.ForeignKey(
        Conversation, null=True, blank=True, on_delete=models.SET_NULL, related_name='prescriptions'
    )
    notes = models.TextField(blank=True)
    report_status = models.CharField(max_length=20, choices=REPORT_STATUS_CHOICES, default='PENDING')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)


class PrescriptionItem(models.Model):
    prescription = models.ForeignKey(Prescription, on_delete=models.CASCADE, related_name='items')
    position = models.PositiveIntegerField(default=0)
    medicine_name = models.CharField(max_length=255)
    dosage = models.CharField(max_length=100)
    frequency = models.CharField(max_length=100)
    duration = models.CharField(max_length=100)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['position', 'id']


# ---------------------------------------------------------------------
# Inventory & supply
# ---------------------------------------------------------------------
class InventoryItem(models.Model):
    pharmacy = models.ForeignKey(Pharmacy, on_delete=models.CASCADE, related_name='inventory')
    medicine_name = models.CharField(max_length=255, db_index=True)
    brand_name = models.CharField(max_length=255, blank=True)
    composition = models.CharField(max_length=255, blank=True, db_index=True)
    batch_number = models.CharField(max_length=100)
    expiry_date = models.DateField()
    quantity = models.PositiveIntegerField(default=0)
    threshold = models.PositiveIntegerField(default=10)
    distributor = models.ForeignKey(
        Distributor, null=True, blank=True, on_delete=models.SET_NULL, related_name='supplied_items'
    )
    purchase_price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    selling_price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    rack_number = models.CharField(max_length=30, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['pharmacy', 'medicine_name'], name='inventory_pharmacy_med_idx'),
            models.Index(fields=['expiry_date'], name='inventory_expiry_idx'),
        ]

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.threshold

    def __str__(self) -> str:
        return f"{self.medicine_name} [{self.batch_number}] x{self.quantity}"


class DistributorOrder(models.Model):
    STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('ACCEPTED', 'Accepted'),
        ('DISPATCHED', 'Dispatched'),
        ('DELIVERED', 'Delivered'),
        ('CANCELLED', 'Cancelled'),
    ]
    OPEN_STATUSES = ('PENDING', 'ACCEPTED')

    distributor = models.ForeignKey(Distributor, on_delete=models.CASCADE, related_name='orders')
    pharmacy = models.ForeignKey(Pharmacy, on_delete=models.CASCADE, related_name='distributor_orders')
    inventory_item = models.ForeignKey(
        InventoryItem, null=True, blank=True, on_delete=models.SET_NULL, related_name='restock_orders'
    )
    medicine_name = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='PENDING', db_index=True)
    delivery_otp = models.CharField(max_length=12, blank=True)
    delivery_proof_image_url = models.URLField(max_length=500, blank=True)
    auto_created = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)


# ---------------------------------------------------------------------
# Patient orders & invoices
# ---------------------------------------------------------------------
class Order(models.Model):
    STATUS_PENDING = 'PENDING'
    STATUS_ORDER_RECEIVED = 'ORDER_RECEIVED'
    STATUS_MEDICINE_RECEIVED = 'MEDICINE_RECEIVED'
    STATUS_SENT_TO_PHARMACY = 'SENT_TO_PHARMACY'
    STATUS_ACCEPTED = 'ACCEPTED'
    STATUS_PACKED = 'PACKED'
    STATUS_OUT_FOR_DELIVERY = 'OUT_FOR_DELIVERY'
    STATUS_DELIVERED = 'DELIVERED'
    STATUS_CANCELLED = 'CANCELLED'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_ORDER_RECEIVED, 'Order received'),
        (STATUS_MEDICINE_RECEIVED, 'Medicine received'),
        (STATUS_SENT_TO_PHARMACY, 'Sent to pharmacy'),
        (STATUS_ACCEPTED, 'Accepted'),
        (STATUS_PACKED, 'Packed'),
        (STATUS_OUT_FOR_DELIVERY, 'Out for delivery'),
        (STATUS_DELIVERED, 'Delivered'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]
    DELIVERY_CHOICES = [('DELIVERY', 'Delivery'), ('PICKUP', 'Pickup')]

    patient = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='orders')
    pharmacy = models.ForeignKey(Pharmacy, on_delete=models.CASCADE, related_name='orders')
    prescription = models.ForeignKey(
        Prescription, null=True, blank=True, on_delete=models.SET_NULL, related_name='orders'
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    delivery_type = models.CharField(max_length=10, choices=DELIVERY_CHOICES, default='PICKUP')
    address = models.TextField(blank=True)
    delivery_charge = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    delivery_person_name = models.CharField(max_length=150, blank=True)
    delivery_person_phone = models.CharField(max_length=32, blank=True)
    estimated_delivery_time = models.DateTimeField(null=True, blank=True)
    delivery_notes = models.TextField(blank=True)
    cancellation_reason = models.TextField(blank=True)
    admin_approved_at = models.DateTimeField(null=True, blank=True)
    medicine_received_at = models.DateTimeField(null=True, blank=True)
    sent_to_pharmacy_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def short_id(self) -> str:
        return f"#{self.pk:06d}" if self.pk else '#new'


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    prescription_item = models.ForeignKey(
        PrescriptionItem, null=True, blank=True, on_delete=models.SET_NULL, related_name='+'
    )
    medicine_name = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField()


class PharmacyInvoice(models.Model):
    TYPE_CHOICES = [('WALK_IN', 'Walk-in'), ('ORDER', 'Order')]
    PAYMENT_STATUS_CHOICES = [('PENDING', 'Pending'), ('PARTIAL', 'Partial'), ('PAID', 'Paid')]

    invoice_number = models.CharField(max_length=40, unique=True)
    pharmacy = models.ForeignKey(Pharmacy, on_delete=models.CASCADE, related_name='invoices')
    patient = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='pharmacy_invoices'
    )
    order = models.ForeignKey(Order, null=True, blank=True, on_delete=models.SET_NULL, related_name='invoices')
    invoice_type = models.CharField(max_length=10, choices=TYPE_CHOICES, default='WALK_IN')
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_discount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_tax = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    grand_total = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    payment_method = models.CharField(max_length=30, blank=True)
    payment_status = models.CharField(max_length=10, choices=PAYMENT_STATUS_CHOICES, default='PENDING')
    paid_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    bill_date = models.DateTimeField(db_index=True)
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)


class PharmacyInvoiceItem(models.Model):
    invoice = models.ForeignKey(PharmacyInvoice, on_delete=models.CASCADE, related_name='items')
    inventory_item = models.ForeignKey(InventoryItem, null=True, on_delete=models.SET_NULL, related_name='invoice_lines')
    medicine_name = models.CharField(max_length=255)
    brand_name = models.CharField(max_length=255, blank=True)
    composition = models.CharField(max_length=255, blank=True)
    batch_number = models.CharField(max_length=100, blank=True)
    quantity = models.PositiveIntegerField()
    purchase_price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    mrp = models.DecimalField(max_digits=12, decimal_places=2)
    discount_percent = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=18)
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total = models.DecimalField(max_digits=12, decimal_places=2, default=0)


# ---------------------------------------------------------------------
# Finance
# ---------------------------------------------------------------------
class FinanceEntry(models.Model):
    """A signed ledger row: positive amounts are revenue, negative expenses."""
    TYPE_CHOICES = [
        ('CONSULTATION', 'Consultation'),
        ('PHARMACY_SALE', 'Pharmacy sale'),
        ('ORDER', 'Order'),
        ('DELIVERY', 'Delivery'),
        ('SUBSCRIPTION', 'Subscription'),
        ('DISTRIBUTOR_PAYMENT', 'Distributor payment'),
        ('SALARY', 'Salary'),
        ('EXPENSE', 'Expense'),
        ('REFUND', 'Refund'),
        ('OTHER', 'Other'),
    ]

    type = models.CharField(max_length=30, choices=TYPE_CHOICES, default='OTHER', db_index=True)
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    description = models.CharField(max_length=500, blank=True)
    occurred_at = models.DateTimeField(db_index=True)
    hospital = models.ForeignKey(Hospital, null=True, blank=True, on_delete=models.SET_NULL, related_name='finance_entries')
    pharmacy = models.ForeignKey(Pharmacy, null=True, blank=True, on_delete=models.SET_NULL, related_name='finance_entries')
    distributor = models.ForeignKey(
        Distributor, null=True, blank=True, on_delete=models.SET_NULL, related_name='finance_entries'
    )
    doctor = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='doctor_finance_entries'
    )
    patient = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='patient_finance_entries'
    )
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)


# ---------------------------------------------------------------------
# Notifications, activity, audit
# ---------------------------------------------------------------------
class Notification(models.Model):
    CHANNEL_CHOICES = [('SMS', 'SMS'), ('WHATSAPP', 'WhatsApp'), ('PUSH', 'Push'), ('EMAIL', 'E-mail')]
    STATUS_CHOICES = [('PENDING', 'Pending'), ('SENT', 'Sent'), ('FAILED', 'Failed'), ('READ', 'Read')]

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='notifications')
    channel = models.CharField(max_length=10, choices=CHANNEL_CHOICES, default='PUSH')
    title = models.CharField(max_length=255)
    message = models.TextField()
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='PENDING', db_index=True)
    metadata = models.JSONField(default=dict, blank=True)
    error_message = models.TextField(blank=True)
    read_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=['user', 'created_at'], name='notification_user_time_idx')]


class Activity(models.Model):
    """Append-only event shown on dashboards and mirrored to the admin room."""
    type = models.CharField(max_length=64, db_index=True)
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='activities'
    )
    hospital = models.ForeignKey(Hospital, null=True, blank=True, on_delete=models.SET_NULL, related_name='activities')
    pharmacy = models.ForeignKey(Pharmacy, null=True, blank=True, on_delete=models.SET_NULL, related_name='activities')
    distributor = models.ForeignKey(
        Distributor, null=True, blank=True, on_delete=models.SET_NULL, related_name='activities'
    )
    doctor = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    patient = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        verbose_name_plural = 'activities'


class AuditEvent(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    method = models.CharField(max_length=10, blank=True)
    path = models.CharField(max_length=500, blank=True)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.CharField(max_length=64, blank=True, null=True)
    status_code = models.PositiveSmallIntegerField(null=True, blank=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at'], name='audit_action_time_idx'),
            models.Index(fields=['object_type', 'object_id', 'created_at'], name='audit_object_time_idx'),
            models.Index(fields=['path'], name='audit_path_idx'),
        ]


# ---------------------------------------------------------------------
# Stock audit
# ---------------------------------------------------------------------
class StockAudit(models.Model):
    STATUS_CHOICES = [
        ('IN_PROGRESS', 'In progress'),
        ('COMPLETED', 'Completed'),
        ('REVIEWED', 'Reviewed'),
    ]

    pharmacy = models.ForeignKey(Pharmacy, on_delete=models.CASCADE, related_name='stock_audits')
    audit_date = models.DateField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='IN_PROGRESS', db_index=True)
    total_items = models.PositiveIntegerField(default=0)
    items_with_variance = models.PositiveIntegerField(default=0)
    total_variance_value = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    reviewed_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    reviewed_at = models.DateTimeField(null=True, blank=True)
    reviewed_notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['pharmacy', 'audit_date'], name='uniq_daily_stock_audit'),
        ]


class StockAuditItem(models.Model):
    audit = models.ForeignKey(StockAudit, on_delete=models.CASCADE, related_name='items')
    inventory_item = models.ForeignKey(InventoryItem, null=True, on_delete=models.SET_NULL, related_name='+')
    medicine_name = models.CharField(max_length=255)
    batch_number = models.CharField(max_length=100, blank=True)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    opening_stock = models.IntegerField(default=0)
    system_sales = models.IntegerField(default=0)
    manual_bills = models.IntegerField(default=0)
    total_sales = models.IntegerField(default=0)
    expected_closing_stock = models.IntegerField(default=0)
    actual_closing_stock = models.IntegerField(null=True, blank=True)
    variance = models.IntegerField(null=True, blank=True)
    variance_reason = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ['id']


# ---------------------------------------------------------------------
# Pricing & templates
# ---------------------------------------------------------------------
class PricingRule(models.Model):
    SERVICE_CHOICES = [
        ('CONSULTATION', 'Consultation'),
        ('DELIVERY', 'Delivery'),
        ('SUBSCRIPTION', 'Subscription'),
        ('DISCOUNT', 'Discount'),
    ]

    name = models.CharField(max_length=255)
    service_type = models.CharField(max_length=20, choices=SERVICE_CHOICES, db_index=True)
    description = models.TextField(blank=True)
    base_price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    discount_percent = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    hospital = models.ForeignKey(Hospital, null=True, blank=True, on_delete=models.CASCADE, related_name='pricing_rules')
    pharmacy = models.ForeignKey(Pharmacy, null=True, blank=True, on_delete=models.CASCADE, related_name='pricing_rules')
    is_active = models.BooleanField(default=True)
    valid_from = models.DateTimeField(null=True, blank=True)
    valid_to = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)


class Template(models.Model):
    TYPE_CHOICES = [
        ('PRESCRIPTION', 'Prescription'),
        ('BILL', 'Bill'),
        ('REPORT', 'Report'),
        ('APPOINTMENT_LETTER', 'Appointment letter'),
    ]

    name = models.CharField(max_length=255)
    type = models.CharField(max_length=30, choices=TYPE_CHOICES, db_index=True)
    hospital = models.ForeignKey(Hospital, null=True, blank=True, on_delete=models.CASCADE, related_name='templates')
    content = models.TextField()
    variables = models.JSONField(default=list, blank=True)
    header_image_url = models.URLField(max_length=500, blank=True)
    footer_text = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    is_default = models.BooleanField(default=False)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)


# ---------------------------------------------------------------------
# Clinical records
# ---------------------------------------------------------------------
class PatientRecord(models.Model):
    """Aggregated medical history; exactly one row per patient."""
    patient = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='medical_record')
    diagnosis = models.JSONField(default=list, blank=True)
    allergies = models.JSONField(default=list, blank=True)
    current_medications = models.JSONField(default=list, blank=True)
    past_surgeries = models.JSONField(default=list, blank=True)
    hospitalization_history = models.JSONField(default=list, blank=True)
    lab_reports = models.JSONField(default=list, blank=True)
    notes = models.TextField(blank=True)
    updated_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)


def report_upload_path(instance: 'ReportRequest', filename: str) -> str:
    return f"reports/{instance.patient_id}/{instance.pk}/{filename}"


class ReportRequest(models.Model):
    STATUS_PENDING = 'PENDING'
    STATUS_UPLOADED = 'UPLOADED'
    STATUS_REVIEWED = 'REVIEWED'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_UPLOADED, 'Uploaded'),
        (STATUS_REVIEWED, 'Reviewed'),
    ]

    doctor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='requested_reports')
    patient = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='report_requests')
    appointment = models.ForeignKey(
        Appointment, null=True, blank=True, on_delete=models.SET_NULL, related_name='report_requests'
    )
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    file = models.FileField(upload_to=report_upload_path, null=True, blank=True)
    file_name = models.CharField(max_length=255, blank=True)
    content_type = models.CharField(max_length=120, blank=True)
    size = models.PositiveIntegerField(default=0)
    uploaded_at = models.DateTimeField(null=True, blank=True)
    review_notes = models.TextField(blank=True)
    reviewed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
