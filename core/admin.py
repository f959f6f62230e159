"""
Django admin registrations for the core models.

Only light configuration is applied: list displays, filters and search
so operators can inspect tenants, stock and workflow rows at ``/admin/``.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import (
    Activity,
    Appointment,
    AuditEvent,
    Conversation,
    ConversationMessage,
    Distributor,
    DistributorOrder,
    FinanceEntry,
    Hospital,
    InventoryItem,
    Notification,
    Order,
    OrderItem,
    PatientRecord,
    Pharmacy,
    PharmacyInvoice,
    PharmacyInvoiceItem,
    Prescription,
    PrescriptionItem,
    PricingRule,
    ReportRequest,
    StockAudit,
    StockAuditItem,
    Template,
    User,
)


@admin.register(Hospital, Pharmacy, Distributor)
class OrgUnitAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'phone', 'email', 'is_active', 'created_at')
    list_filter = ('is_active',)
    search_fields = ('name', 'email', 'phone')


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ('username', 'email', 'first_name', 'role', 'hospital', 'pharmacy', 'distributor', 'is_active')
    list_filter = ('role', 'is_active')
    search_fields = ('username', 'email', 'first_name', 'phone')
    fieldsets = BaseUserAdmin.fieldsets + (
        ('CareHub', {'fields': ('role', 'phone', 'hospital', 'pharmacy', 'distributor')}),
    )


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'hospital', 'doctor', 'patient', 'scheduled_at', 'status', 'channel')
    list_filter = ('status', 'channel', 'hospital')
    search_fields = ('doctor__email', 'patient__email', 'reason')


class ConversationMessageInline(admin.TabularInline):
    model = ConversationMessage
    extra = 0


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):
    list_display = ('id', 'appointment', 'doctor', 'patient', 'consultation_type', 'is_active', 'started_at')
    list_filter = ('consultation_type', 'is_active')
    inlines = [ConversationMessageInline]


class PrescriptionItemInline(admin.TabularInline):
    model = PrescriptionItem
    extra = 0


@admin.register(Prescription)
class PrescriptionAdmin(admin.ModelAdmin):
    list_display = ('id', 'doctor', 'patient', 'pharmacy', 'report_status', 'created_at')
    list_filter = ('report_status',)
    inlines = [PrescriptionItemInline]


@admin.register(InventoryItem)
class InventoryItemAdmin(admin.ModelAdmin):
    list_display = ('id', 'pharmacy', 'medicine_name', 'batch_number', 'expiry_date', 'quantity', 'threshold')
    list_filter = ('pharmacy',)
    search_fields = ('medicine_name', 'batch_number')


@admin.register(DistributorOrder)
class DistributorOrderAdmin(admin.ModelAdmin):
    list_display = ('id', 'distributor', 'pharmacy', 'medicine_name', 'quantity', 'status', 'auto_created')
    list_filter = ('status', 'auto_created')


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'pharmacy', 'status', 'delivery_type', 'created_at')
    list_filter = ('status', 'delivery_type')
    inlines = [OrderItemInline]


class PharmacyInvoiceItemInline(admin.TabularInline):
    model = PharmacyInvoiceItem
    extra = 0


@admin.register(PharmacyInvoice)
class PharmacyInvoiceAdmin(admin.ModelAdmin):
    list_display = ('invoice_number', 'pharmacy', 'patient', 'grand_total', 'payment_status', 'bill_date')
    list_filter = ('payment_status', 'invoice_type')
    search_fields = ('invoice_number',)
    inlines = [PharmacyInvoiceItemInline]


@admin.register(FinanceEntry)
class FinanceEntryAdmin(admin.ModelAdmin):
    list_display = ('id', 'type', 'amount', 'occurred_at', 'hospital', 'pharmacy')
    list_filter = ('type',)


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'channel', 'title', 'status', 'created_at')
    list_filter = ('channel', 'status')
    search_fields = ('title', 'user__email')


@admin.register(Activity)
class ActivityAdmin(admin.ModelAdmin):
    list_display = ('id', 'type', 'title', 'created_at')
    list_filter = ('type',)
    search_fields = ('title', 'description')


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('created_at', 'user', 'action', 'method', 'path', 'status_code')
    list_filter = ('method', 'action')
    search_fields = ('path', 'user__email')


class StockAuditItemInline(admin.TabularInline):
    model = StockAuditItem
    extra = 0


@admin.register(StockAudit)
class StockAuditAdmin(admin.ModelAdmin):
    list_display = ('id', 'pharmacy', 'audit_date', 'status', 'items_with_variance', 'total_variance_value')
    list_filter = ('status', 'pharmacy')
    inlines = [StockAuditItemInline]


@admin.register(PricingRule)
class PricingRuleAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'service_type', 'base_price', 'is_active')
    list_filter = ('service_type', 'is_active')


@admin.register(Template)
class TemplateAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'type', 'hospital', 'is_active', 'is_default')
    list_filter = ('type', 'is_default')


@admin.register(PatientRecord)
class PatientRecordAdmin(admin.ModelAdmin):
    list_display = ('patient', 'updated_by', 'updated_at')
    search_fields = ('patient__email',)


@admin.register(ReportRequest)
class ReportRequestAdmin(admin.ModelAdmin):
    list_display = ('id', 'doctor', 'patient', 'title', 'status', 'created_at')
    list_filter = ('status',)
