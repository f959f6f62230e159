"""
URL mappings for the CareHub API.

Paths are grouped per module and carry no trailing slash.
Every route is named so tests and clients can ``reverse()`` it.
"""
from django.urls import include, path

from .auth_views import jwt_logout_view, jwt_refresh_view, login_view, signup_view
from .views import (
    activities, appointments, audit, conversations, dashboard, distributor_orders, finance, health, history,
    inventory, invoices, master, notifications, orders, patient_records, prescriptions, pricing, report_requests,
    reports, templates, users,
)

urlpatterns = [
    path('metrics', include('django_prometheus.urls')),
    path('healthz', health.healthz, name='healthz'),
    path('api/health', health.api_health, name='api_health'),

    # auth / users
    path('api/auth/signup', signup_view, name='signup'),
    path('api/auth/login', login_view, name='login'),
    path('api/auth/refresh', jwt_refresh_view, name='jwt_refresh'),
    path('api/auth/logout', jwt_logout_view, name='jwt_logout'),
    path('api/users', users.list_users, name='users'),
    path('api/users/me', users.me, name='users_me'),
    path('api/users/check-role/<str:email>', users.check_role, name='users_check_role'),
    path('api/users/by-role/<str:role>', users.users_by_role, name='users_by_role'),
    path('api/users/<int:user_id>', users.user_detail, name='user_detail'),

    # master data + public directory
    path('api/master/<str:kind>', master.unit_collection, name='master_units'),
    path('api/master/<str:kind>/<int:pk>', master.unit_detail, name='master_unit_detail'),
    path('api/public/doctors', master.public_doctors, name='public_doctors'),
    path('api/public/medicines', master.public_medicines, name='public_medicines'),
    path('api/public/<str:kind>', master.public_units, name='public_units'),

    # appointments
    path('api/appointments', appointments.appointment_collection, name='appointments'),
    path('api/appointments/<int:pk>', appointments.appointment_detail, name='appointment_detail'),
    path('api/appointments/<int:pk>/status', appointments.appointment_status, name='appointment_status'),
    path('api/appointments/<int:pk>/reschedule', appointments.appointment_reschedule,
         name='appointment_reschedule'),
    path('api/appointments/<int:pk>/cancel', appointments.appointment_cancel, name='appointment_cancel'),

    # conversations
    path('api/conversations', conversations.conversation_collection, name='conversations'),
    path('api/conversations/by-appointment/<int:appointment_id>', conversations.conversation_by_appointment,
         name='conversation_by_appointment'),
    path('api/conversations/<int:pk>', conversations.conversation_detail, name='conversation_detail'),
    path('api/conversations/<int:pk>/messages', conversations.conversation_messages, name='conversation_messages'),

    # prescriptions
    path('api/prescriptions', prescriptions.prescription_collection, name='prescriptions'),
    path('api/prescriptions/voice', prescriptions.prescription_voice, name='prescription_voice'),
    path('api/prescriptions/by-patient/<int:patient_id>', prescriptions.prescriptions_by_patient,
         name='prescriptions_by_patient'),
    path('api/prescriptions/by-pharmacy/<int:pharmacy_id>', prescriptions.prescriptions_by_pharmacy,
         name='prescriptions_by_pharmacy'),
    path('api/prescriptions/<int:pk>', prescriptions.prescription_detail, name='prescription_detail'),
    path('api/prescriptions/<int:pk>/document', prescriptions.prescription_document, name='prescription_document'),

    # inventory + supply
    path('api/inventory', inventory.inventory_collection, name='inventory'),
    path('api/inventory/search', inventory.inventory_search, name='inventory_search'),
    path('api/inventory/brands-by-composition', inventory.brands_by_composition,
         name='inventory_brands_by_composition'),
    path('api/inventory/expiry-risk', inventory.expiry_risk, name='inventory_expiry_risk'),
    path('api/inventory/<int:pk>', inventory.inventory_detail, name='inventory_detail'),
    path('api/inventory/<int:pk>/consume', inventory.inventory_consume, name='inventory_consume'),
    path('api/distributor-orders', distributor_orders.distributor_order_collection, name='distributor_orders'),
    path('api/distributor-orders/<int:pk>', distributor_orders.distributor_order_detail,
         name='distributor_order_detail'),

    # patient orders
    path('api/orders', orders.order_collection, name='orders'),
    path('api/orders/my', orders.my_orders, name='orders_my'),
    path('api/orders/by-pharmacy/<int:pharmacy_id>', orders.orders_by_pharmacy, name='orders_by_pharmacy'),
    path('api/orders/<int:pk>', orders.order_detail, name='order_detail'),
    path('api/orders/<int:pk>/status', orders.order_status, name='order_status'),
    path('api/orders/<int:pk>/cancel', orders.order_cancel, name='order_cancel'),
    path('api/orders/<int:pk>/<str:step>', orders.order_admin_step, name='order_admin_step'),

    # invoices + finance + reports
    path('api/invoices', invoices.invoice_collection, name='invoices'),
    path('api/invoices/<int:pk>', invoices.invoice_detail, name='invoice_detail'),
    path('api/invoices/<int:pk>/payment', invoices.invoice_payment, name='invoice_payment'),
    path('api/invoices/<int:pk>/pdf', invoices.invoice_pdf, name='invoice_pdf'),
    path('api/finance', finance.finance_collection, name='finance'),
    path('api/finance/summary', finance.finance_summary, name='finance_summary'),
    path('api/finance/reports', finance.finance_reports, name='finance_reports'),
    path('api/finance/reports/hospital/<int:hospital_id>', finance.finance_hospital_report,
         name='finance_hospital_report'),
    path('api/finance/reports/unit/<str:unit_type>', finance.finance_unit_report, name='finance_unit_report'),
    path('api/finance/reports/time', finance.finance_time_report, name='finance_time_report'),
    path('api/reports/expiry-tracking', reports.expiry_tracking, name='expiry_tracking'),
    path('api/reports/audit-mismatches', reports.audit_mismatches, name='audit_mismatches'),
    path('api/reports/brand-margin', reports.brand_margin, name='brand_margin'),
    path('api/reports/batch-aging', reports.batch_aging, name='batch_aging'),
    path('api/reports/branch-stock', reports.branch_stock, name='branch_stock'),

    # notifications + activity feed
    path('api/notifications', notifications.notification_collection, name='notifications'),
    path('api/notifications/my', notifications.my_notifications, name='notifications_my'),
    path('api/notifications/send-to-patient', notifications.send_to_patient, name='notifications_send_to_patient'),
    path('api/notifications/send-report-bill', notifications.send_report_bill,
         name='notifications_send_report_bill'),
    path('api/notifications/<int:pk>/read', notifications.mark_read, name='notification_read'),
    path('api/activities', activities.list_activities, name='activities'),

    # audit
    path('api/audit/logs', audit.audit_logs, name='audit_logs'),
    path('api/audit/stock', audit.stock_audit_list, name='stock_audits'),
    path('api/audit/stock/daily', audit.stock_audit_daily, name='stock_audit_daily'),
    path('api/audit/stock/<int:pk>', audit.stock_audit_detail, name='stock_audit_detail'),
    path('api/audit/stock/<int:pk>/manual-bills', audit.stock_audit_manual_bills, name='stock_audit_manual_bills'),
    path('api/audit/stock/<int:pk>/closing-stock', audit.stock_audit_closing_stock,
         name='stock_audit_closing_stock'),
    path('api/audit/stock/<int:pk>/review', audit.stock_audit_review, name='stock_audit_review'),

    # pricing + templates
    path('api/pricing', pricing.pricing_collection, name='pricing'),
    path('api/pricing/<int:pk>', pricing.pricing_detail, name='pricing_detail'),
    path('api/templates', templates.template_collection, name='templates'),
    path('api/templates/default/<str:type_>', templates.template_default, name='template_default'),
    path('api/templates/<int:pk>', templates.template_detail, name='template_detail'),
    path('api/templates/<int:pk>/render', templates.template_render, name='template_render'),

    # patient records + report requests
    path('api/patient-records/<int:patient_id>', patient_records.patient_record, name='patient_record'),
    path('api/patient-records/<int:patient_id>/diagnosis', patient_records.add_diagnosis,
         name='patient_record_diagnosis'),
    path('api/patient-records/<int:patient_id>/allergies', patient_records.add_allergy,
         name='patient_record_allergies'),
    path('api/report-requests', report_requests.report_collection, name='report_requests'),
    path('api/report-requests/<int:pk>', report_requests.report_detail, name='report_request_detail'),
    path('api/report-requests/<int:pk>/upload', report_requests.report_upload, name='report_request_upload'),
    path('api/report-requests/<int:pk>/review', report_requests.report_review, name='report_request_review'),

    # consultation history
    path('api/doctor-history', history.doctor_history, name='doctor_history'),
    path('api/doctor-history/stats', history.doctor_history_stats, name='doctor_history_stats'),
    path('api/doctor-history/patient-count', history.doctor_patient_count, name='doctor_patient_count'),
    path('api/doctor-history/patient/<int:patient_id>', history.doctor_patient_history,
         name='doctor_patient_history'),
    path('api/patient-history', history.patient_history, name='patient_history'),
    path('api/patient-history/stats', history.patient_history_stats, name='patient_history_stats'),

    path('api/admin/dashboard', dashboard.admin_dashboard, name='admin_dashboard'),
]
