"""
Admin dashboard counters, cached through the Django cache framework.
"""
from __future__ import annotations

from django.conf import settings
from django.core.cache import cache
from django.db.models import Count, F
from django.utils import timezone

from core.models import Appointment, Distributor, Hospital, InventoryItem, Notification, Order, Pharmacy, User

CACHE_KEY = 'dashboard:counters'


def compute_counters() -> dict:
    today = timezone.localdate()
    per_role = dict(User.objects.filter(is_active=True).values('role').annotate(n=Count('id')).values_list('role', 'n'))
    return {
        'hospitals': Hospital.objects.count(),
        'pharmacies': Pharmacy.objects.count(),
        'distributors': Distributor.objects.count(),
        'usersByRole': {role: per_role.get(role, 0) for role, _ in User.ROLE_CHOICES},
        'appointmentsToday': Appointment.objects.filter(scheduled_at__date=today).count(),
        'pendingOrders': Order.objects.filter(status=Order.STATUS_PENDING).count(),
        'lowStockItems': InventoryItem.objects.filter(quantity__lte=F('threshold')).count(),
        'unreadNotifications': Notification.objects.exclude(status='READ').count(),
        'generatedAt': timezone.now().isoformat(),
    }


def get_counters() -> dict:
    data = cache.get(CACHE_KEY)
    if data is None:
        data = refresh_counters()
    return data


def refresh_counters() -> dict:
    data = compute_counters()
    cache.set(CACHE_KEY, data, settings.DASHBOARD_CACHE_SECONDS)
    return data
