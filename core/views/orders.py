"""
Patient medicine orders.
"""
from __future__ import annotations

import bleach
from django.db import transaction
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from core.models import Order, OrderItem, Pharmacy, Prescription, PrescriptionItem, User
from core.permissions import IsPharmacyRole, IsPatientRole, IsSuperAdmin, can_access_pharmacy
from core.serializers.pharmacy import OrderCancelSerializer, OrderCreateSerializer, OrderStatusSerializer
from core.services import orders as svc
from core.services.activity import create_activity
from core.views.common import created, fail, ok


def _load(pk):
    return Order.objects.prefetch_related('items').filter(pk=pk).first()


def _can_view(user, order: Order) -> bool:
    if user.role == User.SUPER_ADMIN:
        return True
    if user.role == User.PATIENT:
        return order.patient_id == user.id
    if user.role == User.PHARMACY_STAFF:
        return can_access_pharmacy(user, order.pharmacy_id)
    return False


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def order_collection(request):
    if request.method == 'POST':
        return _create(request)
    user = request.user
    qs = Order.objects.prefetch_related('items').order_by('-created_at')
    if user.role == User.PATIENT:
        rows = qs.filter(patient=user)[:50]
    elif user.role in (User.SUPER_ADMIN, User.PHARMACY_STAFF):
        qp = request.query_params
        if qp.get('patientId'):
            qs = qs.filter(patient_id=qp['patientId'])
        if user.role == User.PHARMACY_STAFF:
            qs = qs.filter(pharmacy_id=user.pharmacy_id) if user.pharmacy_id else qs.none()
        elif qp.get('pharmacyId'):
            qs = qs.filter(pharmacy_id=qp['pharmacyId'])
        if qp.get('status'):
            qs = qs.filter(status=qp['status'].upper())
        rows = qs[:100]
    else:
        rows = []
    return ok([svc.serialize_order(o) for o in rows])


def _create(request):
    if request.user.role != User.PATIENT:
        return fail('Only patients can place orders', status.HTTP_403_FORBIDDEN)
    s = OrderCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    if not Pharmacy.objects.filter(pk=vd['pharmacyId'], is_active=True).exists():
        return fail('Pharmacy not found', status.HTTP_404_NOT_FOUND)
    prescription_id = vd.get('prescriptionId')
    if prescription_id and not Prescription.objects.filter(pk=prescription_id, patient=request.user).exists():
        return fail('Prescription not found', status.HTTP_404_NOT_FOUND)

    with transaction.atomic():
        order = Order.objects.create(
            patient=request.user,
            pharmacy_id=vd['pharmacyId'],
            prescription_id=prescription_id,
            delivery_type=vd['deliveryType'],
            address=bleach.clean(vd.get('address') or '', strip=True),
            delivery_charge=vd.get('deliveryCharge') or 0,
        )
        for line in vd['items']:
            pi_id = line.get('prescriptionItemId')
            if pi_id and not PrescriptionItem.objects.filter(pk=pi_id, prescription__patient=request.user).exists():
                pi_id = None
            OrderItem.objects.create(order=order, prescription_item_id=pi_id,
                                     medicine_name=line['medicineName'], quantity=line['quantity'])
        create_activity('ORDER_CREATED', 'New order placed',
                        f"Order {order.short_id} placed by {request.user.display_name}",
                        user_id=request.user.id, patient_id=request.user.id, pharmacy_id=order.pharmacy_id,
                        metadata={'orderId': order.id, 'itemCount': len(vd['items'])})
    order = _load(order.pk)
    svc.emit_created(order)
    return created(svc.serialize_order(order))


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPatientRole])
def my_orders(request):
    qs = Order.objects.prefetch_related('items').filter(patient=request.user).order_by('-created_at')[:50]
    return ok([svc.serialize_order(o) for o in qs])


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPharmacyRole])
def orders_by_pharmacy(request, pharmacy_id):
    if not can_access_pharmacy(request.user, pharmacy_id):
        return fail('Not allowed for this pharmacy', status.HTTP_403_FORBIDDEN)
    qs = Order.objects.prefetch_related('items').filter(pharmacy_id=pharmacy_id).order_by('-created_at')[:100]
    return ok([svc.serialize_order(o) for o in qs])


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def order_detail(request, pk):
    order = _load(pk)
    if not order or not _can_view(request.user, order):
        return fail('Order not found', status.HTTP_404_NOT_FOUND)
    return ok(svc.serialize_order(order))


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, IsSuperAdmin])
def order_admin_step(request, pk, step):
    if step not in svc.ADMIN_STEPS:
        return fail('Unknown step', status.HTTP_404_NOT_FOUND)
    order = _load(pk)
    if not order:
        return fail('Order not found', status.HTTP_404_NOT_FOUND)
    order = svc.admin_step(order, step, actor=request.user)
    return ok(svc.serialize_order(_load(order.pk)))


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, IsPharmacyRole])
def order_status(request, pk):
    order = _load(pk)
    if not order:
        return fail('Order not found', status.HTTP_404_NOT_FOUND)
    if not can_access_pharmacy(request.user, order.pharmacy_id):
        return fail('Not allowed for this pharmacy', status.HTTP_403_FORBIDDEN)
    s = OrderStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = dict(s.validated_data)
    order = svc.pharmacy_update(order, vd.pop('status'), actor=request.user, delivery=vd)
    return ok(svc.serialize_order(_load(order.pk)))


@api_view(['PATCH'])
@permission_classes([IsAuthenticated])
def order_cancel(request, pk):
    order = _load(pk)
    if not order:
        return fail('Order not found', status.HTTP_404_NOT_FOUND)
    s = OrderCancelSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    reason = bleach.clean(s.validated_data.get('reason') or '', strip=True)
    order = svc.cancel(order, actor=request.user, reason=reason)
    return ok(svc.serialize_order(_load(order.pk)))
