"""
Replenishment orders placed with distributors.
"""
from __future__ import annotations

from django.db import transaction
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from core.models import Distributor, DistributorOrder, InventoryItem, Pharmacy, User
from core.permissions import can_access_pharmacy, has_role, missing_tenant
from core.serializers.pharmacy import DistributorOrderCreateSerializer, DistributorOrderUpdateSerializer
from core.services.activity import create_activity
from core.services.inventory import receive_delivery, serialize_distributor_order
from core.services.realtime import emit_to_admin, emit_to_role
from core.views.common import created, fail, ok

ALLOWED_MOVES = {
    'PENDING': {'ACCEPTED', 'CANCELLED'},
    'ACCEPTED': {'DISPATCHED', 'CANCELLED'},
    'DISPATCHED': {'DELIVERED'},
    'DELIVERED': set(),
    'CANCELLED': set(),
}


def _visible(user):
    qs = DistributorOrder.objects.all()
    if missing_tenant(user):
        return qs.none()
    if user.role == User.DISTRIBUTOR:
        return qs.filter(distributor_id=user.distributor_id)
    if user.role == User.PHARMACY_STAFF:
        return qs.filter(pharmacy_id=user.pharmacy_id)
    if user.role == User.SUPER_ADMIN:
        return qs
    return qs.none()


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def distributor_order_collection(request):
    if request.method == 'POST':
        if not has_role(request.user, User.SUPER_ADMIN, User.PHARMACY_STAFF):
            return fail('Pharmacy role required', status.HTTP_403_FORBIDDEN)
        s = DistributorOrderCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = s.validated_data
        if not Distributor.objects.filter(pk=vd['distributorId']).exists():
            return fail('Distributor not found', status.HTTP_404_NOT_FOUND)
        if not Pharmacy.objects.filter(pk=vd['pharmacyId']).exists():
            return fail('Pharmacy not found', status.HTTP_404_NOT_FOUND)
        if not can_access_pharmacy(request.user, vd['pharmacyId']):
            return fail('Not allowed for this pharmacy', status.HTTP_403_FORBIDDEN)
        item_id = vd.get('inventoryItemId')
        if item_id and not InventoryItem.objects.filter(pk=item_id, pharmacy_id=vd['pharmacyId']).exists():
            return fail('Inventory item not found', status.HTTP_404_NOT_FOUND)
        order = DistributorOrder.objects.create(
            distributor_id=vd['distributorId'],
            pharmacy_id=vd['pharmacyId'],
            inventory_item_id=item_id,
            medicine_name=vd['medicineName'],
            quantity=vd['quantity'],
        )
        create_activity('DISTRIBUTOR_ORDER_CREATED', 'Distributor order placed',
                        f"{order.quantity} x {order.medicine_name} ordered from distributor #{order.distributor_id}",
                        user_id=request.user.id, pharmacy_id=order.pharmacy_id,
                        distributor_id=order.distributor_id, metadata={'distributorOrderId': order.id})
        payload = serialize_distributor_order(order)
        emit_to_role(User.DISTRIBUTOR, 'distributorOrder:created', payload)
        emit_to_admin('distributorOrder:created', payload)
        return created(payload)

    qs = _visible(request.user)
    qp = request.query_params
    if qp.get('distributorId'):
        qs = qs.filter(distributor_id=qp['distributorId'])
    if qp.get('status'):
        qs = qs.filter(status=qp['status'].upper())
    return ok([serialize_distributor_order(o) for o in qs.order_by('-created_at')[:200]])


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
def distributor_order_detail(request, pk):
    order = _visible(request.user).filter(pk=pk).first()
    if not order:
        return fail('Distributor order not found', status.HTTP_404_NOT_FOUND)
    if request.method == 'GET':
        return ok(serialize_distributor_order(order))
    if not has_role(request.user, User.SUPER_ADMIN, User.DISTRIBUTOR, User.PHARMACY_STAFF):
        return fail('Not allowed to update distributor orders', status.HTTP_403_FORBIDDEN)

    s = DistributorOrderUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    new_status = vd.get('status')
    if new_status and new_status != order.status and new_status not in ALLOWED_MOVES[order.status]:
        return fail(f"Cannot move distributor order from {order.status} to {new_status}")

    with transaction.atomic():
        if 'deliveryOtp' in vd:
            order.delivery_otp = vd['deliveryOtp']
        if 'deliveryProofImageUrl' in vd:
            order.delivery_proof_image_url = vd['deliveryProofImageUrl']
        moved = bool(new_status and new_status != order.status)
        if moved:
            order.status = new_status
        order.save()
        if moved and new_status in ('DISPATCHED', 'DELIVERED'):
            create_activity(f'DISTRIBUTOR_ORDER_{new_status}', f"Distributor order {new_status.lower()}",
                            f"Order {order.id} for {order.medicine_name} {new_status.lower()}",
                            user_id=request.user.id, pharmacy_id=order.pharmacy_id,
                            distributor_id=order.distributor_id, metadata={'distributorOrderId': order.id})
        if moved and new_status == 'DELIVERED':
            receive_delivery(order)
    payload = serialize_distributor_order(order)
    emit_to_admin('distributorOrder:updated', payload)
    return ok(payload)
