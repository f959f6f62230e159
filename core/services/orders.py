"""
Patient order workflow.

Admin steps move an order from PENDING to SENT_TO_PHARMACY; the
pharmacy then accepts, packs, dispatches and delivers it.  Every move
is checked against ``TRANSITIONS``, recorded as an activity and pushed
to the patient and the admin room.
"""
from __future__ import annotations

from django.db import transaction
from django.utils import timezone

from core.exceptions import ApiError
from core.models import Order, User
from core.services.activity import create_activity
from core.services.realtime import emit_to_admin, emit_to_role, emit_to_user

TRANSITIONS: dict[str, set[str]] = {
    Order.STATUS_PENDING: {Order.STATUS_ORDER_RECEIVED, Order.STATUS_CANCELLED},
    Order.STATUS_ORDER_RECEIVED: {Order.STATUS_MEDICINE_RECEIVED, Order.STATUS_CANCELLED},
    Order.STATUS_MEDICINE_RECEIVED: {Order.STATUS_SENT_TO_PHARMACY, Order.STATUS_CANCELLED},
    Order.STATUS_SENT_TO_PHARMACY: {Order.STATUS_ACCEPTED, Order.STATUS_CANCELLED},
    Order.STATUS_ACCEPTED: {Order.STATUS_PACKED, Order.STATUS_OUT_FOR_DELIVERY, Order.STATUS_DELIVERED,
                            Order.STATUS_CANCELLED},
    Order.STATUS_PACKED: {Order.STATUS_OUT_FOR_DELIVERY, Order.STATUS_DELIVERED, Order.STATUS_CANCELLED},
    Order.STATUS_OUT_FOR_DELIVERY: {Order.STATUS_DELIVERED},
    Order.STATUS_DELIVERED: set(),
    Order.STATUS_CANCELLED: set(),
}

PHARMACY_STATUSES = (Order.STATUS_ACCEPTED, Order.STATUS_PACKED, Order.STATUS_OUT_FOR_DELIVERY, Order.STATUS_DELIVERED)

# admin step -> (required current status, new status, timestamp field)
ADMIN_STEPS = {
    'admin-accept': (Order.STATUS_PENDING, Order.STATUS_ORDER_RECEIVED, 'admin_approved_at'),
    'admin-receive-medicine': (Order.STATUS_ORDER_RECEIVED, Order.STATUS_MEDICINE_RECEIVED, 'medicine_received_at'),
    'admin-send-to-pharmacy': (Order.STATUS_MEDICINE_RECEIVED, Order.STATUS_SENT_TO_PHARMACY, 'sent_to_pharmacy_at'),
}


def _ts(value):
    return value.isoformat() if value else None


def serialize_order(o: Order) -> dict:
    return {
        'id': o.id,
        'shortId': o.short_id,
        'patientId': o.patient_id,
        'pharmacyId': o.pharmacy_id,
        'prescriptionId': o.prescription_id,
        'status': o.status,
        'deliveryType': o.delivery_type,
        'address': o.address,
        'deliveryCharge': float(o.delivery_charge or 0),
        'deliveryPersonName': o.delivery_person_name or None,
        'deliveryPersonPhone': o.delivery_person_phone or None,
        'estimatedDeliveryTime': _ts(o.estimated_delivery_time),
        'deliveryNotes': o.delivery_notes,
        'cancellationReason': o.cancellation_reason or None,
        'adminApprovedAt': _ts(o.admin_approved_at),
        'medicineReceivedAt': _ts(o.medicine_received_at),
        'sentToPharmacyAt': _ts(o.sent_to_pharmacy_at),
        'deliveredAt': _ts(o.delivered_at),
        'cancelledAt': _ts(o.cancelled_at),
        'items': [
            {'id': i.id, 'prescriptionItemId': i.prescription_item_id, 'medicineName': i.medicine_name,
             'quantity': i.quantity}
            for i in o.items.all()
        ],
        'createdAt': _ts(o.created_at),
        'updatedAt': _ts(o.updated_at),
    }


def can_transition(current: str, new: str) -> bool:
    return new in TRANSITIONS.get(current, set())


def emit_created(order: Order) -> None:
    payload = serialize_order(order)
    emit_to_admin('order:created', payload)
    emit_to_user(order.patient_id, 'order:created', payload)


def _emit_status(order: Order) -> None:
    payload = serialize_order(order)
    emit_to_user(order.patient_id, 'order:statusUpdated', payload)
    emit_to_admin('order:statusUpdated', payload)
    if order.status == Order.STATUS_SENT_TO_PHARMACY:
        emit_to_role(User.PHARMACY_STAFF, 'order:statusUpdated', payload)


@transaction.atomic
def transition(order: Order, new_status: str, *, actor: User, fields: dict | None = None,
               description: str = '') -> Order:
    order = Order.objects.select_for_update().get(pk=order.pk)
    if not can_transition(order.status, new_status):
        raise ApiError(f"Cannot move order from {order.status} to {new_status}")
    order.status = new_status
    for k, v in (fields or {}).items():
        setattr(order, k, v)
    order.save()

    create_activity(
        'ORDER_STATUS_UPDATED',
        f"Order {order.short_id} {new_status.replace('_', ' ').lower()}",
        description or f"Order {order.short_id} status changed to {new_status}",
        user_id=actor.id,
        patient_id=order.patient_id,
        pharmacy_id=order.pharmacy_id,
        metadata={'orderId': order.id, 'status': new_status},
    )
    if new_status == Order.STATUS_CANCELLED:
        payload = serialize_order(order)
        emit_to_user(order.patient_id, 'order:cancelled', payload)
        emit_to_admin('order:cancelled', payload)
    else:
        _emit_status(order)
    return order


def admin_step(order: Order, step: str, *, actor: User) -> Order:
    required, new_status, ts_field = ADMIN_STEPS[step]
    if order.status != required:
        raise ApiError(f"Order must be {required}. Current status: {order.status}")
    return transition(order, new_status, actor=actor, fields={ts_field: timezone.now()})


def pharmacy_update(order: Order, new_status: str, *, actor: User, delivery: dict) -> Order:
    if new_status not in PHARMACY_STATUSES:
        raise ApiError(f"status must be one of {', '.join(PHARMACY_STATUSES)}")
    if new_status == Order.STATUS_ACCEPTED and order.status != Order.STATUS_SENT_TO_PHARMACY:
        raise ApiError(f"Order must be SENT_TO_PHARMACY to accept. Current status: {order.status}")
    fields: dict = {}
    description = ''
    if new_status == Order.STATUS_OUT_FOR_DELIVERY:
        fields = {
            'delivery_person_name': delivery.get('deliveryPersonName') or '',
            'delivery_person_phone': delivery.get('deliveryPersonPhone') or '',
            'estimated_delivery_time': delivery.get('estimatedDeliveryTime'),
            'delivery_notes': delivery.get('deliveryNotes') or '',
        }
        if fields['delivery_person_name']:
            description = f"Order {order.short_id} out for delivery with {fields['delivery_person_name']}"
    elif new_status == Order.STATUS_DELIVERED:
        fields = {'delivered_at': timezone.now()}
    return transition(order, new_status, actor=actor, fields=fields, description=description)


def cancel(order: Order, *, actor: User, reason: str = '') -> Order:
    if actor.role != User.SUPER_ADMIN and order.patient_id != actor.id:
        raise ApiError('You can only cancel your own orders', 403)
    if not can_transition(order.status, Order.STATUS_CANCELLED):
        raise ApiError(f"Cannot cancel order. Current status: {order.status}")
    return transition(order, Order.STATUS_CANCELLED, actor=actor,
                      fields={'cancellation_reason': reason or '', 'cancelled_at': timezone.now()})
