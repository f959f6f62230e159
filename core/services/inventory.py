"""
Stock movements and the low-stock auto-restock rule.

Every decrement goes through :func:`decrement_stock`, which locks the
row, clamps the quantity at zero and then runs :func:`check_low_stock`.
When the item falls to or below its threshold and has a distributor,
a PENDING replenishment order for ``threshold * multiplier`` units is
created, unless an open auto order for the same item already exists.
"""
from __future__ import annotations

import logging
from typing import Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction

from core.exceptions import ApiError
from core.models import DistributorOrder, InventoryItem
from core.services.activity import create_activity
from core.services.notifications import notify_super_admins, notify_users
from core.services.realtime import emit_to_admin, emit_to_role

logger = logging.getLogger(__name__)

User = get_user_model()


def serialize_distributor_order(o: DistributorOrder) -> dict:
    return {
        'id': o.id,
        'distributorId': o.distributor_id,
        'pharmacyId': o.pharmacy_id,
        'inventoryItemId': o.inventory_item_id,
        'medicineName': o.medicine_name,
        'quantity': o.quantity,
        'status': o.status,
        'deliveryOtp': o.delivery_otp or None,
        'deliveryProofImageUrl': o.delivery_proof_image_url or None,
        'autoCreated': o.auto_created,
        'createdAt': o.created_at.isoformat() if o.created_at else None,
        'updatedAt': o.updated_at.isoformat() if o.updated_at else None,
    }


def check_low_stock(item: InventoryItem) -> Optional[DistributorOrder]:
    """Create a replenishment order when ``item`` is at or below threshold."""
    if item.quantity > item.threshold or not item.distributor_id:
        return None
    already_open = DistributorOrder.objects.filter(
        inventory_item=item, auto_created=True, status__in=DistributorOrder.OPEN_STATUSES
    ).exists()
    if already_open:
        return None

    qty = item.threshold * settings.LOW_STOCK_RESTOCK_MULTIPLIER
    order = DistributorOrder.objects.create(
        distributor_id=item.distributor_id,
        pharmacy_id=item.pharmacy_id,
        inventory_item=item,
        medicine_name=item.medicine_name,
        quantity=qty,
        status='PENDING',
        auto_created=True,
    )
    create_activity(
        'INVENTORY_LOW_STOCK',
        'Low stock alert',
        f"{item.medicine_name} is low ({item.quantity} left, threshold {item.threshold}); "
        f"restock order {order.id} for {qty} units created",
        pharmacy_id=item.pharmacy_id,
        distributor_id=item.distributor_id,
        metadata={'inventoryItemId': item.id, 'distributorOrderId': order.id, 'quantity': item.quantity},
    )
    title = 'Restock requested'
    message = f"{item.medicine_name}: {qty} units requested for pharmacy #{item.pharmacy_id}"
    meta = {'distributorOrderId': order.id, 'inventoryItemId': item.id}
    notify_users(User.objects.filter(distributor_id=item.distributor_id, role=User.DISTRIBUTOR, is_active=True),
                 title, message, metadata=meta)
    notify_super_admins(title, message, metadata=meta)

    payload = serialize_distributor_order(order)
    emit_to_role(User.DISTRIBUTOR, 'distributorOrder:created', payload)
    emit_to_admin('distributorOrder:created', payload)
    logger.info("auto-restock order %s created for inventory item %s", order.id, item.id)
    return order


@transaction.atomic
def decrement_stock(item_id: int, quantity: int, *, strict: bool = False) -> tuple[InventoryItem, Optional[DistributorOrder]]:
    """Take ``quantity`` units out of stock.

    With ``strict`` the call refuses to go below zero (used for sales);
    otherwise the quantity is clamped at zero (used for consumption).
    """
    if quantity <= 0:
        raise ApiError('quantity must be a positive integer')
    item = InventoryItem.objects.select_for_update().filter(pk=item_id).first()
    if item is None:
        raise ApiError('Inventory item not found', 404)
    if strict and item.quantity < quantity:
        raise ApiError(
            f"Insufficient stock for {item.medicine_name}. Available: {item.quantity}, Requested: {quantity}"
        )
    item.quantity = max(0, item.quantity - quantity)
    item.save(update_fields=['quantity', 'updated_at'])
    restock = check_low_stock(item)
    return item, restock


@transaction.atomic
def receive_delivery(order: DistributorOrder) -> Optional[InventoryItem]:
    """Add a delivered distributor order back into its inventory item."""
    if not order.inventory_item_id:
        return None
    item = InventoryItem.objects.select_for_update().filter(pk=order.inventory_item_id).first()
    if item is None:
        return None
    item.quantity += order.quantity
    item.save(update_fields=['quantity', 'updated_at'])
    return item
