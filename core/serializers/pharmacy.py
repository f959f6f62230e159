"""Input serializers for inventory, supply, patient orders and invoices."""
from rest_framework import serializers

from core.models import DistributorOrder, Order, PharmacyInvoice


class InventoryItemSerializer(serializers.Serializer):
    pharmacyId = serializers.IntegerField()
    medicineName = serializers.CharField(max_length=255)
    brandName = serializers.CharField(max_length=255, required=False, allow_blank=True)
    composition = serializers.CharField(max_length=255, required=False, allow_blank=True)
    batchNumber = serializers.CharField(max_length=100)
    expiryDate = serializers.DateField()
    quantity = serializers.IntegerField(min_value=0)
    threshold = serializers.IntegerField(min_value=0, default=10)
    distributorId = serializers.IntegerField(required=False, allow_null=True)
    purchasePrice = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=0)
    sellingPrice = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=0)
    rackNumber = serializers.CharField(max_length=30, required=False, allow_blank=True)


class InventoryUpdateSerializer(InventoryItemSerializer):
    pharmacyId = serializers.IntegerField(required=False)
    medicineName = serializers.CharField(max_length=255, required=False)
    batchNumber = serializers.CharField(max_length=100, required=False)
    expiryDate = serializers.DateField(required=False)
    quantity = serializers.IntegerField(min_value=0, required=False)
    threshold = serializers.IntegerField(min_value=0, required=False)


class ConsumeSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=1)


class DistributorOrderCreateSerializer(serializers.Serializer):
    distributorId = serializers.IntegerField()
    pharmacyId = serializers.IntegerField()
    medicineName = serializers.CharField(max_length=255)
    quantity = serializers.IntegerField(min_value=1)
    inventoryItemId = serializers.IntegerField(required=False, allow_null=True)


class DistributorOrderUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(required=False, choices=[s for s, _ in DistributorOrder.STATUS_CHOICES])
    deliveryOtp = serializers.CharField(required=False, allow_blank=True, max_length=12)
    deliveryProofImageUrl = serializers.URLField(required=False, allow_blank=True, max_length=500)


class OrderItemSerializer(serializers.Serializer):
    prescriptionItemId = serializers.IntegerField(required=False, allow_null=True)
    medicineName = serializers.CharField(max_length=255)
    quantity = serializers.IntegerField(min_value=1)


class OrderCreateSerializer(serializers.Serializer):
    pharmacyId = serializers.IntegerField(error_messages={'required': 'pharmacyId is required'})
    prescriptionId = serializers.IntegerField(required=False, allow_null=True)
    items = OrderItemSerializer(many=True)
    deliveryType = serializers.ChoiceField(choices=[d for d, _ in Order.DELIVERY_CHOICES], default='PICKUP')
    address = serializers.CharField(required=False, allow_blank=True)
    deliveryCharge = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, min_value=0)

    def validate_items(self, v):
        if not v:
            raise serializers.ValidationError('At least one item is required')
        return v

    def validate(self, attrs):
        if attrs.get('deliveryType') == 'DELIVERY' and not (attrs.get('address') or '').strip():
            raise serializers.ValidationError({'address': 'address is required for delivery orders'})
        return attrs


class OrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[s for s, _ in Order.STATUS_CHOICES])
    deliveryPersonName = serializers.CharField(required=False, allow_blank=True, max_length=150)
    deliveryPersonPhone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    estimatedDeliveryTime = serializers.DateTimeField(required=False, allow_null=True)
    deliveryNotes = serializers.CharField(required=False, allow_blank=True)


class OrderCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True)


class InvoiceItemSerializer(serializers.Serializer):
    inventoryItemId = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1)
    mrp = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=0)
    discount = serializers.DecimalField(max_digits=5, decimal_places=2, required=False, min_value=0, max_value=100)
    taxRate = serializers.DecimalField(max_digits=5, decimal_places=2, required=False, min_value=0, max_value=100)


class InvoiceCreateSerializer(serializers.Serializer):
    pharmacyId = serializers.IntegerField()
    patientId = serializers.IntegerField(required=False, allow_null=True)
    orderId = serializers.IntegerField(required=False, allow_null=True)
    invoiceType = serializers.ChoiceField(choices=[t for t, _ in PharmacyInvoice.TYPE_CHOICES], default='WALK_IN')
    items = InvoiceItemSerializer(many=True)
    paymentMethod = serializers.CharField(required=False, allow_blank=True, max_length=30)
    paymentStatus = serializers.ChoiceField(choices=[s for s, _ in PharmacyInvoice.PAYMENT_STATUS_CHOICES],
                                            default='PENDING')
    paidAmount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=0)
    billDate = serializers.DateTimeField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate_items(self, v):
        if not v:
            raise serializers.ValidationError('At least one item is required')
        return v


class InvoicePaymentSerializer(serializers.Serializer):
    paymentStatus = serializers.ChoiceField(choices=[s for s, _ in PharmacyInvoice.PAYMENT_STATUS_CHOICES],
                                            required=False)
    paidAmount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=0)
    paymentMethod = serializers.CharField(required=False, allow_blank=True, max_length=30)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError('Nothing to update')
        return attrs


class DayField(serializers.DateField):
    """A date; a full ISO timestamp is accepted and cut to its day."""

    def to_internal_value(self, value):
        if isinstance(value, str):
            value = value.strip()[:10]
        return super().to_internal_value(value)


class InvoiceQuerySerializer(serializers.Serializer):
    pharmacyId = serializers.IntegerField(required=False)
    patientId = serializers.IntegerField(required=False)

    def get_fields(self):
        fields = super().get_fields()
        # `from` is a keyword
        fields['from'] = DayField(required=False)
        fields['to'] = DayField(required=False)
        return fields


class StockAuditQuerySerializer(serializers.Serializer):
    pharmacyId = serializers.IntegerField(required=False)
    startDate = DayField(required=False)
    endDate = DayField(required=False)


class PharmacyReportQuerySerializer(serializers.Serializer):
    pharmacyId = serializers.IntegerField(required=False)
    startDate = DayField(required=False)
    endDate = DayField(required=False)
    composition = serializers.CharField(required=False, max_length=255)


class InventorySearchQuerySerializer(serializers.Serializer):
    pharmacyId = serializers.IntegerField(required=False)
    query = serializers.CharField(required=False, max_length=255)
    composition = serializers.CharField(required=False, max_length=255)
    brandName = serializers.CharField(required=False, max_length=255)
    days = serializers.IntegerField(required=False, min_value=0, max_value=3650)


class StockLineSerializer(serializers.Serializer):
    inventoryItemId = serializers.IntegerField()
    manualBills = serializers.IntegerField(required=False, min_value=0)
    actualClosingStock = serializers.IntegerField(required=False, min_value=0)
    varianceReason = serializers.CharField(required=False, allow_blank=True, max_length=255)


class DailyAuditSerializer(serializers.Serializer):
    pharmacyId = serializers.IntegerField()
    auditDate = serializers.DateField(required=False)


class StockLinesSerializer(serializers.Serializer):
    items = StockLineSerializer(many=True)


class AuditReviewSerializer(serializers.Serializer):
    reviewedNotes = serializers.CharField(required=False, allow_blank=True)
