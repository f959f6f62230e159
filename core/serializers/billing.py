"""Input serializers for finance, pricing, templates and notifications."""
from rest_framework import serializers

from core.models import FinanceEntry, Notification, PricingRule, Template


class FinanceEntrySerializer(serializers.Serializer):
    type = serializers.ChoiceField(choices=[t for t, _ in FinanceEntry.TYPE_CHOICES], default='OTHER')
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    description = serializers.CharField(required=False, allow_blank=True, max_length=500)
    occurredAt = serializers.DateTimeField(required=False)
    hospitalId = serializers.IntegerField(required=False, allow_null=True)
    pharmacyId = serializers.IntegerField(required=False, allow_null=True)
    distributorId = serializers.IntegerField(required=False, allow_null=True)
    doctorId = serializers.IntegerField(required=False, allow_null=True)
    patientId = serializers.IntegerField(required=False, allow_null=True)
    metadata = serializers.DictField(required=False)


class FinanceQuerySerializer(serializers.Serializer):
    to = serializers.DateTimeField(required=False)
    hospitalId = serializers.IntegerField(required=False)
    pharmacyId = serializers.IntegerField(required=False)
    type = serializers.ChoiceField(required=False, choices=[t for t, _ in FinanceEntry.TYPE_CHOICES])
    id = serializers.IntegerField(required=False)
    period = serializers.ChoiceField(required=False, choices=['DAILY', 'MONTHLY', 'YEARLY'], default='MONTHLY')

    def get_fields(self):
        fields = super().get_fields()
        # `from` is a Python keyword
        fields['from'] = serializers.DateTimeField(required=False)
        return fields


class PricingRuleSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    serviceType = serializers.ChoiceField(choices=[s for s, _ in PricingRule.SERVICE_CHOICES])
    description = serializers.CharField(required=False, allow_blank=True)
    basePrice = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    discountPercent = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=0, max_value=100,
                                               required=False)
    discountAmount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    hospitalId = serializers.IntegerField(required=False, allow_null=True)
    pharmacyId = serializers.IntegerField(required=False, allow_null=True)
    isActive = serializers.BooleanField(required=False)
    validFrom = serializers.DateTimeField(required=False, allow_null=True)
    validTo = serializers.DateTimeField(required=False, allow_null=True)

    def validate(self, attrs):
        start = attrs.get('validFrom', getattr(self.instance, 'valid_from', None))
        end = attrs.get('validTo', getattr(self.instance, 'valid_to', None))
        if start and end and end < start:
            raise serializers.ValidationError({'validTo': 'validTo must not be before validFrom'})
        return attrs


class TemplateVariableSerializer(serializers.Serializer):
    key = serializers.RegexField(r'^[A-Za-z_][\w.-]*$', max_length=100)
    label = serializers.CharField(required=False, allow_blank=True, max_length=255)
    defaultValue = serializers.CharField(required=False, allow_blank=True)
    required = serializers.BooleanField(default=False)


class TemplateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    type = serializers.ChoiceField(choices=[t for t, _ in Template.TYPE_CHOICES])
    hospitalId = serializers.IntegerField(required=False, allow_null=True)
    content = serializers.CharField()
    variables = TemplateVariableSerializer(many=True, required=False)
    headerImageUrl = serializers.URLField(required=False, allow_blank=True, max_length=500)
    footerText = serializers.CharField(required=False, allow_blank=True)
    isActive = serializers.BooleanField(required=False)
    isDefault = serializers.BooleanField(required=False)


class RenderSerializer(serializers.Serializer):
    data = serializers.DictField(required=False, default=dict)


class NotificationCreateSerializer(serializers.Serializer):
    userId = serializers.IntegerField()
    title = serializers.CharField(max_length=255)
    message = serializers.CharField()
    channel = serializers.ChoiceField(choices=[c for c, _ in Notification.CHANNEL_CHOICES], default='PUSH')
    metadata = serializers.DictField(required=False)


class SendToPatientSerializer(serializers.Serializer):
    patientId = serializers.IntegerField()
    title = serializers.CharField(max_length=255)
    message = serializers.CharField()
    channel = serializers.ChoiceField(choices=[c for c, _ in Notification.CHANNEL_CHOICES], default='PUSH')
    metadata = serializers.DictField(required=False)


class SendReportBillSerializer(serializers.Serializer):
    patientId = serializers.IntegerField()
    kind = serializers.ChoiceField(choices=['MEDICAL_BILL', 'REPORT', 'DOCUMENT'])
    message = serializers.CharField(required=False, allow_blank=True)
    documentUrl = serializers.URLField(required=False, allow_blank=True)
    channel = serializers.ChoiceField(choices=[c for c, _ in Notification.CHANNEL_CHOICES], default='PUSH')
    metadata = serializers.DictField(required=False)
