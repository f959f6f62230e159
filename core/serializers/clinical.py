"""Input serializers for appointments, conversations, prescriptions and records."""
from django.utils import timezone
from rest_framework import serializers

from core.models import Appointment, ConversationMessage, Prescription, ReportRequest


class AppointmentCreateSerializer(serializers.Serializer):
    hospitalId = serializers.IntegerField()
    doctorId = serializers.IntegerField()
    patientId = serializers.IntegerField()
    scheduledAt = serializers.DateTimeField()
    reason = serializers.CharField(required=False, allow_blank=True)
    channel = serializers.ChoiceField(choices=[c for c, _ in Appointment.CHANNEL_CHOICES],
                                      default=Appointment.CHANNEL_PHYSICAL)

    def validate_scheduledAt(self, v):
        if v <= timezone.now():
            raise serializers.ValidationError('scheduledAt must be in the future')
        return v


class AppointmentStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[s for s, _ in Appointment.STATUS_CHOICES])


class RescheduleSerializer(serializers.Serializer):
    scheduledAt = serializers.DateTimeField()

    def validate_scheduledAt(self, v):
        if v <= timezone.now():
            raise serializers.ValidationError('scheduledAt must be in the future')
        return v


class CancelSerializer(serializers.Serializer):
    cancellationReason = serializers.CharField()


class ConversationCreateSerializer(serializers.Serializer):
    appointmentId = serializers.IntegerField()


class MessageSerializer(serializers.Serializer):
    content = serializers.CharField(max_length=5000)
    messageType = serializers.ChoiceField(choices=[t for t, _ in ConversationMessage.TYPE_CHOICES], default='TEXT')
    metadata = serializers.DictField(required=False)


class ConversationUpdateSerializer(serializers.Serializer):
    summary = serializers.CharField(required=False, allow_blank=True)
    prescriptionId = serializers.IntegerField(required=False, allow_null=True)
    isActive = serializers.BooleanField(required=False)


class PrescriptionItemSerializer(serializers.Serializer):
    medicineName = serializers.CharField(max_length=255)
    dosage = serializers.CharField(max_length=100)
    frequency = serializers.CharField(max_length=100)
    duration = serializers.CharField(max_length=100)
    notes = serializers.CharField(required=False, allow_blank=True)


class PrescriptionCreateSerializer(serializers.Serializer):
    appointmentId = serializers.IntegerField(required=False, allow_null=True)
    patientId = serializers.IntegerField(required=False)
    doctorId = serializers.IntegerField(required=False)
    pharmacyId = serializers.IntegerField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    items = PrescriptionItemSerializer(many=True)

    def validate_items(self, v):
        if not v:
            raise serializers.ValidationError('At least one item is required')
        return v

    def validate(self, attrs):
        if not attrs.get('appointmentId') and not attrs.get('patientId'):
            raise serializers.ValidationError({'patientId': 'patientId or appointmentId is required'})
        return attrs


class VoicePrescriptionSerializer(serializers.Serializer):
    voiceText = serializers.CharField()
    appointmentId = serializers.IntegerField(required=False, allow_null=True)
    patientId = serializers.IntegerField(required=False)
    doctorId = serializers.IntegerField(required=False)
    pharmacyId = serializers.IntegerField(required=False, allow_null=True)

    def validate(self, attrs):
        if not attrs.get('appointmentId') and not attrs.get('patientId'):
            raise serializers.ValidationError({'patientId': 'patientId or appointmentId is required'})
        return attrs


class PrescriptionUpdateSerializer(serializers.Serializer):
    items = PrescriptionItemSerializer(many=True, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    pharmacyId = serializers.IntegerField(required=False, allow_null=True)
    reportStatus = serializers.ChoiceField(required=False, choices=[s for s, _ in Prescription.REPORT_STATUS_CHOICES])

    def validate_items(self, v):
        if not v:
            raise serializers.ValidationError('At least one item is required')
        return v


RECORD_LIST_FIELDS = {
    'diagnosis': 'diagnosis',
    'allergies': 'allergies',
    'currentMedications': 'current_medications',
    'pastSurgeries': 'past_surgeries',
    'hospitalizationHistory': 'hospitalization_history',
    'labReports': 'lab_reports',
}


class PatientRecordUpdateSerializer(serializers.Serializer):
    diagnosis = serializers.ListField(required=False)
    allergies = serializers.ListField(required=False)
    currentMedications = serializers.ListField(required=False)
    pastSurgeries = serializers.ListField(required=False)
    hospitalizationHistory = serializers.ListField(required=False)
    labReports = serializers.ListField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)


class ReportRequestCreateSerializer(serializers.Serializer):
    patientId = serializers.IntegerField()
    appointmentId = serializers.IntegerField(required=False, allow_null=True)
    title = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True)


class ReportReviewSerializer(serializers.Serializer):
    reviewNotes = serializers.CharField(required=False, allow_blank=True)


class ReportStatusQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(required=False, choices=[s for s, _ in ReportRequest.STATUS_CHOICES])
