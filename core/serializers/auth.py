import bleach
from rest_framework import serializers

from core.models import User


class LoginSerializer(serializers.Serializer):
    email = serializers.CharField(required=False, allow_blank=True)
    username = serializers.CharField(required=False, allow_blank=True)
    password = serializers.CharField()

    def validate(self, attrs):
        login = (attrs.get('email') or attrs.get('username') or '').strip()
        if not login:
            raise serializers.ValidationError({'email': 'email is required'})
        attrs['login'] = login.lower() if '@' in login else login
        return attrs


class SignupSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=150)
    email = serializers.EmailField()
    password = serializers.CharField(min_length=8, write_only=True)
    role = serializers.ChoiceField(choices=[r for r, _ in User.ROLE_CHOICES], default=User.PATIENT)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    hospitalId = serializers.IntegerField(required=False, allow_null=True)
    pharmacyId = serializers.IntegerField(required=False, allow_null=True)
    distributorId = serializers.IntegerField(required=False, allow_null=True)

    def validate_name(self, v):
        v = bleach.clean((v or '').strip(), strip=True)
        if len(v) < 2:
            raise serializers.ValidationError('name must be at least 2 characters')
        return v

    def validate_email(self, v):
        return v.strip().lower()


class UserUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(required=False, max_length=150)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    role = serializers.ChoiceField(required=False, choices=[r for r, _ in User.ROLE_CHOICES])
    isActive = serializers.BooleanField(required=False)
    hospitalId = serializers.IntegerField(required=False, allow_null=True)
    pharmacyId = serializers.IntegerField(required=False, allow_null=True)
    distributorId = serializers.IntegerField(required=False, allow_null=True)
