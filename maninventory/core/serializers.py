from rest_framework import serializers
from django.contrib.auth.password_validation import validate_password
from .models import User, ShopSettings, AuditLog


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'first_name', 'last_name', 'phone', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['is_active', 'created_at', 'updated_at']


class UserCreateSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, validators=[validate_password])
    password_confirm = serializers.CharField(write_only=True)

    class Meta:
        model = User
        fields = ['username', 'email', 'password', 'password_confirm', 'first_name', 'last_name', 'phone']

    def validate(self, attrs):
        if attrs['password'] != attrs['password_confirm']:
            raise serializers.ValidationError({"password": "Passwords don't match"})
        return attrs

    def create(self, validated_data):
        validated_data.pop('password_confirm')
        password = validated_data.pop('password')
        user = User.objects.create(**validated_data, is_active=True)
        user.set_password(password)
        user.save()
        return user


class ShopSettingsSerializer(serializers.ModelSerializer):
    accepts_upi = serializers.BooleanField(read_only=True)

    class Meta:
        model = ShopSettings
        fields = ['id', 'shop_name', 'location', 'upi_id', 'accepts_upi', 'updated_at']
        read_only_fields = ['updated_at']

    def validate_upi_id(self, value):
        value = (value or '').strip()
        if value and '@' not in value:
            raise serializers.ValidationError('UPI ID must look like name@bank')
        return value


class AuditLogSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source='user.username', read_only=True)

    class Meta:
        model = AuditLog
        fields = ['id', 'username', 'action', 'model_name', 'object_id', 'object_name',
                  'object_reference', 'changes', 'ip_address', 'created_at']
