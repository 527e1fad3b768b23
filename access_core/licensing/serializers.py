from rest_framework import serializers

from .models import License


class LicenseSerializer(serializers.ModelSerializer):
    company_name = serializers.CharField(source='company.name', read_only=True)

    class Meta:
        model = License
        fields = [
            'id', 'company', 'company_name', 'key', 'license_type', 'max_users',
            'valid_from', 'valid_until', 'is_active', 'features',
        ]
        read_only_fields = fields


class ValidateKeySerializer(serializers.Serializer):
    license_key = serializers.CharField(max_length=64)


class ActivateSerializer(serializers.Serializer):
    license_key = serializers.CharField(max_length=64)
    license_type = serializers.ChoiceField(choices=License.Type.choices, default=License.Type.STANDARD)
