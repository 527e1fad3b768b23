from rest_framework import serializers


class EnableSerializer(serializers.Serializer):
    secret = serializers.CharField(max_length=64)
    code = serializers.CharField(max_length=16, required=False)


class DisableSerializer(serializers.Serializer):
    user_id = serializers.UUIDField(required=False)


class VerifySerializer(serializers.Serializer):
    code = serializers.CharField(max_length=32)
    is_recovery_code = serializers.BooleanField(default=False)


class RecoveryCodesSerializer(serializers.Serializer):
    count = serializers.IntegerField(required=False, min_value=1, max_value=20)
