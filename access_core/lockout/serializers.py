from django.utils import timezone
from rest_framework import serializers

from .models import AccountLock, LoginAttempt


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, trim_whitespace=False)


class AttemptSerializer(serializers.Serializer):
    email = serializers.EmailField()
    success = serializers.BooleanField()


class LoginAttemptSerializer(serializers.ModelSerializer):
    class Meta:
        model = LoginAttempt
        fields = [
            'id', 'email', 'success', 'attempt_type', 'failure_reason',
            'ip_address', 'user_agent', 'created_at',
        ]
        read_only_fields = fields


class AccountLockSerializer(serializers.ModelSerializer):
    state = serializers.SerializerMethodField()
    seconds_remaining = serializers.SerializerMethodField()
    unlocked_by = serializers.EmailField(source='unlocked_by.email', read_only=True, default=None)

    class Meta:
        model = AccountLock
        fields = [
            'id', 'user', 'email', 'scope', 'state', 'reason', 'locked_at',
            'locked_until', 'seconds_remaining', 'unlocked_at', 'unlocked_by',
        ]
        read_only_fields = fields

    def get_state(self, obj):
        return obj.state_at(self.context.get('now') or timezone.now())

    def get_seconds_remaining(self, obj):
        return obj.seconds_remaining(self.context.get('now'))
