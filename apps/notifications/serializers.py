from rest_framework import serializers

from apps.common.pagination import PageQuerySerializer
from apps.debtors.serializers import DebtorPhoneSerializer
from apps.notifications.models import Notification
from apps.notifications.services import MODE_ALL, MODE_SENDED


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = ["id", "debtor", "seller", "message", "is_sended", "created_at", "updated_at"]
        read_only_fields = fields


class NotificationCreateSerializer(serializers.Serializer):
    debtor = serializers.UUIDField()
    message = serializers.CharField()

    def validate_message(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("message is required")
        return value


class NotificationUpdateSerializer(serializers.Serializer):
    message = serializers.CharField()

    def validate_message(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("message is required")
        return value


class NotificationQuerySerializer(PageQuerySerializer):
    debtor = serializers.UUIDField(required=False)
    get = serializers.ChoiceField(choices=(MODE_ALL, MODE_SENDED), required=False, default=MODE_ALL)


class DebtorNotificationSummarySerializer(serializers.Serializer):
    id = serializers.UUIDField(read_only=True)
    name = serializers.CharField(read_only=True)
    address = serializers.CharField(read_only=True)
    star = serializers.BooleanField(read_only=True)
    created_at = serializers.DateTimeField(read_only=True)
    phones = DebtorPhoneSerializer(many=True, read_only=True)
    latest_notification = NotificationSerializer(read_only=True, allow_null=True)
