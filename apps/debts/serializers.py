from rest_framework import serializers

from apps.common.fields import AmountField
from apps.common.pagination import PageQuerySerializer
from apps.debts.models import Debt, DebtImage, Payment, PaymentHistory


class PaymentSerializer(serializers.ModelSerializer):
    amount = AmountField(read_only=True)

    class Meta:
        model = Payment
        fields = ["id", "debt", "amount", "date", "is_active", "created_at", "updated_at"]
        read_only_fields = fields


class DebtImageSerializer(serializers.ModelSerializer):
    class Meta:
        model = DebtImage
        fields = ["id", "name", "created_at"]
        read_only_fields = fields


class DebtSerializer(serializers.ModelSerializer):
    payments = PaymentSerializer(many=True, read_only=True)
    images = DebtImageSerializer(many=True, read_only=True)
    total_payments = AmountField(read_only=True)
    next_payment = serializers.SerializerMethodField()

    class Meta:
        model = Debt
        fields = [
            "id",
            "debtor",
            "title",
            "note",
            "created_at",
            "updated_at",
            "payments",
            "images",
            "total_payments",
            "next_payment",
        ]
        read_only_fields = fields

    def get_next_payment(self, obj):
        payment = getattr(obj, "next_payment", None)
        if payment is None:
            return None
        return PaymentSerializer(payment).data


class PaymentScheduleItemSerializer(serializers.Serializer):
    amount = serializers.IntegerField(min_value=1)
    date = serializers.DateField()


class DebtCreateSerializer(serializers.Serializer):
    debtor = serializers.UUIDField()
    title = serializers.CharField(max_length=255)
    note = serializers.CharField(required=False, allow_blank=True, default="")
    payments = PaymentScheduleItemSerializer(many=True)
    images = serializers.ListField(child=serializers.CharField(max_length=255), required=False, default=list)

    def validate_title(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("title is required")
        return value

    def validate_payments(self, value):
        if not value:
            raise serializers.ValidationError("At least one payment is required.")
        return value


class DebtUpdateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255, required=False)
    note = serializers.CharField(required=False, allow_blank=True)
    images = serializers.ListField(child=serializers.CharField(max_length=255), required=False)

    def validate_title(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("title is required")
        return value


class PaymentCreateSerializer(serializers.Serializer):
    debt = serializers.UUIDField()
    amount = serializers.IntegerField(min_value=1)
    date = serializers.DateField()


class PaymentUpdateSerializer(serializers.Serializer):
    amount = serializers.IntegerField(min_value=1, required=False)
    date = serializers.DateField(required=False)


class DebtQuerySerializer(PageQuerySerializer):
    debtor = serializers.UUIDField(required=False)


class PaymentHistorySerializer(serializers.ModelSerializer):
    amount = AmountField(read_only=True)
    actor_username = serializers.CharField(source="actor.username", read_only=True, default=None)

    class Meta:
        model = PaymentHistory
        fields = ["id", "debt", "payment", "action", "amount", "date", "actor", "actor_username", "created_at"]
        read_only_fields = fields
