from rest_framework import serializers

from apps.common.fields import AmountField
from apps.common.pagination import PageQuerySerializer
from apps.debtors.models import Debtor, DebtorImage, DebtorPhone
from apps.debtors.services import SORT_FIELDS
from apps.debts.serializers import DebtSerializer


class DebtorPhoneSerializer(serializers.ModelSerializer):
    class Meta:
        model = DebtorPhone
        fields = ["id", "phone_number"]
        read_only_fields = fields


class DebtorImageSerializer(serializers.ModelSerializer):
    class Meta:
        model = DebtorImage
        fields = ["id", "name"]
        read_only_fields = fields


class DebtorSerializer(serializers.ModelSerializer):
    phones = DebtorPhoneSerializer(many=True, read_only=True)
    images = DebtorImageSerializer(many=True, read_only=True)

    class Meta:
        model = Debtor
        fields = ["id", "seller", "name", "address", "note", "star", "created_at", "updated_at", "phones", "images"]
        read_only_fields = fields


class DebtorListSerializer(serializers.ModelSerializer):
    phones = DebtorPhoneSerializer(many=True, read_only=True)
    total_debt = AmountField(read_only=True)

    class Meta:
        model = Debtor
        fields = ["id", "seller", "name", "address", "note", "star", "created_at", "updated_at", "phones", "total_debt"]
        read_only_fields = fields


class DebtorDetailSerializer(serializers.ModelSerializer):
    seller_username = serializers.CharField(source="seller.username", read_only=True)
    phones = DebtorPhoneSerializer(many=True, read_only=True)
    images = DebtorImageSerializer(many=True, read_only=True)
    debts = DebtSerializer(many=True, read_only=True)
    total_debt = AmountField(read_only=True)
    total_amount = AmountField(read_only=True)

    class Meta:
        model = Debtor
        fields = [
            "id",
            "seller",
            "seller_username",
            "name",
            "address",
            "note",
            "star",
            "created_at",
            "updated_at",
            "phones",
            "images",
            "debts",
            "total_debt",
            "total_amount",
        ]
        read_only_fields = fields


class DebtorWriteSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    address = serializers.CharField(max_length=255)
    note = serializers.CharField(required=False, allow_blank=True)
    phones = serializers.ListField(child=serializers.CharField(max_length=50), required=False)
    images = serializers.ListField(child=serializers.CharField(max_length=255), required=False)

    def validate_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("name is required")
        return value

    def validate_address(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("address is required")
        return value


class DebtorFilterSerializer(PageQuerySerializer):
    sort_by = serializers.ChoiceField(choices=SORT_FIELDS, required=False, default="created_at")
    sort_order = serializers.ChoiceField(choices=("asc", "desc"), required=False, default="desc")
