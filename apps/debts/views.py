from rest_framework import status, viewsets
from rest_framework.decorators import action

from apps.common.fields import UUID_LOOKUP_REGEX
from apps.common.pagination import page_meta
from apps.common.permissions import RolePermission
from apps.common.responses import success_response
from apps.debts import services
from apps.debts.serializers import (
    DebtCreateSerializer,
    DebtQuerySerializer,
    DebtSerializer,
    DebtUpdateSerializer,
    PaymentCreateSerializer,
    PaymentHistorySerializer,
    PaymentSerializer,
    PaymentUpdateSerializer,
)


class DebtViewSet(viewsets.ViewSet):
    permission_classes = [RolePermission]
    lookup_value_regex = UUID_LOOKUP_REGEX
    capability_map = {
        "list": ["debts.view"],
        "retrieve": ["debts.view"],
        "history": ["debts.view"],
        "create": ["debts.manage"],
        "partial_update": ["debts.manage"],
        "destroy": ["debts.manage"],
    }

    def list(self, request):
        params = DebtQuerySerializer(data=request.query_params)
        params.is_valid(raise_exception=True)
        filters = params.validated_data
        debts, total = services.list_debts(
            user=request.user,
            debtor_id=filters.get("debtor"),
            search=filters.get("search", ""),
            page=filters["page"],
            limit=filters["limit"],
        )
        return success_response(
            DebtSerializer(debts, many=True).data,
            "Debts retrieved successfully",
            meta=page_meta(total, filters["page"], filters["limit"]),
        )

    def create(self, request):
        serializer = DebtCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        debt = services.create_debt(debtor_id=data.pop("debtor"), user=request.user, **data)
        return success_response(DebtSerializer(debt).data, "Debt created", status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        debt = services.get_debt(pk, user=request.user)
        return success_response(DebtSerializer(debt).data, "Debt fetched successfully")

    def partial_update(self, request, pk=None):
        serializer = DebtUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        debt = services.update_debt(pk, user=request.user, data=serializer.validated_data)
        return success_response(DebtSerializer(debt).data, "Debt updated")

    def destroy(self, request, pk=None):
        services.delete_debt(pk, user=request.user)
        return success_response({}, "Debt deleted")

    @action(detail=True, methods=["get"])
    def history(self, request, pk=None):
        entries = services.payment_history(pk, user=request.user)
        return success_response(PaymentHistorySerializer(entries, many=True).data, "Payment history fetched")


class PaymentViewSet(viewsets.ViewSet):
    permission_classes = [RolePermission]
    lookup_value_regex = UUID_LOOKUP_REGEX
    capability_map = {
        "create": ["debts.manage"],
        "partial_update": ["debts.manage"],
        "pay": ["debts.manage"],
    }

    def create(self, request):
        serializer = PaymentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        payment = services.add_payment(debt_id=data["debt"], user=request.user, amount=data["amount"], date=data["date"])
        return success_response(PaymentSerializer(payment).data, "Payment created", status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        serializer = PaymentUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payment = services.update_payment(pk, user=request.user, data=serializer.validated_data)
        return success_response(PaymentSerializer(payment).data, "Payment updated")

    @action(detail=True, methods=["post"])
    def pay(self, request, pk=None):
        payment = services.pay_payment(pk, user=request.user)
        return success_response(PaymentSerializer(payment).data, "Payment marked as paid")
