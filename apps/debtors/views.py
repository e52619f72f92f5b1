from rest_framework import status, viewsets
from rest_framework.decorators import action

from apps.common.fields import UUID_LOOKUP_REGEX
from apps.common.pagination import page_meta
from apps.common.permissions import RolePermission
from apps.common.responses import success_response
from apps.debtors import services
from apps.debtors.serializers import (
    DebtorDetailSerializer,
    DebtorFilterSerializer,
    DebtorListSerializer,
    DebtorSerializer,
    DebtorWriteSerializer,
)


class DebtorViewSet(viewsets.ViewSet):
    permission_classes = [RolePermission]
    lookup_value_regex = UUID_LOOKUP_REGEX
    capability_map = {
        "list": ["debtors.view"],
        "retrieve": ["debtors.view"],
        "create": ["debtors.manage"],
        "partial_update": ["debtors.manage"],
        "destroy": ["debtors.manage"],
        "star": ["debtors.manage"],
    }

    def list(self, request):
        params = DebtorFilterSerializer(data=request.query_params)
        params.is_valid(raise_exception=True)
        filters = params.validated_data
        debtors, total = services.list_debtors(seller=request.user, **filters)
        return success_response(
            DebtorListSerializer(debtors, many=True).data,
            "Debtors retrieved successfully",
            meta=page_meta(total, filters["page"], filters["limit"]),
        )

    def create(self, request):
        serializer = DebtorWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        debtor = services.create_debtor(seller=request.user, **serializer.validated_data)
        return success_response(DebtorSerializer(debtor).data, "Debtor created", status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        debtor = services.get_debtor(pk, user=request.user)
        return success_response(DebtorDetailSerializer(debtor).data, "Debtor fetched successfully")

    def partial_update(self, request, pk=None):
        serializer = DebtorWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        debtor = services.update_debtor(pk, user=request.user, data=serializer.validated_data)
        return success_response(DebtorSerializer(debtor).data, "Debtor updated")

    def destroy(self, request, pk=None):
        services.delete_debtor(pk, user=request.user)
        return success_response({}, "Debtor deleted")

    @action(detail=True, methods=["post"])
    def star(self, request, pk=None):
        debtor = services.toggle_star(pk, user=request.user)
        return success_response({"id": str(debtor.id), "star": debtor.star}, "Debtor star updated")
