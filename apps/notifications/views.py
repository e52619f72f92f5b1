from rest_framework import status, viewsets
from rest_framework.decorators import action

from apps.common.fields import UUID_LOOKUP_REGEX
from apps.common.pagination import page_meta
from apps.common.permissions import RolePermission
from apps.common.responses import success_response
from apps.notifications import services
from apps.notifications.serializers import (
    DebtorNotificationSummarySerializer,
    NotificationCreateSerializer,
    NotificationQuerySerializer,
    NotificationSerializer,
    NotificationUpdateSerializer,
)


class NotificationViewSet(viewsets.ViewSet):
    permission_classes = [RolePermission]
    lookup_value_regex = UUID_LOOKUP_REGEX
    capability_map = {
        "list": ["notifications.view"],
        "retrieve": ["notifications.view"],
        "create": ["notifications.manage"],
        "partial_update": ["notifications.manage"],
        "destroy": ["notifications.manage"],
        "clear_debtor": ["notifications.manage"],
    }

    def list(self, request):
        params = NotificationQuerySerializer(data=request.query_params)
        params.is_valid(raise_exception=True)
        filters = params.validated_data
        meta_page, meta_limit = None, None
        if "page" in request.query_params or "limit" in request.query_params:
            meta_page, meta_limit = filters["page"], filters["limit"]

        if filters.get("debtor"):
            debtor, notifications, total = services.list_debtor_notifications(
                debtor_id=filters["debtor"],
                seller=request.user,
                search=filters.get("search", ""),
                page=meta_page,
                limit=meta_limit,
            )
            data = {
                "debtor": {"id": str(debtor.id), "name": debtor.name},
                "notifications": NotificationSerializer(notifications, many=True).data,
            }
        else:
            debtors, total = services.list_notification_summaries(
                seller=request.user,
                mode=filters["get"],
                page=meta_page,
                limit=meta_limit,
            )
            data = {
                "debtor": None,
                "notifications": DebtorNotificationSummarySerializer(debtors, many=True).data,
            }
        return success_response(data, "Notifications fetched", meta=page_meta(total, meta_page, meta_limit))

    def create(self, request):
        serializer = NotificationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        notification = services.create_notification(
            debtor_id=serializer.validated_data["debtor"],
            seller=request.user,
            message=serializer.validated_data["message"],
        )
        return success_response(NotificationSerializer(notification).data, "Notification created", status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        notification = services.get_notification(pk, user=request.user)
        return success_response(NotificationSerializer(notification).data, "Notification fetched")

    def partial_update(self, request, pk=None):
        serializer = NotificationUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        notification = services.update_notification(pk, user=request.user, message=serializer.validated_data["message"])
        return success_response(NotificationSerializer(notification).data, "Notification updated")

    def destroy(self, request, pk=None):
        services.delete_notification(pk, user=request.user)
        return success_response({}, "Notification deleted")

    @action(detail=False, methods=["delete"], url_path=rf"debtor/(?P<debtor_id>{UUID_LOOKUP_REGEX})")
    def clear_debtor(self, request, debtor_id=None):
        deleted = services.clear_debtor_notifications(debtor_id, user=request.user)
        return success_response({"deleted": deleted}, "Notifications deleted")
