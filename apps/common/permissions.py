import logging

from rest_framework.permissions import BasePermission

from apps.accounts.models import ELEVATED_ROLES, UserRole
from apps.common.exceptions import Forbidden

logger = logging.getLogger(__name__)


SELLER_CAPABILITIES = {
    "debtors.view",
    "debtors.manage",
    "debts.view",
    "debts.manage",
    "notifications.view",
    "notifications.manage",
}

ROLE_CAPABILITIES = {
    UserRole.SUPER_ADMIN: SELLER_CAPABILITIES,
    UserRole.ADMIN: SELLER_CAPABILITIES,
    UserRole.SELLER: SELLER_CAPABILITIES,
}


def resolve_role(user):
    group_names = set(user.groups.values_list("name", flat=True))
    for role in (UserRole.SUPER_ADMIN, UserRole.ADMIN, UserRole.SELLER):
        if role in group_names:
            return role
    return getattr(user, "role", UserRole.SELLER)


def is_elevated(user):
    return resolve_role(user) in ELEVATED_ROLES


def ensure_owner_or_elevated(owner_id, user, message="Access denied"):
    if owner_id == user.id or is_elevated(user):
        return
    logger.warning("Denied user=%s on resource owned by %s", user.id, owner_id)
    raise Forbidden(message)


class RolePermission(BasePermission):
    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        capability_map = getattr(view, "capability_map", {})
        action = getattr(view, "action", request.method.lower())
        required = capability_map.get(action) or capability_map.get(request.method.lower()) or set()
        if not required:
            return True

        user_caps = ROLE_CAPABILITIES.get(resolve_role(request.user), set())
        return all(cap in user_caps for cap in required)
