from io import StringIO

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.management import call_command
from rest_framework.test import APITestCase

from apps.accounts.models import UserRole
from apps.common.permissions import ROLE_CAPABILITIES, is_elevated, resolve_role
from apps.debtors.views import DebtorViewSet
from apps.debts.views import DebtViewSet, PaymentViewSet
from apps.notifications.views import NotificationViewSet

User = get_user_model()


class AuthTokenTests(APITestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="seller_auth", password="seller123", role=UserRole.SELLER)

    def test_obtain_and_refresh_token(self):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": "seller_auth", "password": "seller123"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertIn("access", response.data)

        refreshed = self.client.post("/api/v1/auth/token/refresh/", {"refresh": response.data["refresh"]}, format="json")
        self.assertEqual(refreshed.status_code, 200)
        self.assertIn("access", refreshed.data)

    def test_wrong_password_is_rejected(self):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": "seller_auth", "password": "nope"},
            format="json",
        )
        self.assertEqual(response.status_code, 401)
        self.assertIn("code", response.data)


class RoleResolutionTests(APITestCase):
    def test_seed_roles_is_idempotent(self):
        out = StringIO()
        call_command("seed_roles", stdout=out)
        call_command("seed_roles", stdout=out)
        self.assertEqual(set(Group.objects.values_list("name", flat=True)), set(UserRole.values))
        self.assertIn("SELLER: exists", out.getvalue())

    def test_group_membership_overrides_role_field(self):
        call_command("seed_roles", stdout=StringIO())
        user = User.objects.create_user(username="promoted", password="x", role=UserRole.SELLER)
        self.assertFalse(is_elevated(user))

        user.groups.add(Group.objects.get(name=UserRole.ADMIN))
        self.assertEqual(resolve_role(user), UserRole.ADMIN)
        self.assertTrue(is_elevated(user))

    def test_seed_roles_sync_users_adds_role_groups(self):
        admin = User.objects.create_user(username="boss", password="x", role=UserRole.ADMIN)
        seller = User.objects.create_user(username="clerk", password="x", role=UserRole.SELLER)

        out = StringIO()
        call_command("seed_roles", "--sync-users", stdout=out)
        self.assertIn("Users synced: 2", out.getvalue())
        self.assertEqual(list(admin.groups.values_list("name", flat=True)), [UserRole.ADMIN])
        self.assertEqual(list(seller.groups.values_list("name", flat=True)), [UserRole.SELLER])

    def test_new_users_default_to_seller(self):
        user = User.objects.create_user(username="plain", password="x")
        self.assertEqual(user.role, UserRole.SELLER)
        self.assertFalse(is_elevated(user))

    def test_every_granted_capability_is_required_by_a_view(self):
        required = set()
        for viewset in (DebtorViewSet, DebtViewSet, PaymentViewSet, NotificationViewSet):
            for capabilities in viewset.capability_map.values():
                required.update(capabilities)

        for role, capabilities in ROLE_CAPABILITIES.items():
            self.assertEqual(capabilities - required, set(), role)
