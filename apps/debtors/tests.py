from datetime import timedelta
from unittest import mock

from django.contrib.auth import get_user_model
from django.db import OperationalError
from django.db.models.query import QuerySet
from django.utils import timezone
from rest_framework.test import APITestCase

from apps.common.exceptions import Forbidden
from apps.debtors import services
from apps.debtors.models import Debtor, DebtorImage, DebtorPhone
from apps.debts.models import Debt, DebtImage, Payment, PaymentAction, PaymentHistory
from apps.notifications.models import Notification

User = get_user_model()


class DebtorFixtures:
    def auth_as(self, username, password):
        token = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        ).data["access"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

    def make_debtor(self, seller, name="Aziz", address="Chilonzor 5", phones=("998901112233",), images=()):
        debtor = Debtor.objects.create(seller=seller, name=name, address=address)
        for phone in phones:
            DebtorPhone.objects.create(debtor=debtor, phone_number=phone)
        for image in images:
            DebtorImage.objects.create(debtor=debtor, name=image)
        return debtor

    def make_debt(self, debtor, payments, title="Fridge"):
        debt = Debt.objects.create(debtor=debtor, title=title)
        for amount, is_active, days in payments:
            Payment.objects.create(
                debt=debt,
                amount=amount,
                is_active=is_active,
                date=timezone.localdate() + timedelta(days=days),
            )
        return debt


class DebtorApiTests(DebtorFixtures, APITestCase):
    def setUp(self):
        self.seller = User.objects.create_user(username="seller_one", password="seller123", role="SELLER")
        self.other_seller = User.objects.create_user(username="seller_two", password="seller123", role="SELLER")
        self.admin = User.objects.create_user(username="admin_deb", password="admin123", role="ADMIN")

    def test_create_debtor_with_phones_and_images(self):
        self.auth_as("seller_one", "seller123")
        response = self.client.post(
            "/api/v1/debtors/",
            {
                "name": "Dilshod",
                "address": "Yunusobod 12",
                "note": "pays on fridays",
                "phones": ["998901234567", "998971234567"],
                "images": ["passport.jpg"],
            },
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["message"], "Debtor created")
        debtor = Debtor.objects.get(id=response.data["data"]["id"])
        self.assertEqual(debtor.seller, self.seller)
        self.assertEqual(
            set(debtor.phones.values_list("phone_number", flat=True)),
            {"998901234567", "998971234567"},
        )
        self.assertEqual(list(debtor.images.values_list("name", flat=True)), ["passport.jpg"])

    def test_create_requires_name_and_address(self):
        self.auth_as("seller_one", "seller123")
        response = self.client.post("/api/v1/debtors/", {"name": "  ", "phones": []}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertIn("name", response.data["fields"])
        self.assertIn("address", response.data["fields"])
        self.assertEqual(Debtor.objects.count(), 0)

    def test_list_total_debt_sums_active_payments_only(self):
        debtor = self.make_debtor(self.seller, name="D1")
        self.make_debt(debtor, [(100, True, 3)], title="T1")
        self.make_debt(debtor, [(50, False, 1)], title="T2")
        self.make_debtor(self.seller, name="No debts")

        self.auth_as("seller_one", "seller123")
        response = self.client.get("/api/v1/debtors/")
        self.assertEqual(response.status_code, 200)
        totals = {row["name"]: row["total_debt"] for row in response.data["data"]}
        self.assertEqual(totals, {"D1": "100", "No debts": "0"})
        self.assertEqual(response.data["meta"], {"total": 2, "page": 1, "limit": 20})

    def test_total_debt_keeps_large_amounts_exact(self):
        debtor = self.make_debtor(self.seller)
        self.make_debt(debtor, [(9_007_199_254_740_993, True, 1), (7, True, 2)])

        self.auth_as("seller_one", "seller123")
        response = self.client.get("/api/v1/debtors/")
        self.assertEqual(response.data["data"][0]["total_debt"], "9007199254741000")

    def test_list_is_scoped_to_requesting_seller(self):
        self.make_debtor(self.seller, name="Mine")
        self.make_debtor(self.other_seller, name="Theirs")

        self.auth_as("seller_one", "seller123")
        response = self.client.get("/api/v1/debtors/")
        self.assertEqual([row["name"] for row in response.data["data"]], ["Mine"])

    def test_list_search_matches_name_or_address_case_insensitive(self):
        self.make_debtor(self.seller, name="Bobur", address="Samarkand")
        self.make_debtor(self.seller, name="Kamola", address="Bukhara")
        self.make_debtor(self.seller, name="Samandar", address="Fergana")

        self.auth_as("seller_one", "seller123")
        response = self.client.get("/api/v1/debtors/", {"search": "SAMA"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual({row["name"] for row in response.data["data"]}, {"Bobur", "Samandar"})
        self.assertEqual(response.data["meta"]["total"], 2)

    def test_list_pagination_defaults_page_before_offset(self):
        for name in ("Anvar", "Botir", "Charos"):
            self.make_debtor(self.seller, name=name)

        self.auth_as("seller_one", "seller123")
        first = self.client.get("/api/v1/debtors/", {"limit": 2, "sort_by": "name", "sort_order": "asc"})
        self.assertEqual([row["name"] for row in first.data["data"]], ["Anvar", "Botir"])
        self.assertEqual(first.data["meta"], {"total": 3, "page": 1, "limit": 2})

        second = self.client.get("/api/v1/debtors/", {"page": 2, "limit": 2, "sort_by": "name", "sort_order": "asc"})
        self.assertEqual([row["name"] for row in second.data["data"]], ["Charos"])

        invalid = self.client.get("/api/v1/debtors/", {"page": 0})
        self.assertEqual(invalid.status_code, 400)
        self.assertIn("page", invalid.data["fields"])

    def test_retrieve_annotates_debts_with_totals_and_next_payment(self):
        debtor = self.make_debtor(self.seller)
        t1 = self.make_debt(debtor, [(100, True, 10), (30, True, 5), (20, False, 1)], title="T1")
        t2 = self.make_debt(debtor, [(50, False, 2)], title="T2")

        self.auth_as("seller_one", "seller123")
        response = self.client.get(f"/api/v1/debtors/{debtor.id}/")
        self.assertEqual(response.status_code, 200)
        data = response.data["data"]
        debts = {debt["id"]: debt for debt in data["debts"]}

        self.assertEqual(debts[str(t1.id)]["total_payments"], "150")
        self.assertEqual(debts[str(t1.id)]["next_payment"]["amount"], "30")
        self.assertEqual(debts[str(t2.id)]["total_payments"], "50")
        self.assertIsNone(debts[str(t2.id)]["next_payment"])
        self.assertEqual(data["total_amount"], "200")
        self.assertEqual(data["total_debt"], "130")

    def test_retrieve_unknown_debtor_is_not_found(self):
        self.auth_as("seller_one", "seller123")
        response = self.client.get("/api/v1/debtors/00000000-0000-0000-0000-000000000000/")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["code"], "not_found")
        self.assertEqual(response.data["detail"], "Debtor not found")

    def test_retrieve_other_sellers_debtor_is_forbidden(self):
        debtor = self.make_debtor(self.other_seller)
        self.auth_as("seller_one", "seller123")
        response = self.client.get(f"/api/v1/debtors/{debtor.id}/")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data["code"], "forbidden")

    def test_update_replaces_whole_phone_set(self):
        debtor = self.make_debtor(self.seller, phones=("111", "222"), images=("old.jpg",))
        self.auth_as("seller_one", "seller123")
        response = self.client.patch(
            f"/api/v1/debtors/{debtor.id}/",
            {"address": "Mirobod 3", "phones": ["333"], "images": ["new.jpg"]},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        debtor.refresh_from_db()
        self.assertEqual(debtor.address, "Mirobod 3")
        self.assertEqual(list(debtor.phones.values_list("phone_number", flat=True)), ["333"])
        self.assertEqual(list(debtor.images.values_list("name", flat=True)), ["new.jpg"])

    def test_update_without_phones_leaves_no_phones(self):
        debtor = self.make_debtor(self.seller, phones=("111", "222"), images=("old.jpg",))
        self.auth_as("seller_one", "seller123")
        response = self.client.patch(f"/api/v1/debtors/{debtor.id}/", {"note": "moved", "phones": []}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["data"]["phones"], [])
        self.assertFalse(DebtorPhone.objects.filter(debtor=debtor).exists())
        self.assertFalse(DebtorImage.objects.filter(debtor=debtor).exists())

    def test_update_by_other_seller_is_forbidden_and_leaves_debtor_unchanged(self):
        debtor = self.make_debtor(self.seller, name="Original", phones=("111",))
        self.auth_as("seller_two", "seller123")
        response = self.client.patch(f"/api/v1/debtors/{debtor.id}/", {"name": "Hijacked"}, format="json")
        self.assertEqual(response.status_code, 403)
        debtor.refresh_from_db()
        self.assertEqual(debtor.name, "Original")
        self.assertEqual(debtor.phones.count(), 1)

    def test_admin_can_update_any_debtor(self):
        debtor = self.make_debtor(self.seller, name="Original")
        self.auth_as("admin_deb", "admin123")
        response = self.client.patch(f"/api/v1/debtors/{debtor.id}/", {"name": "Renamed"}, format="json")
        self.assertEqual(response.status_code, 200)
        debtor.refresh_from_db()
        self.assertEqual(debtor.name, "Renamed")

    def test_star_toggles(self):
        debtor = self.make_debtor(self.seller)
        self.auth_as("seller_one", "seller123")
        first = self.client.post(f"/api/v1/debtors/{debtor.id}/star/")
        self.assertEqual(first.status_code, 200)
        self.assertTrue(first.data["data"]["star"])
        second = self.client.post(f"/api/v1/debtors/{debtor.id}/star/")
        self.assertFalse(second.data["data"]["star"])

    def test_star_other_sellers_debtor_is_forbidden(self):
        debtor = self.make_debtor(self.other_seller)
        self.auth_as("seller_one", "seller123")
        response = self.client.post(f"/api/v1/debtors/{debtor.id}/star/")
        self.assertEqual(response.status_code, 403)
        debtor.refresh_from_db()
        self.assertFalse(debtor.star)
    def test_update_omitting_phones_and_images_clears_both(self):
        debtor = self.make_debtor(self.seller, phones=("111", "222"), images=("old.jpg",))
        self.auth_as("seller_one", "seller123")
        response = self.client.patch(f"/api/v1/debtors/{debtor.id}/", {"note": "moved"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["data"]["phones"], [])
        self.assertEqual(response.data["data"]["images"], [])
        self.assertFalse(DebtorPhone.objects.filter(debtor=debtor).exists())
        self.assertFalse(DebtorImage.objects.filter(debtor=debtor).exists())

    def test_malformed_ids_are_not_found(self):
        debtor = self.make_debtor(self.seller)
        self.auth_as("seller_one", "seller123")
        for bad_id in ("0" * 36, "-" * 36, "f" * 32 + "----"):
            self.assertEqual(self.client.get(f"/api/v1/debtors/{bad_id}/").status_code, 404)
            self.assertEqual(self.client.patch(f"/api/v1/debtors/{bad_id}/", {"name": "X"}, format="json").status_code, 404)
            self.assertEqual(self.client.delete(f"/api/v1/notifications/debtor/{bad_id}/").status_code, 404)
            self.assertEqual(self.client.get(f"/api/v1/debts/{bad_id}/").status_code, 404)
        self.assertTrue(Debtor.objects.filter(id=debtor.id).exists())

    def test_lookup_database_error_is_reported_as_store_failure(self):
        debtor = self.make_debtor(self.seller, name="Original")
        self.auth_as("seller_one", "seller123")
        with mock.patch.object(QuerySet, "first", side_effect=OperationalError("database is locked")):
            response = self.client.patch(f"/api/v1/debtors/{debtor.id}/", {"name": "Renamed"}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "store_failure")
        self.assertTrue(response.data["detail"].startswith("Error fetching debtor"))
        debtor.refresh_from_db()
        self.assertEqual(debtor.name, "Original")


class DebtorDeleteTests(DebtorFixtures, APITestCase):
    def setUp(self):
        self.seller = User.objects.create_user(username="seller_del", password="seller123", role="SELLER")
        self.other_seller = User.objects.create_user(username="seller_del2", password="seller123", role="SELLER")
        self.super_admin = User.objects.create_user(username="root_del", password="root123", role="SUPER_ADMIN")

        self.debtor = self.make_debtor(self.seller, phones=("111", "222"), images=("face.jpg",))
        self.debt = self.make_debt(self.debtor, [(100, True, 3), (40, False, -3)])
        DebtImage.objects.create(debt=self.debt, name="contract.jpg")
        for payment in self.debt.payments.all():
            PaymentHistory.objects.create(
                debt=self.debt,
                payment=payment,
                action=PaymentAction.CREATED,
                amount=payment.amount,
                date=payment.date,
                actor=self.seller,
            )
        Notification.objects.create(debtor=self.debtor, seller=self.seller, message="Reminder", is_sended=True)

        self.bystander = self.make_debtor(self.seller, name="Bystander")
        self.bystander_debt = self.make_debt(self.bystander, [(70, True, 1)])

    def assert_graph_removed(self, debtor_id, debt_id):
        self.assertFalse(Debtor.objects.filter(id=debtor_id).exists())
        self.assertFalse(Debt.objects.filter(debtor_id=debtor_id).exists())
        self.assertFalse(Payment.objects.filter(debt_id=debt_id).exists())
        self.assertFalse(PaymentHistory.objects.filter(debt_id=debt_id).exists())
        self.assertFalse(DebtImage.objects.filter(debt_id=debt_id).exists())
        self.assertFalse(DebtorImage.objects.filter(debtor_id=debtor_id).exists())
        self.assertFalse(DebtorPhone.objects.filter(debtor_id=debtor_id).exists())
        self.assertFalse(Notification.objects.filter(debtor_id=debtor_id).exists())

    def test_owner_delete_removes_whole_graph(self):
        self.auth_as("seller_del", "seller123")
        response = self.client.delete(f"/api/v1/debtors/{self.debtor.id}/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["message"], "Debtor deleted")
        self.assert_graph_removed(self.debtor.id, self.debt.id)

        self.assertTrue(Debtor.objects.filter(id=self.bystander.id).exists())
        self.assertEqual(Payment.objects.filter(debt=self.bystander_debt).count(), 1)

    def test_super_admin_can_delete_any_debtor(self):
        self.auth_as("root_del", "root123")
        response = self.client.delete(f"/api/v1/debtors/{self.debtor.id}/")
        self.assertEqual(response.status_code, 200)
        self.assert_graph_removed(self.debtor.id, self.debt.id)

    def test_other_seller_delete_is_forbidden_and_graph_survives(self):
        self.auth_as("seller_del2", "seller123")
        response = self.client.delete(f"/api/v1/debtors/{self.debtor.id}/")
        self.assertEqual(response.status_code, 403)
        self.assertTrue(Debtor.objects.filter(id=self.debtor.id).exists())
        self.assertEqual(Payment.objects.filter(debt=self.debt).count(), 2)
        self.assertEqual(PaymentHistory.objects.filter(debt=self.debt).count(), 2)
        self.assertEqual(DebtorPhone.objects.filter(debtor=self.debtor).count(), 2)
        self.assertEqual(Notification.objects.filter(debtor=self.debtor).count(), 1)

    def test_service_raises_forbidden_for_default_role(self):
        with self.assertRaises(Forbidden):
            services.delete_debtor(self.debtor.id, user=self.other_seller)
        self.assertTrue(Debtor.objects.filter(id=self.debtor.id).exists())

    def test_delete_unknown_debtor_is_not_found(self):
        self.auth_as("seller_del", "seller123")
        response = self.client.delete("/api/v1/debtors/00000000-0000-0000-0000-000000000000/")
        self.assertEqual(response.status_code, 404)

    def test_store_failure_rolls_back_every_step(self):
        foreign_payment = self.debt.payments.first()
        PaymentHistory.objects.create(
            debt=self.bystander_debt,
            payment=foreign_payment,
            action=PaymentAction.UPDATED,
            amount=foreign_payment.amount,
            date=foreign_payment.date,
        )

        self.auth_as("seller_del", "seller123")
        response = self.client.delete(f"/api/v1/debtors/{self.debtor.id}/")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "store_failure")
        self.assertTrue(response.data["detail"].startswith("Error deleting debtor"))

        self.assertTrue(Debtor.objects.filter(id=self.debtor.id).exists())
        self.assertEqual(PaymentHistory.objects.filter(debt=self.debt).count(), 2)
        self.assertEqual(Payment.objects.filter(debt=self.debt).count(), 2)
        self.assertEqual(DebtorPhone.objects.filter(debtor=self.debtor).count(), 2)
