from datetime import date, timedelta
from types import SimpleNamespace

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase
from django.utils import timezone
from rest_framework.test import APITestCase

from apps.debtors.models import Debtor
from apps.debts.models import Debt, DebtImage, Payment, PaymentAction, PaymentHistory
from apps.debts.querysets import next_active_payment

User = get_user_model()


class NextActivePaymentTests(SimpleTestCase):
    def test_picks_earliest_active_payment(self):
        now = timezone.now()
        payments = [
            SimpleNamespace(is_active=True, date=date(2026, 5, 10), created_at=now),
            SimpleNamespace(is_active=False, date=date(2026, 5, 1), created_at=now),
            SimpleNamespace(is_active=True, date=date(2026, 5, 3), created_at=now + timedelta(seconds=5)),
            SimpleNamespace(is_active=True, date=date(2026, 5, 3), created_at=now),
        ]
        self.assertIs(next_active_payment(payments), payments[3])

    def test_returns_none_without_active_payments(self):
        payments = [SimpleNamespace(is_active=False, date=date(2026, 5, 1), created_at=timezone.now())]
        self.assertIsNone(next_active_payment(payments))
        self.assertIsNone(next_active_payment([]))


class DebtApiTests(APITestCase):
    def setUp(self):
        self.seller = User.objects.create_user(username="seller_debt", password="seller123", role="SELLER")
        self.other_seller = User.objects.create_user(username="seller_debt2", password="seller123", role="SELLER")
        self.admin = User.objects.create_user(username="admin_debt", password="admin123", role="ADMIN")
        self.debtor = Debtor.objects.create(seller=self.seller, name="Jasur", address="Olmazor 7")
        self.today = timezone.localdate()

    def auth_as(self, username, password):
        token = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        ).data["access"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

    def create_debt(self, payments=None, **extra):
        payload = {
            "debtor": str(self.debtor.id),
            "title": "Washing machine",
            "payments": payments
            or [
                {"amount": 200, "date": (self.today + timedelta(days=30)).isoformat()},
                {"amount": 100, "date": (self.today + timedelta(days=7)).isoformat()},
            ],
            **extra,
        }
        return self.client.post("/api/v1/debts/", payload, format="json")

    def test_create_debt_with_schedule_records_history(self):
        self.auth_as("seller_debt", "seller123")
        response = self.create_debt(images=["receipt.jpg"], note="first purchase")
        self.assertEqual(response.status_code, 201)

        data = response.data["data"]
        self.assertEqual(data["total_payments"], "300")
        self.assertEqual(data["next_payment"]["amount"], "100")
        self.assertEqual([payment["amount"] for payment in data["payments"]], ["100", "200"])
        self.assertEqual([image["name"] for image in data["images"]], ["receipt.jpg"])

        history = PaymentHistory.objects.filter(debt_id=data["id"])
        self.assertEqual(history.count(), 2)
        self.assertEqual(set(history.values_list("action", flat=True)), {PaymentAction.CREATED})
        self.assertEqual(set(history.values_list("actor_id", flat=True)), {self.seller.id})

    def test_create_debt_requires_at_least_one_payment(self):
        self.auth_as("seller_debt", "seller123")
        response = self.client.post(
            "/api/v1/debts/",
            {"debtor": str(self.debtor.id), "title": "Phone", "payments": []},
            format="json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("payments", response.data["fields"])
        self.assertFalse(Debt.objects.exists())

    def test_create_debt_rejects_non_positive_amount(self):
        self.auth_as("seller_debt", "seller123")
        response = self.create_debt(payments=[{"amount": 0, "date": self.today.isoformat()}])
        self.assertEqual(response.status_code, 400)
        self.assertFalse(Payment.objects.exists())

    def test_create_debt_for_other_sellers_debtor_is_forbidden(self):
        self.auth_as("seller_debt2", "seller123")
        response = self.create_debt()
        self.assertEqual(response.status_code, 403)
        self.assertFalse(Debt.objects.exists())

    def test_create_debt_for_unknown_debtor_is_not_found(self):
        self.auth_as("seller_debt", "seller123")
        response = self.client.post(
            "/api/v1/debts/",
            {
                "debtor": "00000000-0000-0000-0000-000000000000",
                "title": "Phone",
                "payments": [{"amount": 10, "date": self.today.isoformat()}],
            },
            format="json",
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["detail"], "Debtor not found")

    def test_pay_payment_moves_next_payment_and_lowers_total_debt(self):
        self.auth_as("seller_debt", "seller123")
        debt_id = self.create_debt().data["data"]["id"]
        first = Payment.objects.get(debt_id=debt_id, amount=100)

        response = self.client.post(f"/api/v1/payments/{first.id}/pay/")
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.data["data"]["is_active"])

        debt = self.client.get(f"/api/v1/debts/{debt_id}/").data["data"]
        self.assertEqual(debt["next_payment"]["amount"], "200")
        self.assertEqual(debt["total_payments"], "300")

        debtors = self.client.get("/api/v1/debtors/").data["data"]
        self.assertEqual(debtors[0]["total_debt"], "200")

        self.assertTrue(PaymentHistory.objects.filter(payment=first, action=PaymentAction.PAID).exists())

        again = self.client.post(f"/api/v1/payments/{first.id}/pay/")
        self.assertEqual(again.status_code, 400)
        self.assertIn("payment", again.data["fields"])

    def test_paying_every_payment_clears_next_payment(self):
        self.auth_as("seller_debt", "seller123")
        debt_id = self.create_debt().data["data"]["id"]
        for payment in Payment.objects.filter(debt_id=debt_id):
            self.client.post(f"/api/v1/payments/{payment.id}/pay/")

        debt = self.client.get(f"/api/v1/debts/{debt_id}/").data["data"]
        self.assertIsNone(debt["next_payment"])
        self.assertEqual(self.client.get("/api/v1/debtors/").data["data"][0]["total_debt"], "0")

    def test_other_seller_cannot_pay(self):
        self.auth_as("seller_debt", "seller123")
        debt_id = self.create_debt().data["data"]["id"]
        payment = Payment.objects.filter(debt_id=debt_id).first()

        self.auth_as("seller_debt2", "seller123")
        response = self.client.post(f"/api/v1/payments/{payment.id}/pay/")
        self.assertEqual(response.status_code, 403)
        payment.refresh_from_db()
        self.assertTrue(payment.is_active)

    def test_add_and_update_payment_record_history(self):
        self.auth_as("seller_debt", "seller123")
        debt_id = self.create_debt().data["data"]["id"]

        created = self.client.post(
            "/api/v1/payments/",
            {"debt": debt_id, "amount": 50, "date": (self.today + timedelta(days=60)).isoformat()},
            format="json",
        )
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.data["data"]["amount"], "50")

        payment_id = created.data["data"]["id"]
        updated = self.client.patch(f"/api/v1/payments/{payment_id}/", {"amount": 75}, format="json")
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.data["data"]["amount"], "75")

        history = self.client.get(f"/api/v1/debts/{debt_id}/history/")
        self.assertEqual(history.status_code, 200)
        actions = [entry["action"] for entry in history.data["data"]]
        self.assertEqual(actions, ["CREATED", "CREATED", "CREATED", "UPDATED"])
        self.assertEqual(history.data["data"][-1]["amount"], "75")
        self.assertEqual(history.data["data"][-1]["actor_username"], "seller_debt")

    def test_paid_payment_cannot_be_edited(self):
        self.auth_as("seller_debt", "seller123")
        debt_id = self.create_debt().data["data"]["id"]
        payment = Payment.objects.filter(debt_id=debt_id).first()
        self.client.post(f"/api/v1/payments/{payment.id}/pay/")

        response = self.client.patch(f"/api/v1/payments/{payment.id}/", {"amount": 1}, format="json")
        self.assertEqual(response.status_code, 400)
        payment.refresh_from_db()
        self.assertNotEqual(payment.amount, 1)

    def test_update_debt_replaces_images(self):
        self.auth_as("seller_debt", "seller123")
        debt_id = self.create_debt(images=["a.jpg", "b.jpg"]).data["data"]["id"]

        response = self.client.patch(
            f"/api/v1/debts/{debt_id}/",
            {"title": "Dryer", "images": ["c.jpg"]},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["data"]["title"], "Dryer")
        self.assertEqual(list(DebtImage.objects.filter(debt_id=debt_id).values_list("name", flat=True)), ["c.jpg"])

    def test_delete_debt_removes_payments_history_and_images(self):
        self.auth_as("seller_debt", "seller123")
        debt_id = self.create_debt(images=["a.jpg"]).data["data"]["id"]

        response = self.client.delete(f"/api/v1/debts/{debt_id}/")
        self.assertEqual(response.status_code, 200)
        self.assertFalse(Debt.objects.filter(id=debt_id).exists())
        self.assertFalse(Payment.objects.filter(debt_id=debt_id).exists())
        self.assertFalse(PaymentHistory.objects.filter(debt_id=debt_id).exists())
        self.assertFalse(DebtImage.objects.filter(debt_id=debt_id).exists())
        self.assertTrue(Debtor.objects.filter(id=self.debtor.id).exists())

    def test_list_debts_is_scoped_to_seller_and_filterable_by_debtor(self):
        self.auth_as("seller_debt", "seller123")
        self.create_debt(title="Mine")

        other_debtor = Debtor.objects.create(seller=self.other_seller, name="Other", address="Sergeli")
        Debt.objects.create(debtor=other_debtor, title="Theirs")

        response = self.client.get("/api/v1/debts/")
        self.assertEqual([debt["title"] for debt in response.data["data"]], ["Mine"])
        self.assertEqual(response.data["meta"]["total"], 1)

        filtered = self.client.get("/api/v1/debts/", {"debtor": str(self.debtor.id)})
        self.assertEqual(filtered.data["meta"]["total"], 1)

        forbidden = self.client.get("/api/v1/debts/", {"debtor": str(other_debtor.id)})
        self.assertEqual(forbidden.status_code, 403)

        self.auth_as("admin_debt", "admin123")
        everything = self.client.get("/api/v1/debts/")
        self.assertEqual(everything.data["meta"]["total"], 2)

    def test_unauthenticated_request_is_rejected(self):
        response = self.client.get("/api/v1/debts/")
        self.assertEqual(response.status_code, 401)
