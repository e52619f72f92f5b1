from datetime import timedelta
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.core.management.base import CommandError
from django.utils import timezone
from rest_framework.test import APITestCase

from apps.debtors.models import Debtor, DebtorPhone
from apps.debts.models import Debt, Payment
from apps.notifications.models import Notification
from apps.notifications.services import REMINDER_PREFIX, queue_payment_reminders

User = get_user_model()


class NotificationApiTests(APITestCase):
    def setUp(self):
        self.seller = User.objects.create_user(username="seller_notif", password="seller123", role="SELLER")
        self.other_seller = User.objects.create_user(username="seller_notif2", password="seller123", role="SELLER")
        self.admin = User.objects.create_user(username="admin_notif", password="admin123", role="ADMIN")

        now = timezone.now()
        self.oldest = self.make_debtor("Oldest", now - timedelta(days=3))
        self.middle = self.make_debtor("Middle", now - timedelta(days=2))
        self.newest = self.make_debtor("Newest", now - timedelta(days=1))
        self.foreign = Debtor.objects.create(seller=self.other_seller, name="Foreign", address="Yashnobod")

        self.first = self.make_notification(self.oldest, "Please pay the first installment", now - timedelta(hours=5))
        self.second = self.make_notification(self.oldest, "Second reminder about the fridge", now - timedelta(hours=2))
        self.third = self.make_notification(self.newest, "Welcome aboard", now - timedelta(hours=1))

    def make_debtor(self, name, created_at):
        debtor = Debtor.objects.create(seller=self.seller, name=name, address="Chilonzor")
        DebtorPhone.objects.create(debtor=debtor, phone_number="998900000000")
        Debtor.objects.filter(pk=debtor.pk).update(created_at=created_at)
        return debtor

    def make_notification(self, debtor, message, created_at):
        notification = Notification.objects.create(debtor=debtor, seller=self.seller, message=message, is_sended=True)
        Notification.objects.filter(pk=notification.pk).update(created_at=created_at)
        return notification

    def auth_as(self, username, password):
        token = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        ).data["access"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

    def test_create_marks_notification_sent_by_requesting_seller(self):
        self.auth_as("seller_notif", "seller123")
        response = self.client.post(
            "/api/v1/notifications/",
            {"debtor": str(self.middle.id), "message": "  Payment due tomorrow  "},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.data["data"]["is_sended"])
        self.assertEqual(response.data["data"]["message"], "Payment due tomorrow")
        self.assertEqual(response.data["data"]["seller"], self.seller.id)

    def test_create_for_foreign_debtor_is_forbidden(self):
        self.auth_as("seller_notif", "seller123")
        response = self.client.post(
            "/api/v1/notifications/",
            {"debtor": str(self.foreign.id), "message": "Hello"},
            format="json",
        )
        self.assertEqual(response.status_code, 403)
        self.assertFalse(Notification.objects.filter(debtor=self.foreign).exists())

    def test_create_for_unknown_debtor_is_not_found(self):
        self.auth_as("seller_notif", "seller123")
        response = self.client.post(
            "/api/v1/notifications/",
            {"debtor": "00000000-0000-0000-0000-000000000000", "message": "Hello"},
            format="json",
        )
        self.assertEqual(response.status_code, 404)

    def test_debtor_scoped_list_is_oldest_first(self):
        self.auth_as("seller_notif", "seller123")
        response = self.client.get("/api/v1/notifications/", {"debtor": str(self.oldest.id)})
        self.assertEqual(response.status_code, 200)
        data = response.data["data"]
        self.assertEqual(data["debtor"], {"id": str(self.oldest.id), "name": "Oldest"})
        self.assertEqual(
            [row["id"] for row in data["notifications"]],
            [str(self.first.id), str(self.second.id)],
        )
        self.assertEqual(response.data["meta"], {"total": 2, "page": None, "limit": None})

    def test_debtor_scoped_list_supports_search_and_paging(self):
        self.auth_as("seller_notif", "seller123")
        searched = self.client.get("/api/v1/notifications/", {"debtor": str(self.oldest.id), "search": "FRIDGE"})
        self.assertEqual([row["id"] for row in searched.data["data"]["notifications"]], [str(self.second.id)])
        self.assertEqual(searched.data["meta"]["total"], 1)

        paged = self.client.get("/api/v1/notifications/", {"debtor": str(self.oldest.id), "page": 2, "limit": 1})
        self.assertEqual([row["id"] for row in paged.data["data"]["notifications"]], [str(self.second.id)])
        self.assertEqual(paged.data["meta"], {"total": 2, "page": 2, "limit": 1})

        limited = self.client.get("/api/v1/notifications/", {"debtor": str(self.oldest.id), "limit": 1})
        self.assertEqual([row["id"] for row in limited.data["data"]["notifications"]], [str(self.first.id)])
        self.assertEqual(limited.data["meta"], {"total": 2, "page": 1, "limit": 1})

    def test_debtor_scoped_list_for_foreign_debtor_is_not_found(self):
        self.auth_as("seller_notif", "seller123")
        response = self.client.get("/api/v1/notifications/", {"debtor": str(self.foreign.id)})
        self.assertEqual(response.status_code, 404)

    def test_summary_lists_every_debtor_with_latest_notification(self):
        self.auth_as("seller_notif", "seller123")
        response = self.client.get("/api/v1/notifications/")
        self.assertEqual(response.status_code, 200)
        data = response.data["data"]
        self.assertIsNone(data["debtor"])

        rows = data["notifications"]
        self.assertEqual([row["name"] for row in rows], ["Newest", "Middle", "Oldest"])
        self.assertEqual(rows[0]["latest_notification"]["id"], str(self.third.id))
        self.assertIsNone(rows[1]["latest_notification"])
        self.assertEqual(rows[2]["latest_notification"]["id"], str(self.second.id))
        self.assertEqual(rows[2]["phones"][0]["phone_number"], "998900000000")
        self.assertEqual(response.data["meta"]["total"], 3)
        self.assertIsNone(response.data["meta"]["limit"])

        paged = self.client.get("/api/v1/notifications/", {"page": 2, "limit": 2})
        self.assertEqual([row["name"] for row in paged.data["data"]["notifications"]], ["Oldest"])
        self.assertEqual(paged.data["meta"], {"total": 3, "page": 2, "limit": 2})

    def test_summary_sended_mode_skips_debtors_without_notifications(self):
        self.auth_as("seller_notif", "seller123")
        response = self.client.get("/api/v1/notifications/", {"get": "Sended"})
        rows = response.data["data"]["notifications"]
        self.assertEqual([row["name"] for row in rows], ["Newest", "Oldest"])
        self.assertEqual(response.data["meta"]["total"], 2)

    def test_summary_rejects_unknown_mode(self):
        self.auth_as("seller_notif", "seller123")
        response = self.client.get("/api/v1/notifications/", {"get": "Unread"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("get", response.data["fields"])

    def test_update_is_limited_to_owning_seller(self):
        self.auth_as("seller_notif2", "seller123")
        response = self.client.patch(f"/api/v1/notifications/{self.first.id}/", {"message": "Edited"}, format="json")
        self.assertEqual(response.status_code, 403)

        self.auth_as("admin_notif", "admin123")
        response = self.client.patch(f"/api/v1/notifications/{self.first.id}/", {"message": "Edited"}, format="json")
        self.assertEqual(response.status_code, 403)
        self.first.refresh_from_db()
        self.assertEqual(self.first.message, "Please pay the first installment")

        self.auth_as("seller_notif", "seller123")
        response = self.client.patch(f"/api/v1/notifications/{self.first.id}/", {"message": "Edited"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.first.refresh_from_db()
        self.assertEqual(self.first.message, "Edited")

    def test_retrieve_by_admin_and_forbidden_for_other_seller(self):
        self.auth_as("admin_notif", "admin123")
        self.assertEqual(self.client.get(f"/api/v1/notifications/{self.first.id}/").status_code, 200)

        self.auth_as("seller_notif2", "seller123")
        self.assertEqual(self.client.get(f"/api/v1/notifications/{self.first.id}/").status_code, 403)

    def test_clear_debtor_notifications(self):
        self.auth_as("seller_notif2", "seller123")
        response = self.client.delete(f"/api/v1/notifications/debtor/{self.oldest.id}/")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(Notification.objects.filter(debtor=self.oldest).count(), 2)

        self.auth_as("seller_notif", "seller123")
        response = self.client.delete(f"/api/v1/notifications/debtor/{self.oldest.id}/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["data"], {"deleted": 2})
        self.assertFalse(Notification.objects.filter(debtor=self.oldest).exists())
        self.assertTrue(Notification.objects.filter(pk=self.third.pk).exists())

    def test_clear_unknown_debtor_is_not_found(self):
        self.auth_as("seller_notif", "seller123")
        response = self.client.delete("/api/v1/notifications/debtor/00000000-0000-0000-0000-000000000000/")
        self.assertEqual(response.status_code, 404)

    def test_delete_single_notification(self):
        self.auth_as("seller_notif2", "seller123")
        self.assertEqual(self.client.delete(f"/api/v1/notifications/{self.third.id}/").status_code, 403)

        self.auth_as("seller_notif", "seller123")
        response = self.client.delete(f"/api/v1/notifications/{self.third.id}/")
        self.assertEqual(response.status_code, 200)
        self.assertFalse(Notification.objects.filter(pk=self.third.pk).exists())
        self.assertEqual(Notification.objects.filter(debtor=self.oldest).count(), 2)


class PaymentReminderTests(APITestCase):
    def setUp(self):
        self.seller = User.objects.create_user(username="seller_remind", password="seller123", role="SELLER")
        self.today = timezone.localdate()

        self.due = self.make_debtor("Due soon")
        self.make_payment(self.due, 120, days=2)
        self.make_payment(self.due, 80, days=-10)

        self.later = self.make_debtor("Due later")
        self.make_payment(self.later, 500, days=20)

        self.settled = self.make_debtor("Settled")
        self.make_payment(self.settled, 60, days=1, is_active=False)

    def make_debtor(self, name):
        return Debtor.objects.create(seller=self.seller, name=name, address="Mirzo Ulugbek")

    def make_payment(self, debtor, amount, days, is_active=True):
        debt, _ = Debt.objects.get_or_create(debtor=debtor, title=f"{debtor.name} purchase")
        return Payment.objects.create(
            debt=debt,
            amount=amount,
            date=self.today + timedelta(days=days),
            is_active=is_active,
        )

    def test_queues_one_unsent_reminder_per_debtor_with_due_payments(self):
        reminders = queue_payment_reminders(days_ahead=3)
        self.assertEqual(len(reminders), 1)

        notification = Notification.objects.get()
        self.assertEqual(notification.debtor, self.due)
        self.assertEqual(notification.seller, self.seller)
        self.assertFalse(notification.is_sended)
        self.assertTrue(notification.message.startswith(REMINDER_PREFIX))
        self.assertIn("120 due", notification.message)
        self.assertIn("80 due", notification.message)

    def test_wider_horizon_includes_later_payments(self):
        reminders = queue_payment_reminders(days_ahead=30)
        self.assertEqual({reminder.debtor_id for reminder in reminders}, {self.due.id, self.later.id})

    def test_second_run_on_same_day_queues_nothing(self):
        queue_payment_reminders(days_ahead=3)
        self.assertEqual(queue_payment_reminders(days_ahead=3), [])
        self.assertEqual(Notification.objects.count(), 1)

    def test_command_reports_queued_reminders(self):
        out = StringIO()
        call_command("send_payment_reminders", "--days-ahead", "3", stdout=out)
        self.assertIn("Queued reminders: 1", out.getvalue())

        out = StringIO()
        call_command("send_payment_reminders", "--days-ahead", "3", stdout=out)
        self.assertIn("Queued reminders: 0", out.getvalue())

    def test_command_rejects_invalid_date(self):
        with self.assertRaises(CommandError):
            call_command("send_payment_reminders", "--date", "01/06/2026")

    def test_command_with_reference_date_queues_once_per_run_day(self):
        yesterday = (self.today - timedelta(days=1)).isoformat()
        call_command("send_payment_reminders", "--date", yesterday, stdout=StringIO())
        call_command("send_payment_reminders", "--date", yesterday, stdout=StringIO())
        self.assertEqual(Notification.objects.filter(debtor=self.due).count(), 1)
        self.assertEqual(Notification.objects.count(), 1)
