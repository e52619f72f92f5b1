import logging
from datetime import timedelta
from itertools import groupby

from django.conf import settings
from django.db import DEFAULT_DB_ALIAS, transaction
from django.db.models import Exists, OuterRef, Subquery
from django.utils import timezone

from apps.common.exceptions import Forbidden, NotFound, store_errors
from apps.common.pagination import paginate
from apps.common.permissions import ensure_owner_or_elevated
from apps.debtors.models import Debtor
from apps.debtors.querysets import get_debtor_or_404
from apps.debts.models import Payment
from apps.notifications.models import Notification

logger = logging.getLogger(__name__)

MODE_ALL = "All"
MODE_SENDED = "Sended"
REMINDER_PREFIX = "Payment reminder"


def _load_notification(notification_id, using):
    with store_errors("Error fetching notification"):
        notification = Notification.objects.using(using).filter(pk=notification_id).first()
    if notification is None:
        raise NotFound("Notification not found")
    return notification


def list_debtor_notifications(*, debtor_id, seller, search="", page=None, limit=None, using=DEFAULT_DB_ALIAS):
    with store_errors("Error fetching notifications"):
        debtor = Debtor.objects.using(using).filter(pk=debtor_id, seller=seller).first()
    if debtor is None:
        raise NotFound("Debtor not found")

    queryset = Notification.objects.using(using).filter(debtor_id=debtor.pk, seller=seller)
    if search:
        queryset = queryset.filter(message__icontains=search)

    with store_errors("Error fetching notifications"):
        total = queryset.count()
        notifications = list(paginate(queryset.order_by("created_at", "pk"), page, limit))
    return debtor, notifications, total


def list_notification_summaries(*, seller, mode=MODE_ALL, page=None, limit=None, using=DEFAULT_DB_ALIAS):
    """One row per debtor of the seller, newest debtor first, each with its latest notification."""
    queryset = Debtor.objects.using(using).filter(seller=seller)
    if mode == MODE_SENDED:
        queryset = queryset.filter(Exists(Notification.objects.filter(debtor_id=OuterRef("pk"))))

    latest = Notification.objects.filter(debtor_id=OuterRef("pk")).order_by("-created_at", "-pk").values("pk")[:1]
    with store_errors("Error fetching notifications"):
        total = queryset.count()
        ordered = queryset.annotate(latest_notification_id=Subquery(latest)).prefetch_related("phones").order_by("-created_at", "pk")
        debtors = list(paginate(ordered, page, limit))
        latest_ids = [debtor.latest_notification_id for debtor in debtors if debtor.latest_notification_id]
        notifications = Notification.objects.using(using).in_bulk(latest_ids)

    for debtor in debtors:
        debtor.latest_notification = notifications.get(debtor.latest_notification_id)
    return debtors, total


def create_notification(*, debtor_id, seller, message, using=DEFAULT_DB_ALIAS):
    debtor = get_debtor_or_404(debtor_id, using)
    ensure_owner_or_elevated(debtor.seller_id, seller)

    with store_errors("Error creating notification"):
        notification = Notification.objects.using(using).create(
            debtor=debtor,
            seller=seller,
            message=message,
            is_sended=True,
        )
    logger.info("Notification %s sent to debtor %s by seller %s", notification.pk, debtor.pk, seller.pk)
    return notification


def get_notification(notification_id, *, user, using=DEFAULT_DB_ALIAS):
    notification = _load_notification(notification_id, using)
    ensure_owner_or_elevated(notification.seller_id, user)
    return notification


def update_notification(notification_id, *, user, message, using=DEFAULT_DB_ALIAS):
    notification = _load_notification(notification_id, using)
    if notification.seller_id != user.id:
        logger.warning("User %s denied update of notification %s", user.pk, notification.pk)
        raise Forbidden("Access denied")

    notification.message = message
    with store_errors("Error updating notification"):
        notification.save(using=using, update_fields=["message", "updated_at"])
    return notification


def delete_notification(notification_id, *, user, using=DEFAULT_DB_ALIAS):
    notification = _load_notification(notification_id, using)
    ensure_owner_or_elevated(notification.seller_id, user)
    with store_errors("Error deleting notification"):
        Notification.objects.using(using).filter(pk=notification.pk).delete()


def clear_debtor_notifications(debtor_id, *, user, using=DEFAULT_DB_ALIAS):
    debtor = get_debtor_or_404(debtor_id, using)
    ensure_owner_or_elevated(debtor.seller_id, user)
    with store_errors("Error deleting notifications"):
        deleted, _ = Notification.objects.using(using).filter(debtor_id=debtor.pk).delete()
    logger.info("Cleared %s notifications of debtor %s", deleted, debtor.pk)
    return deleted


def reminder_message(payments):
    lines = [f"{payment.amount} due {payment.date.isoformat()} ({payment.debt.title})" for payment in payments]
    return f"{REMINDER_PREFIX}: " + "; ".join(lines)


def queue_payment_reminders(*, today=None, days_ahead=None, using=DEFAULT_DB_ALIAS):
    """Queue one unsent reminder per debtor with active payments due by ``today + days_ahead``.

    ``today`` only moves the due horizon. Debtors that already got a reminder
    created on the current calendar day are skipped, whatever ``today`` is.
    """
    run_day = timezone.localdate()
    today = today or run_day
    days_ahead = settings.REMINDER_DAYS_AHEAD if days_ahead is None else days_ahead
    horizon = today + timedelta(days=days_ahead)

    due_payments = (
        Payment.objects.using(using)
        .filter(is_active=True, date__lte=horizon)
        .select_related("debt__debtor")
        .order_by("debt__debtor_id", "date", "created_at")
    )
    reminded_today = (
        Notification.objects.using(using)
        .filter(is_sended=False, message__startswith=REMINDER_PREFIX, created_at__date=run_day)
        .values_list("debtor_id", flat=True)
    )
    with store_errors("Error fetching due payments"):
        already_reminded = set(reminded_today)
        due_payments = list(due_payments)

    reminders = []
    for debtor_id, payments in groupby(due_payments, key=lambda payment: payment.debt.debtor_id):
        if debtor_id in already_reminded:
            continue
        payments = list(payments)
        debtor = payments[0].debt.debtor
        reminders.append(
            Notification(debtor=debtor, seller_id=debtor.seller_id, message=reminder_message(payments), is_sended=False)
        )

    with store_errors("Error queueing payment reminders"):
        with transaction.atomic(using=using):
            Notification.objects.using(using).bulk_create(reminders)

    logger.info("Queued %s payment reminders for payments due by %s", len(reminders), horizon)
    return reminders
