import logging

from django.db import DEFAULT_DB_ALIAS, transaction
from django.db.models import Prefetch, Q

from apps.common.exceptions import NotFound, store_errors
from apps.common.pagination import page_bounds
from apps.common.permissions import ensure_owner_or_elevated
from apps.debtors.models import Debtor, DebtorImage, DebtorPhone
from apps.debtors.querysets import get_debtor_or_404, with_debtor_totals
from apps.debts.models import Debt
from apps.debts.querysets import attach_next_payments, with_debt_totals, with_payment_schedule
from apps.debts.services import delete_debt_children
from apps.notifications.models import Notification

logger = logging.getLogger(__name__)

DEBTOR_SCALAR_FIELDS = ("name", "address", "note")
SORT_FIELDS = ("created_at", "updated_at", "name", "address", "star")


def _create_children(debtor, phones, images, using):
    DebtorPhone.objects.using(using).bulk_create([DebtorPhone(debtor=debtor, phone_number=phone) for phone in phones])
    DebtorImage.objects.using(using).bulk_create([DebtorImage(debtor=debtor, name=name) for name in images])


def create_debtor(*, seller, name, address, note="", phones=(), images=(), using=DEFAULT_DB_ALIAS):
    with store_errors("Error creating debtor"):
        with transaction.atomic(using=using):
            debtor = Debtor.objects.using(using).create(seller=seller, name=name, address=address, note=note)
            _create_children(debtor, phones, images, using)
        debtor = Debtor.objects.using(using).prefetch_related("phones", "images").get(pk=debtor.pk)

    logger.info("Debtor %s created by seller %s", debtor.pk, seller.pk)
    return debtor


def list_debtors(
    *,
    seller,
    search="",
    page=1,
    limit=20,
    sort_by="created_at",
    sort_order="desc",
    using=DEFAULT_DB_ALIAS,
):
    if sort_by not in SORT_FIELDS:
        sort_by = "created_at"
    queryset = Debtor.objects.using(using).filter(seller=seller)
    if search:
        queryset = queryset.filter(Q(name__icontains=search) | Q(address__icontains=search))

    ordering = sort_by if sort_order == "asc" else f"-{sort_by}"
    offset, end = page_bounds(page, limit)
    with store_errors("Error fetching debtors"):
        total = queryset.count()
        debtors = list(with_debtor_totals(queryset).prefetch_related("phones").order_by(ordering, "pk")[offset:end])
    return debtors, total


def get_debtor(debtor_id, *, user, using=DEFAULT_DB_ALIAS):
    """Debtor with phones, images and debts; each debt carries totals and its next active payment."""
    queryset = with_debtor_totals(Debtor.objects.using(using)).select_related("seller").prefetch_related(
        "phones",
        "images",
        Prefetch("debts", queryset=with_payment_schedule(with_debt_totals(Debt.objects.order_by("-created_at", "pk")))),
    )
    with store_errors("Error fetching debtor"):
        debtor = queryset.filter(pk=debtor_id).first()
    if debtor is None:
        raise NotFound("Debtor not found")
    ensure_owner_or_elevated(debtor.seller_id, user)

    debts = attach_next_payments(list(debtor.debts.all()))
    debtor.total_amount = sum((debt.total_payments for debt in debts), 0)
    return debtor


def update_debtor(debtor_id, *, user, data, using=DEFAULT_DB_ALIAS):
    """Replace phones and images wholesale.

    Both child sets are always cleared. They are recreated only from a non-empty
    list in ``data``, so omitting ``phones`` or ``images`` leaves the debtor with none.
    """
    debtor = get_debtor_or_404(debtor_id, using)
    ensure_owner_or_elevated(debtor.seller_id, user)
    phones = data.get("phones") or []
    images = data.get("images") or []
    fields = {key: value for key, value in data.items() if key in DEBTOR_SCALAR_FIELDS}

    with store_errors("Error updating debtor"):
        with transaction.atomic(using=using):
            DebtorPhone.objects.using(using).filter(debtor_id=debtor.pk).delete()
            DebtorImage.objects.using(using).filter(debtor_id=debtor.pk).delete()
            for key, value in fields.items():
                setattr(debtor, key, value)
            debtor.save(using=using, update_fields=[*fields, "updated_at"])
            _create_children(debtor, phones, images, using)
        debtor = Debtor.objects.using(using).prefetch_related("phones", "images").get(pk=debtor.pk)

    logger.info("Debtor %s updated by user %s", debtor.pk, user.pk)
    return debtor


def toggle_star(debtor_id, *, user, using=DEFAULT_DB_ALIAS):
    with store_errors("Error updating debtor"):
        with transaction.atomic(using=using):
            debtor = Debtor.objects.using(using).select_for_update().filter(pk=debtor_id).first()
            if debtor is None:
                raise NotFound("Debtor not found")
            ensure_owner_or_elevated(debtor.seller_id, user)
            debtor.star = not debtor.star
            debtor.save(using=using, update_fields=["star", "updated_at"])
    return debtor


def delete_debtor(debtor_id, *, user, using=DEFAULT_DB_ALIAS):
    """Remove the debtor graph in one transaction.

    Order: per debt (history, payments, images), then debts, then the debtor's
    images, phones and notifications, then the debtor itself. Foreign keys are
    PROTECT, so any row left behind aborts the whole transaction.
    """
    debtor = get_debtor_or_404(debtor_id, using)
    ensure_owner_or_elevated(debtor.seller_id, user)

    with store_errors("Error deleting debtor"):
        with transaction.atomic(using=using):
            debt_ids = list(Debt.objects.using(using).filter(debtor_id=debtor.pk).values_list("pk", flat=True))
            for debt_id in debt_ids:
                delete_debt_children(debt_id, using=using)
            Debt.objects.using(using).filter(debtor_id=debtor.pk).delete()
            DebtorImage.objects.using(using).filter(debtor_id=debtor.pk).delete()
            DebtorPhone.objects.using(using).filter(debtor_id=debtor.pk).delete()
            Notification.objects.using(using).filter(debtor_id=debtor.pk).delete()
            Debtor.objects.using(using).filter(pk=debtor.pk).delete()

    logger.info("Debtor %s deleted with %s debts by user %s", debtor.pk, len(debt_ids), user.pk)
