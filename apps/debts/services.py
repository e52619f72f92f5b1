import logging

from django.db import DEFAULT_DB_ALIAS, transaction
from rest_framework import serializers

from apps.common.exceptions import NotFound, store_errors
from apps.common.pagination import page_bounds
from apps.common.permissions import ensure_owner_or_elevated, is_elevated
from apps.debtors.querysets import get_debtor_or_404
from apps.debts.models import Debt, DebtImage, Payment, PaymentAction, PaymentHistory
from apps.debts.querysets import attach_next_payments, with_debt_totals, with_payment_schedule

logger = logging.getLogger(__name__)

DEBT_SCALAR_FIELDS = ("title", "note")


def record_payment_history(*, payment, action, actor, using=DEFAULT_DB_ALIAS):
    return PaymentHistory.objects.using(using).create(
        debt_id=payment.debt_id,
        payment=payment,
        action=action,
        amount=payment.amount,
        date=payment.date,
        actor=actor,
    )


def delete_debt_children(debt_id, *, using=DEFAULT_DB_ALIAS):
    """Delete a debt's history, payments and images, in that order. Caller owns the transaction."""
    PaymentHistory.objects.using(using).filter(debt_id=debt_id).delete()
    Payment.objects.using(using).filter(debt_id=debt_id).delete()
    DebtImage.objects.using(using).filter(debt_id=debt_id).delete()


def _debt_queryset(using):
    return with_payment_schedule(with_debt_totals(Debt.objects.using(using))).select_related("debtor")


def _load_debt(debt_id, using):
    with store_errors("Error fetching debt"):
        debt = Debt.objects.using(using).select_related("debtor").filter(pk=debt_id).first()
    if debt is None:
        raise NotFound("Debt not found")
    return debt


def _load_payment(payment_id, using):
    with store_errors("Error fetching payment"):
        payment = Payment.objects.using(using).select_related("debt__debtor").filter(pk=payment_id).first()
    if payment is None:
        raise NotFound("Payment not found")
    return payment


def list_debts(*, user, debtor_id=None, search="", page=1, limit=20, using=DEFAULT_DB_ALIAS):
    queryset = _debt_queryset(using)
    if search:
        queryset = queryset.filter(title__icontains=search)
    if debtor_id:
        debtor = get_debtor_or_404(debtor_id, using)
        ensure_owner_or_elevated(debtor.seller_id, user)
        queryset = queryset.filter(debtor_id=debtor.pk)
    elif not is_elevated(user):
        queryset = queryset.filter(debtor__seller=user)

    offset, end = page_bounds(page, limit)
    with store_errors("Error fetching debts"):
        total = queryset.count()
        debts = attach_next_payments(list(queryset.order_by("-created_at", "pk")[offset:end]))
    return debts, total


def get_debt(debt_id, *, user, using=DEFAULT_DB_ALIAS):
    with store_errors("Error fetching debt"):
        debt = _debt_queryset(using).filter(pk=debt_id).first()
    if debt is None:
        raise NotFound("Debt not found")
    ensure_owner_or_elevated(debt.debtor.seller_id, user)
    attach_next_payments([debt])
    return debt


def create_debt(*, debtor_id, user, title, payments, note="", images=(), using=DEFAULT_DB_ALIAS):
    debtor = get_debtor_or_404(debtor_id, using)
    ensure_owner_or_elevated(debtor.seller_id, user)

    with store_errors("Error creating debt"):
        with transaction.atomic(using=using):
            debt = Debt.objects.using(using).create(debtor=debtor, title=title, note=note)
            for item in payments:
                payment = Payment.objects.using(using).create(debt=debt, amount=item["amount"], date=item["date"])
                record_payment_history(payment=payment, action=PaymentAction.CREATED, actor=user, using=using)
            DebtImage.objects.using(using).bulk_create([DebtImage(debt=debt, name=name) for name in images])

    logger.info("Debt %s created for debtor %s by user %s", debt.pk, debtor.pk, user.pk)
    return get_debt(debt.pk, user=user, using=using)


def update_debt(debt_id, *, user, data, using=DEFAULT_DB_ALIAS):
    """Update title/note. Images are replaced wholesale; an omitted or empty list leaves none."""
    debt = _load_debt(debt_id, using)
    ensure_owner_or_elevated(debt.debtor.seller_id, user)
    images = data.get("images") or []
    fields = {key: value for key, value in data.items() if key in DEBT_SCALAR_FIELDS}

    with store_errors("Error updating debt"):
        with transaction.atomic(using=using):
            DebtImage.objects.using(using).filter(debt_id=debt.pk).delete()
            for key, value in fields.items():
                setattr(debt, key, value)
            debt.save(using=using, update_fields=[*fields, "updated_at"])
            DebtImage.objects.using(using).bulk_create([DebtImage(debt=debt, name=name) for name in images])

    return get_debt(debt.pk, user=user, using=using)


def delete_debt(debt_id, *, user, using=DEFAULT_DB_ALIAS):
    debt = _load_debt(debt_id, using)
    ensure_owner_or_elevated(debt.debtor.seller_id, user)

    with store_errors("Error deleting debt"):
        with transaction.atomic(using=using):
            delete_debt_children(debt.pk, using=using)
            Debt.objects.using(using).filter(pk=debt.pk).delete()

    logger.info("Debt %s deleted by user %s", debt_id, user.pk)


def add_payment(*, debt_id, user, amount, date, using=DEFAULT_DB_ALIAS):
    debt = _load_debt(debt_id, using)
    ensure_owner_or_elevated(debt.debtor.seller_id, user)

    with store_errors("Error creating payment"):
        with transaction.atomic(using=using):
            payment = Payment.objects.using(using).create(debt=debt, amount=amount, date=date)
            record_payment_history(payment=payment, action=PaymentAction.CREATED, actor=user, using=using)
    return payment


def update_payment(payment_id, *, user, data, using=DEFAULT_DB_ALIAS):
    payment = _load_payment(payment_id, using)
    ensure_owner_or_elevated(payment.debt.debtor.seller_id, user)
    if not payment.is_active:
        raise serializers.ValidationError({"payment": "Only active payments can be edited."})

    fields = {key: value for key, value in data.items() if key in ("amount", "date")}
    with store_errors("Error updating payment"):
        with transaction.atomic(using=using):
            for key, value in fields.items():
                setattr(payment, key, value)
            payment.save(using=using, update_fields=[*fields, "updated_at"])
            record_payment_history(payment=payment, action=PaymentAction.UPDATED, actor=user, using=using)
    return payment


def pay_payment(payment_id, *, user, using=DEFAULT_DB_ALIAS):
    with store_errors("Error paying payment"):
        with transaction.atomic(using=using):
            payment = Payment.objects.using(using).select_for_update().filter(pk=payment_id).first()
            if payment is None:
                raise NotFound("Payment not found")
            ensure_owner_or_elevated(payment.debt.debtor.seller_id, user)
            if not payment.is_active:
                raise serializers.ValidationError({"payment": "Payment is already paid."})
            payment.is_active = False
            payment.save(using=using, update_fields=["is_active", "updated_at"])
            record_payment_history(payment=payment, action=PaymentAction.PAID, actor=user, using=using)

    logger.info("Payment %s marked paid by user %s", payment.pk, user.pk)
    return payment


def payment_history(debt_id, *, user, using=DEFAULT_DB_ALIAS):
    debt = _load_debt(debt_id, using)
    ensure_owner_or_elevated(debt.debtor.seller_id, user)
    with store_errors("Error fetching payment history"):
        return list(
            PaymentHistory.objects.using(using)
            .filter(debt_id=debt.pk)
            .select_related("actor")
            .order_by("created_at", "pk")
        )
