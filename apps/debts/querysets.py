from django.db.models import BigIntegerField, OuterRef, Prefetch, Subquery, Sum, Value
from django.db.models.functions import Coalesce

from apps.debts.models import Payment


AMOUNT_FIELD = BigIntegerField()


def with_debt_totals(queryset):
    """Annotate ``total_payments``: every payment of the debt, active or not."""
    total_subquery = (
        Payment.objects.filter(debt_id=OuterRef("pk"))
        .order_by()
        .values("debt_id")
        .annotate(total=Sum("amount"))
        .values("total")
    )
    return queryset.annotate(
        total_payments=Coalesce(Subquery(total_subquery, output_field=AMOUNT_FIELD), Value(0, output_field=AMOUNT_FIELD)),
    )


def with_payment_schedule(queryset):
    return queryset.prefetch_related(
        Prefetch("payments", queryset=Payment.objects.order_by("date", "created_at")),
        "images",
    )


def next_active_payment(payments):
    active = [payment for payment in payments if payment.is_active]
    if not active:
        return None
    return min(active, key=lambda payment: (payment.date, payment.created_at))


def attach_next_payments(debts):
    for debt in debts:
        debt.next_payment = next_active_payment(debt.payments.all())
    return debts
