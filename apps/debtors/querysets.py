from django.db.models import OuterRef, Subquery, Sum, Value
from django.db.models.functions import Coalesce

from apps.common.exceptions import NotFound, store_errors
from apps.debtors.models import Debtor
from apps.debts.models import Payment
from apps.debts.querysets import AMOUNT_FIELD


def with_debtor_totals(queryset):
    """Annotate ``total_debt``: sum of active payment amounts across all the debtor's debts."""
    active_subquery = (
        Payment.objects.filter(debt__debtor_id=OuterRef("pk"), is_active=True)
        .order_by()
        .values("debt__debtor_id")
        .annotate(total=Sum("amount"))
        .values("total")
    )
    return queryset.annotate(
        total_debt=Coalesce(Subquery(active_subquery, output_field=AMOUNT_FIELD), Value(0, output_field=AMOUNT_FIELD)),
    )


def get_debtor_or_404(debtor_id, using, queryset=None):
    queryset = Debtor.objects.all() if queryset is None else queryset
    with store_errors("Error fetching debtor"):
        debtor = queryset.using(using).filter(pk=debtor_id).first()
    if debtor is None:
        raise NotFound("Debtor not found")
    return debtor
