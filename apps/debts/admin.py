from django.contrib import admin

from apps.debts.models import Debt, DebtImage, Payment, PaymentHistory


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0


class DebtImageInline(admin.TabularInline):
    model = DebtImage
    extra = 0


@admin.register(Debt)
class DebtAdmin(admin.ModelAdmin):
    list_display = ("title", "debtor", "created_at")
    search_fields = ("title", "debtor__name")
    autocomplete_fields = ("debtor",)
    inlines = [PaymentInline, DebtImageInline]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("debt", "amount", "date", "is_active", "created_at")
    list_filter = ("is_active", "date")
    search_fields = ("debt__title", "debt__debtor__name")
    autocomplete_fields = ("debt",)


@admin.register(PaymentHistory)
class PaymentHistoryAdmin(admin.ModelAdmin):
    list_display = ("debt", "payment", "action", "amount", "date", "actor", "created_at")
    list_filter = ("action",)
    search_fields = ("debt__title", "debt__debtor__name")
