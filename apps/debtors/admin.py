from django.contrib import admin

from apps.debtors.models import Debtor, DebtorImage, DebtorPhone


class DebtorPhoneInline(admin.TabularInline):
    model = DebtorPhone
    extra = 0


class DebtorImageInline(admin.TabularInline):
    model = DebtorImage
    extra = 0


@admin.register(Debtor)
class DebtorAdmin(admin.ModelAdmin):
    list_display = ("name", "address", "seller", "star", "created_at")
    list_filter = ("star", "seller")
    search_fields = ("name", "address", "phones__phone_number", "seller__username")
    autocomplete_fields = ("seller",)
    inlines = [DebtorPhoneInline, DebtorImageInline]
