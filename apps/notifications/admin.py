from django.contrib import admin

from apps.notifications.models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("debtor", "seller", "is_sended", "created_at")
    list_filter = ("is_sended", "seller")
    search_fields = ("message", "debtor__name", "seller__username")
    autocomplete_fields = ("debtor", "seller")
