import uuid

from django.db import models


class Notification(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    debtor = models.ForeignKey("debtors.Debtor", on_delete=models.PROTECT, related_name="notifications")
    seller = models.ForeignKey("accounts.User", on_delete=models.PROTECT, related_name="notifications")
    message = models.TextField()
    is_sended = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["debtor", "created_at"], name="notification_debtor_idx"),
            models.Index(fields=["seller", "created_at"], name="notification_seller_idx"),
        ]
