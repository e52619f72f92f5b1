import uuid

from django.db import models


class Debtor(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    seller = models.ForeignKey("accounts.User", on_delete=models.PROTECT, related_name="debtors")
    name = models.CharField(max_length=255)
    address = models.CharField(max_length=255)
    note = models.TextField(blank=True)
    star = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["seller", "created_at"], name="debtor_seller_created_idx"),
            models.Index(fields=["name"], name="debtor_name_idx"),
        ]

    def __str__(self):
        return self.name


class DebtorPhone(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    debtor = models.ForeignKey(Debtor, on_delete=models.PROTECT, related_name="phones")
    phone_number = models.CharField(max_length=50)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at"]

    def __str__(self):
        return self.phone_number


class DebtorImage(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    debtor = models.ForeignKey(Debtor, on_delete=models.PROTECT, related_name="images")
    name = models.CharField(max_length=255)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at"]
