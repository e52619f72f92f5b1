from django.contrib.auth.models import AbstractUser
from django.db import models


class UserRole(models.TextChoices):
    SUPER_ADMIN = "SUPER_ADMIN", "Super Admin"
    ADMIN = "ADMIN", "Admin"
    SELLER = "SELLER", "Seller"


ELEVATED_ROLES = frozenset({UserRole.ADMIN, UserRole.SUPER_ADMIN})


class User(AbstractUser):
    """Seller account. Debtors and notifications are owned by a user."""

    role = models.CharField(max_length=20, choices=UserRole.choices, default=UserRole.SELLER)
    phone = models.CharField(max_length=50, blank=True)
