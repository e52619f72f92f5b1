from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.management.base import BaseCommand

from apps.accounts.models import UserRole


class Command(BaseCommand):
    help = "Create one auth group per seller role, optionally adding users to the group of their role"

    def add_arguments(self, parser):
        parser.add_argument("--sync-users", action="store_true", help="Add every user to the group named by its role.")

    def handle(self, *args, **options):
        groups = {}
        for role in UserRole.values:
            group, created = Group.objects.get_or_create(name=role)
            groups[role] = group
            state = "created" if created else "exists"
            self.stdout.write(self.style.SUCCESS(f"{group.name}: {state}"))

        if not options["sync_users"]:
            return

        synced = 0
        for user in get_user_model().objects.filter(role__in=groups):
            user.groups.add(groups[user.role])
            synced += 1
        self.stdout.write(self.style.SUCCESS(f"Users synced: {synced}"))
