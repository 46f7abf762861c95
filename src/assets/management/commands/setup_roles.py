"""Management command to create the role groups used in the admin."""

from django.contrib.auth.models import Group, Permission
from django.contrib.contenttypes.models import ContentType
from django.core.management.base import BaseCommand

from accounts.models import CustomUser
from assets.models import Asset, AuditLog, Sector, TransferRequest

ROLE_GROUPS = {
    CustomUser.ROLE_ADMINISTRATOR: "Administrator",
    CustomUser.ROLE_MANAGER: "Manager",
    CustomUser.ROLE_USER: "User",
}


class Command(BaseCommand):
    help = "Create the Administrator, Manager and User groups"

    def add_arguments(self, parser):
        parser.add_argument(
            "--assign",
            action="store_true",
            help="Also put every user in the group matching their role",
        )

    def handle(self, *args, **options):
        def perms(model, *actions):
            ct = ContentType.objects.get_for_model(model)
            return list(
                Permission.objects.filter(
                    content_type=ct,
                    codename__in=[
                        f"{a}_{model._meta.model_name}" for a in actions
                    ],
                )
            )

        everything = ("view", "add", "change", "delete")
        groups = {}

        # Administrator group
        admin_group, _ = Group.objects.get_or_create(name="Administrator")
        admin_group.permissions.set(
            perms(Asset, *everything)
            + perms(Sector, *everything)
            + perms(TransferRequest, "view", "change")
            + perms(AuditLog, "view")
            + perms(CustomUser, *everything)
        )
        groups[CustomUser.ROLE_ADMINISTRATOR] = admin_group
        self.stdout.write(
            self.style.SUCCESS("Created/updated 'Administrator' group")
        )

        # Manager group
        manager, _ = Group.objects.get_or_create(name="Manager")
        manager.permissions.set(
            perms(Asset, "view", "add", "change")
            + perms(Sector, "view")
            + perms(TransferRequest, "view", "change")
            + perms(AuditLog, "view")
        )
        groups[CustomUser.ROLE_MANAGER] = manager
        self.stdout.write(
            self.style.SUCCESS("Created/updated 'Manager' group")
        )

        # User group
        user_group, _ = Group.objects.get_or_create(name="User")
        user_group.permissions.set(
            perms(Asset, "view")
            + perms(Sector, "view")
            + perms(TransferRequest, "view")
        )
        groups[CustomUser.ROLE_USER] = user_group
        self.stdout.write(self.style.SUCCESS("Created/updated 'User' group"))

        if options["assign"]:
            role_groups = list(groups.values())
            for user in CustomUser.objects.all():
                user.groups.remove(*role_groups)
                user.groups.add(groups.get(user.role, user_group))
            self.stdout.write(
                self.style.SUCCESS("Assigned users to their role groups.")
            )

        self.stdout.write(self.style.SUCCESS("All role groups configured."))
