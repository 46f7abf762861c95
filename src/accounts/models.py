"""Custom user model for ControlHS."""

from django.contrib.auth.models import AbstractUser
from django.db import models


class CustomUser(AbstractUser):
    """Extended user with display name, role and home sector."""

    ROLE_ADMINISTRATOR = "administrator"
    ROLE_MANAGER = "manager"
    ROLE_USER = "user"

    ROLE_CHOICES = [
        (ROLE_ADMINISTRATOR, "Administrator"),
        (ROLE_MANAGER, "Manager"),
        (ROLE_USER, "User"),
    ]

    display_name = models.CharField(
        max_length=255,
        blank=True,
        help_text="Human-readable name displayed in custody records",
    )
    email = models.EmailField("email address", blank=False, unique=True)
    role = models.CharField(
        max_length=20,
        choices=ROLE_CHOICES,
        default=ROLE_USER,
        help_text="Decides who may approve and effectuate transfers",
    )
    sector = models.ForeignKey(
        "assets.Sector",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="members",
        help_text="Sector the user works in",
    )

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"

    def get_display_name(self):
        """Return display_name if set, otherwise full name or username."""
        if self.display_name:
            return self.display_name
        full = self.get_full_name()
        return full if full else self.username

    def __str__(self):
        return self.get_display_name()
