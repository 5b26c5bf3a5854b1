"""
Accounts app models.

Defines the closed ``UserRole`` enumeration used by the report workflow
and a custom User model that extends Django's ``AbstractUser`` with a
single role assignment and the jurisdiction an officer serves.
"""

from django.contrib.auth.models import AbstractUser
from django.db import models


class UserRole(models.TextChoices):
    """
    Workflow roles.

    Capability inheritance between roles (e.g. a supervisor can act as an
    investigator) is defined by the report workflow, not here.
    """

    CITIZEN = "citizen", "Citizen"
    OFFICER = "officer", "Officer"
    DESK_OFFICER = "desk_officer", "Desk Officer"
    INVESTIGATOR = "investigator", "Investigator"
    SUPERVISOR = "supervisor", "Supervisor"
    ADMIN = "admin", "Administrator"


class User(AbstractUser):
    """
    Custom user model for the crime-reporting platform.

    Each user holds exactly **one** role at a time.  Citizens register
    with the default ``citizen`` role; an administrator promotes police
    personnel to the appropriate role.
    """

    role = models.CharField(
        max_length=20,
        choices=UserRole.choices,
        default=UserRole.CITIZEN,
        verbose_name="Role",
        db_index=True,
    )
    badge_number = models.CharField(
        max_length=30,
        blank=True,
        default="",
        verbose_name="Badge Number",
    )
    jurisdiction_id = models.CharField(
        max_length=64,
        blank=True,
        default="",
        verbose_name="Jurisdiction",
        db_index=True,
    )

    class Meta:
        verbose_name = "User"
        verbose_name_plural = "Users"

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"
