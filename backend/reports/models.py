"""
Reports app models.

A ``Report`` is a citizen-submitted crime report and the aggregate the
case-status workflow manages.  It is created in ``pending`` status with an
empty history; from then on the workflow fields (``status``,
``status_history``, ``current_officer_id``, ``investigation_started_at``,
``investigation_duration``) are written exclusively by
``reports.services.CaseStatusService.perform_transition`` through a
``reports.store`` implementation.
"""

import uuid

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models

from core.models import TimeStampedModel


# ────────────────────────────────────────────────────────────────────
# Choice enumerations
# ────────────────────────────────────────────────────────────────────

class CaseStatus(models.TextChoices):
    """
    Lifecycle of a report, from citizen submission to archive.

    ``rejected`` and ``archived`` are terminal.  ``closed`` can still be
    reopened into ``investigating`` by a supervisor.
    """

    PENDING = "pending", "Pending Validation"
    VALIDATED = "validated", "Validated"
    ASSIGNED = "assigned", "Assigned to Investigator"
    ACCEPTED = "accepted", "Accepted by Investigator"
    RESPONDING = "responding", "Responding to Scene"
    INVESTIGATING = "investigating", "Under Investigation"
    RESOLVED = "resolved", "Resolved (Pending Approval)"
    CLOSED = "closed", "Closed"
    ARCHIVED = "archived", "Archived"
    REJECTED = "rejected", "Rejected"


TERMINAL_STATUSES = frozenset({CaseStatus.REJECTED, CaseStatus.ARCHIVED})

#: Keys of the plain-dict "document" view the workflow engine works on.
DOCUMENT_FIELDS: tuple[str, ...] = (
    "id",
    "status",
    "status_history",
    "current_officer_id",
    "investigation_started_at",
    "investigation_duration",
    "created_at",
    "updated_at",
)


# ────────────────────────────────────────────────────────────────────
# Models
# ────────────────────────────────────────────────────────────────────

class Report(TimeStampedModel):
    """
    Citizen crime report under case-status management.

    ``created_at`` doubles as the report's submission timestamp, which is
    the SLA baseline while the history is still empty.  ``version`` is an
    optimistic-concurrency counter bumped by every workflow write.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
    )
    reporter = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="reports",
        verbose_name="Reporter",
    )
    category = models.CharField(
        max_length=100,
        blank=True,
        default="",
        verbose_name="Category",
    )
    description = models.TextField(
        verbose_name="Description",
    )
    jurisdiction_id = models.CharField(
        max_length=64,
        blank=True,
        default="",
        verbose_name="Jurisdiction",
        help_text="Used to prefer local officers when auto-assigning.",
    )

    # ── Workflow state (engine-owned) ───────────────────────────────
    status = models.CharField(
        max_length=20,
        choices=CaseStatus.choices,
        default=CaseStatus.PENDING,
        verbose_name="Current Status",
        db_index=True,
    )
    status_history = models.JSONField(
        default=list,
        blank=True,
        encoder=DjangoJSONEncoder,
        verbose_name="Status History",
        help_text="Append-only list of status transitions.",
    )
    current_officer_id = models.CharField(
        max_length=64,
        null=True,
        blank=True,
        verbose_name="Current Officer",
        db_index=True,
    )
    investigation_started_at = models.DateTimeField(
        null=True,
        blank=True,
        verbose_name="Investigation Started At",
    )
    investigation_duration = models.PositiveIntegerField(
        null=True,
        blank=True,
        verbose_name="Investigation Duration (hours)",
    )
    version = models.PositiveIntegerField(
        default=0,
        verbose_name="Version",
    )

    class Meta:
        verbose_name = "Report"
        verbose_name_plural = "Reports"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="report_status_created_idx"),
        ]

    def __str__(self):
        return f"Report {self.pk} [{self.status}]"

    @property
    def is_terminal(self) -> bool:
        """Return True once the report can no longer change status."""
        return self.status in TERMINAL_STATUSES

    def to_document(self) -> dict:
        """Return the workflow fields as a plain dict."""
        return {
            "id": str(self.pk),
            "status": self.status,
            "status_history": list(self.status_history or []),
            "current_officer_id": self.current_officer_id,
            "investigation_started_at": self.investigation_started_at,
            "investigation_duration": self.investigation_duration,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
