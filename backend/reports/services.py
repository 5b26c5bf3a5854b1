"""
Reports app Service Layer.

This module is the **single source of truth** for all business logic
in the ``reports`` app.  Views must remain thin: validate input via
serializers, call a service method, and return the result wrapped in
a DRF ``Response``.

Architecture
------------
- ``CaseStatusService``      — Case-status workflow engine: transition
                               table, role gate, precondition validator,
                               transactional executor, derived queries.
- ``ReportQueryService``     — Role-scoped queryset construction.
- ``ReportCreationService``  — Citizen report intake (always ``pending``).
- ``ReportAssignmentService`` — Least-loaded officer pick and auto-assignment.

Workflow State-Machine Overview
--------------------------------
  pending ──► validated ──► assigned ──► accepted ──► responding
     │                                                    │
     ▼                                                    ▼
  rejected                     resolved ◄────────── investigating ↺
                                 │  ▲                    ▲
                                 ▼  └── reopen ──────────┤
                               closed ─── reopen ────────┘
                                 │
                                 ▼
                              archived

``rejected`` and ``archived`` are terminal.  Only
``CaseStatusService.perform_transition`` writes the workflow fields of a
report, and it does so through a single ``ReportStore`` transaction.
"""

from __future__ import annotations

import logging
import math
import random
import string
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import Any, Iterable

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db.models import Count, Max, Q, QuerySet
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from accounts.models import UserRole
from core.domain.access import apply_role_filter, get_user_role_name, require_role
from core.domain.exceptions import Conflict, DomainError, NotFound, WorkflowValidationError

from .models import DOCUMENT_FIELDS, CaseStatus, Report
from .store import DjangoReportStore, ReportStore, StoreTransaction

logger = logging.getLogger(__name__)

User = get_user_model()


# ═══════════════════════════════════════════════════════════════════
#  Transition tables
# ═══════════════════════════════════════════════════════════════════

#: Maps each status to the statuses reachable from it in one step.
VALID_STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    CaseStatus.PENDING: frozenset({CaseStatus.VALIDATED, CaseStatus.REJECTED}),
    CaseStatus.VALIDATED: frozenset({CaseStatus.ASSIGNED}),
    CaseStatus.ASSIGNED: frozenset({CaseStatus.ACCEPTED}),
    CaseStatus.ACCEPTED: frozenset({CaseStatus.RESPONDING}),
    CaseStatus.RESPONDING: frozenset({CaseStatus.INVESTIGATING}),
    # Self-transition records progress notes without changing status.
    CaseStatus.INVESTIGATING: frozenset({CaseStatus.RESOLVED, CaseStatus.INVESTIGATING}),
    CaseStatus.RESOLVED: frozenset({CaseStatus.CLOSED, CaseStatus.INVESTIGATING}),
    CaseStatus.CLOSED: frozenset({CaseStatus.ARCHIVED, CaseStatus.INVESTIGATING}),
    CaseStatus.REJECTED: frozenset(),
    CaseStatus.ARCHIVED: frozenset(),
}

#: Maps (from_status, to_status) → the single role required to execute it.
#: Pairs not listed fall back to ``_resolve_required_role``'s defaults.
TRANSITION_ROLES: dict[tuple[str, str], str] = {
    # ── Intake (desk) ───────────────────────────────────────────────
    (CaseStatus.PENDING, CaseStatus.VALIDATED): UserRole.DESK_OFFICER,
    (CaseStatus.PENDING, CaseStatus.REJECTED): UserRole.DESK_OFFICER,
    (CaseStatus.VALIDATED, CaseStatus.ASSIGNED): UserRole.DESK_OFFICER,
    # ── Field work (investigator) ───────────────────────────────────
    (CaseStatus.ASSIGNED, CaseStatus.ACCEPTED): UserRole.INVESTIGATOR,
    (CaseStatus.ACCEPTED, CaseStatus.RESPONDING): UserRole.INVESTIGATOR,
    (CaseStatus.RESPONDING, CaseStatus.INVESTIGATING): UserRole.INVESTIGATOR,
    (CaseStatus.INVESTIGATING, CaseStatus.RESOLVED): UserRole.INVESTIGATOR,
    (CaseStatus.INVESTIGATING, CaseStatus.INVESTIGATING): UserRole.INVESTIGATOR,
    # ── Sign-off and reopen (supervisor) ────────────────────────────
    (CaseStatus.RESOLVED, CaseStatus.CLOSED): UserRole.SUPERVISOR,
    (CaseStatus.RESOLVED, CaseStatus.INVESTIGATING): UserRole.SUPERVISOR,
    (CaseStatus.CLOSED, CaseStatus.ARCHIVED): UserRole.SUPERVISOR,
    (CaseStatus.CLOSED, CaseStatus.INVESTIGATING): UserRole.SUPERVISOR,
}

#: Role → set of roles whose transitions it may execute.
ROLE_CAPABILITIES: dict[str, frozenset[str]] = {
    UserRole.ADMIN: frozenset(UserRole.values),
    UserRole.SUPERVISOR: frozenset({UserRole.SUPERVISOR, UserRole.INVESTIGATOR, UserRole.OFFICER}),
    UserRole.INVESTIGATOR: frozenset({UserRole.INVESTIGATOR}),
    UserRole.DESK_OFFICER: frozenset({UserRole.DESK_OFFICER}),
    # Field officers may act as investigators.
    UserRole.OFFICER: frozenset({UserRole.INVESTIGATOR}),
    UserRole.CITIZEN: frozenset(),
}

DEFAULT_REQUIRED_FIELDS: tuple[str, ...] = ("notes",)

#: Context keys that must be present and truthy for a transition.
TRANSITION_REQUIRED_FIELDS: dict[tuple[str, str], tuple[str, ...]] = {
    (CaseStatus.PENDING, CaseStatus.VALIDATED): ("notes", "triageLevel"),
    (CaseStatus.VALIDATED, CaseStatus.ASSIGNED): ("notes", "assignedTo"),
}

#: One-hop forward progression used when no explicit target is given.
DEFAULT_NEXT_STATUS: dict[str, str] = {
    CaseStatus.PENDING: CaseStatus.VALIDATED,
    CaseStatus.VALIDATED: CaseStatus.ASSIGNED,
    CaseStatus.ASSIGNED: CaseStatus.ACCEPTED,
    CaseStatus.ACCEPTED: CaseStatus.RESPONDING,
    CaseStatus.RESPONDING: CaseStatus.INVESTIGATING,
    CaseStatus.INVESTIGATING: CaseStatus.RESOLVED,
    CaseStatus.RESOLVED: CaseStatus.CLOSED,
    CaseStatus.CLOSED: CaseStatus.ARCHIVED,
    CaseStatus.REJECTED: CaseStatus.REJECTED,
    CaseStatus.ARCHIVED: CaseStatus.ARCHIVED,
}

#: Hours a report may sit in a status before it is overdue.
#: Statuses not listed (rejected, archived) are never overdue.
SLA_HOURS: dict[str, int] = {
    CaseStatus.PENDING: 4,
    CaseStatus.VALIDATED: 2,
    CaseStatus.ASSIGNED: 1,
    CaseStatus.ACCEPTED: 2,
    CaseStatus.RESPONDING: 4,
    CaseStatus.INVESTIGATING: 48,
    CaseStatus.RESOLVED: 24,
    CaseStatus.CLOSED: 72,
}

SUGGESTED_ACTIONS: dict[str, str] = {
    CaseStatus.PENDING: "Validate or reject the report",
    CaseStatus.VALIDATED: "Assign the report to an investigator",
    CaseStatus.ASSIGNED: "Follow up with the assigned investigator for acceptance",
    CaseStatus.ACCEPTED: "Dispatch the investigator to the scene",
    CaseStatus.RESPONDING: "Start the investigation",
    CaseStatus.INVESTIGATING: "Review investigation progress with the supervisor",
    CaseStatus.RESOLVED: "Finalize case closure",
    CaseStatus.CLOSED: "Archive the closed case",
}

_STATUS_LABELS: dict[str, str] = dict(CaseStatus.choices)

_HISTORY_ID_ALPHABET = string.digits + string.ascii_lowercase


# ═══════════════════════════════════════════════════════════════════
#  Data records
# ═══════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class WorkflowValidation:
    """Outcome of ``CaseStatusService.validate_transition``."""

    is_valid: bool
    current_status: str
    target_status: str
    error_message: str | None = None
    required_role: str | None = None
    required_fields: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["required_fields"] = list(self.required_fields)
        return data


@dataclass(frozen=True)
class StatusTransitionContext:
    """Input of ``CaseStatusService.perform_transition``."""

    report_id: str
    current_user_id: str
    user_role: str
    notes: str = ""
    metadata: dict[str, Any] | None = None
    location: dict[str, float] | None = None


@dataclass(frozen=True)
class StatusTransitionResult:
    """Outcome of ``CaseStatusService.perform_transition``."""

    success: bool
    new_status: str | None = None
    status_history_id: str | None = None
    error_message: str | None = None
    warnings: list[str] = field(default_factory=list)
    validation: WorkflowValidation | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "new_status": self.new_status,
            "status_history_id": self.status_history_id,
            "error_message": self.error_message,
            "warnings": list(self.warnings),
        }
        if self.validation is not None:
            data["required_role"] = self.validation.required_role
            data["required_fields"] = list(self.validation.required_fields)
        return data


@dataclass(frozen=True)
class StatusHistoryEntry:
    """
    One immutable audit record in a report's ``status_history``.

    Stored as a plain dict (``to_dict``) with the timestamp serialised as
    an ISO-8601 string.
    """

    id: str
    status: str
    previous_status: str
    timestamp: datetime
    officer_id: str
    officer_role: str
    notes: str = ""
    location: dict[str, float] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status,
            "previous_status": self.previous_status,
            "timestamp": self.timestamp.isoformat(),
            "officer_id": self.officer_id,
            "officer_role": self.officer_role,
            "notes": self.notes,
            "location": self.location,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StatusHistoryEntry:
        """
        Rebuild an entry from its stored form.

        Raises:
            ValueError: If the timestamp is missing or unparseable.
        """
        timestamp = _parse_timestamp(data.get("timestamp"))
        if timestamp is None:
            raise ValueError(f"Unparseable history timestamp: {data.get('timestamp')!r}")
        return cls(
            id=str(data.get("id", "")),
            status=str(data.get("status", "")),
            previous_status=str(data.get("previous_status", "")),
            timestamp=timestamp,
            officer_id=str(data.get("officer_id", "")),
            officer_role=str(data.get("officer_role", "")),
            notes=data.get("notes") or "",
            location=data.get("location"),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class TimelineEntry:
    status: str
    label: str
    timestamp: datetime
    officer_id: str
    officer_role: str
    notes: str
    duration: str | None = None


# ═══════════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════════


def _parse_timestamp(value: Any) -> datetime | None:
    """Coerce a stored timestamp (datetime or ISO string) to an aware datetime."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = parse_datetime(value)
        except ValueError:
            return None
        if parsed is None:
            return None
    else:
        return None
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, dt_timezone.utc)
    return parsed


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _generate_history_id(now: datetime) -> str:
    """Return ``hist_<epoch ms>_<9 base36 chars>``."""
    suffix = "".join(random.choices(_HISTORY_ID_ALPHABET, k=9))
    return f"hist_{int(now.timestamp() * 1000)}_{suffix}"


def _as_document(report: Any) -> dict[str, Any]:
    if isinstance(report, Report):
        return report.to_document()
    return report


def _status_label(status: str) -> str:
    return _STATUS_LABELS.get(status, status)


def _history_entries(status_history: Iterable[Any] | None) -> list[StatusHistoryEntry]:
    """Coerce stored history (dicts or entry objects) to ``StatusHistoryEntry``s, skipping malformed ones."""
    entries: list[StatusHistoryEntry] = []
    for raw in status_history or []:
        if isinstance(raw, StatusHistoryEntry):
            entries.append(raw)
            continue
        try:
            entries.append(StatusHistoryEntry.from_dict(raw))
        except (ValueError, TypeError, AttributeError) as exc:
            logger.warning("Skipping malformed history entry: %s", exc)
    return entries


# ═══════════════════════════════════════════════════════════════════
#  Case Status Service
# ═══════════════════════════════════════════════════════════════════


class CaseStatusService:
    """
    The case-status workflow engine.

    Design Pattern: State Machine + Command
    ----------------------------------------
    A transition is a command ``(report, target_status, actor, notes)``.
    ``validate_transition`` checks it against the state-machine tables,
    the role gate and the per-transition required fields, without I/O.
    ``perform_transition`` runs the same check inside a store transaction
    and, on success, appends a ``StatusHistoryEntry`` and writes the
    workflow fields in one commit.

    Everything else (timeline, SLA, metrics) is a pure projection of
    report documents.
    """

    # ── Role gate ────────────────────────────────────────────────────

    @staticmethod
    def _resolve_required_role(from_status: str, to_status: str) -> str:
        role = TRANSITION_ROLES.get((from_status, to_status))
        if role is not None:
            return str(role)
        if to_status == CaseStatus.REJECTED:
            return str(UserRole.INVESTIGATOR)
        return str(UserRole.ADMIN)

    @staticmethod
    def has_capability(user_role: str | None, required_role: str) -> bool:
        """Return True if ``user_role`` may act in ``required_role``."""
        if user_role == UserRole.ADMIN:
            return True
        return required_role in ROLE_CAPABILITIES.get(user_role or "", frozenset())

    # ── Precondition validator ───────────────────────────────────────

    @staticmethod
    def _missing_fields(
        from_status: str,
        to_status: str,
        context: dict[str, Any],
    ) -> list[str]:
        required = TRANSITION_REQUIRED_FIELDS.get((from_status, to_status), DEFAULT_REQUIRED_FIELDS)
        return [name for name in required if not context.get(name)]

    @staticmethod
    def validate_transition(
        from_status: str,
        to_status: str,
        user_role: str | None,
        context: dict[str, Any] | None = None,
    ) -> WorkflowValidation:
        """
        Decide whether ``user_role`` may move a report from ``from_status``
        to ``to_status`` given the form fields in ``context``.

        Checks run in order and stop at the first failure:

        1. Reachability against ``VALID_STATUS_TRANSITIONS``.
        2. Authorization against ``TRANSITION_ROLES`` / ``ROLE_CAPABILITIES``.
        3. Required fields against ``TRANSITION_REQUIRED_FIELDS``.

        An authorization failure also lists any fields that would be
        missing, so a single message tells the caller everything that is
        wrong with the request.  ``is_valid`` is unaffected by this.

        Never raises; unknown status strings are simply unreachable.
        """
        context = context or {}
        required_role = CaseStatusService._resolve_required_role(from_status, to_status)

        if to_status not in VALID_STATUS_TRANSITIONS.get(from_status, frozenset()):
            return WorkflowValidation(
                is_valid=False,
                current_status=from_status,
                target_status=to_status,
                error_message=(
                    f"Invalid transition from {_status_label(from_status)} "
                    f"to {_status_label(to_status)}"
                ),
                required_role=required_role,
            )

        missing = CaseStatusService._missing_fields(from_status, to_status, context)

        if not CaseStatusService.has_capability(user_role, required_role):
            message = (
                f"Role '{user_role}' is not authorized to perform this transition. "
                f"Required: {required_role}"
            )
            if missing:
                message += f". Missing required fields: {', '.join(missing)}"
            return WorkflowValidation(
                is_valid=False,
                current_status=from_status,
                target_status=to_status,
                error_message=message,
                required_role=required_role,
                required_fields=tuple(missing),
            )

        if missing:
            return WorkflowValidation(
                is_valid=False,
                current_status=from_status,
                target_status=to_status,
                error_message=f"Missing required fields: {', '.join(missing)}",
                required_role=required_role,
                required_fields=tuple(missing),
            )

        return WorkflowValidation(
            is_valid=True,
            current_status=from_status,
            target_status=to_status,
            required_role=required_role,
        )

    # ── Transition executor ──────────────────────────────────────────

    @staticmethod
    def perform_transition(
        context: StatusTransitionContext,
        store: ReportStore | None = None,
    ) -> StatusTransitionResult:
        """
        Execute one status transition as a single store transaction.

        Implementation Contract
        -----------------------
        Inside ``store.run_transaction``:

        1. Read the report; raise ``NotFound`` if it does not exist.
        2. Resolve the target: ``metadata["targetStatus"]`` if supplied,
           else ``DEFAULT_NEXT_STATUS[current]``.
        3. ``validate_transition`` with ``notes`` / ``assignedTo`` /
           ``triageLevel``; raise ``WorkflowValidationError`` on failure.
        4. Append a new ``StatusHistoryEntry`` stamped ``store.server_now()``.
        5. Write ``status``, ``status_history``, ``updated_at`` and
           ``current_officer_id`` (the actor, or ``metadata["assignedTo"]``
           when entering ``assigned``).  Entering ``investigating`` for the
           first time sets ``investigation_started_at``; entering
           ``resolved`` with a start time sets ``investigation_duration``
           in whole hours.

        The store re-runs the body when a concurrent writer commits first,
        so the validation always sees the latest status.

        Returns:
            ``StatusTransitionResult``.  Never raises: every failure
            (not found, validation, exhausted retries, unexpected errors)
            becomes ``success=False`` with ``error_message``.
        """
        if store is None:
            store = DjangoReportStore()

        try:
            new_status, history_id, warnings = store.run_transaction(
                lambda txn: CaseStatusService._apply_transition(txn, store, context),
            )
        except WorkflowValidationError as exc:
            logger.warning(
                "Transition rejected for report %s by %s (%s): %s",
                context.report_id, context.current_user_id, context.user_role, exc,
            )
            return StatusTransitionResult(
                success=False,
                error_message=str(exc),
                validation=exc.validation,
            )
        except DomainError as exc:
            logger.warning(
                "Transition failed for report %s: %s", context.report_id, exc,
            )
            return StatusTransitionResult(success=False, error_message=str(exc))
        except Exception as exc:
            logger.exception("Unexpected error transitioning report %s", context.report_id)
            return StatusTransitionResult(success=False, error_message=str(exc))

        logger.info(
            "Report %s moved to '%s' by %s (%s) [%s]",
            context.report_id, new_status, context.current_user_id,
            context.user_role, history_id,
        )
        return StatusTransitionResult(
            success=True,
            new_status=new_status,
            status_history_id=history_id,
            warnings=warnings,
        )

    @staticmethod
    def _apply_transition(
        txn: StoreTransaction,
        store: ReportStore,
        context: StatusTransitionContext,
    ) -> tuple[str, str, list[str]]:
        """Transaction body of ``perform_transition``."""
        report = txn.get(context.report_id)
        if report is None:
            raise NotFound("Report not found")

        metadata = dict(context.metadata or {})
        current_status = report["status"]
        target_status = str(metadata.get("targetStatus") or DEFAULT_NEXT_STATUS.get(
            current_status, current_status,
        ))

        validation = CaseStatusService.validate_transition(
            current_status,
            target_status,
            context.user_role,
            {
                "notes": context.notes,
                "assignedTo": metadata.get("assignedTo"),
                "triageLevel": metadata.get("triageLevel"),
            },
        )
        if not validation.is_valid:
            raise WorkflowValidationError(validation)

        now = store.server_now()
        warnings: list[str] = []
        sla = CaseStatusService.check_overdue(report, now=now)
        if sla["is_overdue"]:
            warnings.append(
                f"Transition completed after SLA breach of {sla['sla_hours']}h "
                f"for status '{current_status}'"
            )

        entry = StatusHistoryEntry(
            id=_generate_history_id(now),
            status=target_status,
            previous_status=current_status,
            timestamp=now,
            officer_id=str(context.current_user_id),
            officer_role=str(context.user_role),
            notes=context.notes or "",
            location=context.location,
            metadata=metadata,
        )
        history = list(report.get("status_history") or [])
        history.append(entry.to_dict())

        if target_status == CaseStatus.ASSIGNED and metadata.get("assignedTo"):
            officer_id = str(metadata["assignedTo"])
        else:
            officer_id = str(context.current_user_id)

        updates: dict[str, Any] = {
            "status": target_status,
            "status_history": history,
            "updated_at": now,
            "current_officer_id": officer_id,
        }

        started_at = _parse_timestamp(report.get("investigation_started_at"))
        if target_status == CaseStatus.INVESTIGATING and started_at is None:
            updates["investigation_started_at"] = now
        if target_status == CaseStatus.RESOLVED and started_at is not None:
            elapsed_hours = (now - started_at).total_seconds() / 3600
            updates["investigation_duration"] = max(0, _round_half_up(elapsed_hours))

        txn.update(context.report_id, updates)
        return target_status, entry.id, warnings

    # ── Derived queries ──────────────────────────────────────────────

    @staticmethod
    def get_available_transitions(current_status: str, user_role: str | None) -> list[str]:
        """
        Statuses ``user_role`` may move a report to from ``current_status``.

        Only reachability and authorization are checked; required fields
        are validated when the transition is submitted.
        """
        reachable = VALID_STATUS_TRANSITIONS.get(current_status, frozenset())
        return [
            status
            for status in CaseStatus.values
            if status in reachable
            and CaseStatusService.has_capability(
                user_role,
                CaseStatusService._resolve_required_role(current_status, status),
            )
        ]

    @staticmethod
    def _format_duration(delta: timedelta) -> str:
        seconds = max(0, math.floor(delta.total_seconds()))
        minutes = seconds // 60
        hours = minutes // 60
        days = hours // 24
        if days > 0:
            return f"{days}d {hours % 24}h"
        if hours > 0:
            return f"{hours}h {minutes % 60}m"
        if minutes > 0:
            return f"{minutes}m"
        return f"{seconds}s"

    @staticmethod
    def get_status_timeline(status_history: Iterable[Any] | None) -> list[TimelineEntry]:
        """
        Project a status history into display order.

        Entries are sorted by timestamp (stable for ties) and each one
        after the first carries the time spent since the previous entry.
        Entries whose timestamp cannot be parsed are skipped.
        """
        entries = _history_entries(status_history)
        entries.sort(key=lambda e: e.timestamp)

        timeline: list[TimelineEntry] = []
        previous: StatusHistoryEntry | None = None
        for entry in entries:
            duration = None
            if previous is not None:
                duration = CaseStatusService._format_duration(entry.timestamp - previous.timestamp)
            timeline.append(TimelineEntry(
                status=entry.status,
                label=_status_label(entry.status),
                timestamp=entry.timestamp,
                officer_id=entry.officer_id,
                officer_role=entry.officer_role,
                notes=entry.notes,
                duration=duration,
            ))
            previous = entry
        return timeline

    @staticmethod
    def _sla_baseline(report: dict[str, Any]) -> datetime | None:
        entries = _history_entries(report.get("status_history"))
        if entries:
            return max(entry.timestamp for entry in entries)
        return _parse_timestamp(report.get("created_at"))

    @staticmethod
    def check_overdue(report: Any, now: datetime | None = None) -> dict[str, Any]:
        """
        SLA status of a report.

        Returns a dict with ``is_overdue``, ``sla_hours`` (``None`` for
        statuses without an SLA), ``hours_elapsed`` since the last status
        change (or creation) and ``suggested_action`` (only when overdue).
        """
        document = _as_document(report)
        now = now or timezone.now()
        status = document.get("status")
        sla_hours = SLA_HOURS.get(status)
        baseline = CaseStatusService._sla_baseline(document)

        hours_elapsed = None
        if baseline is not None:
            hours_elapsed = round((now - baseline).total_seconds() / 3600, 2)

        is_overdue = (
            sla_hours is not None
            and baseline is not None
            and now - baseline > timedelta(hours=sla_hours)
        )
        return {
            "is_overdue": is_overdue,
            "sla_hours": sla_hours,
            "hours_elapsed": hours_elapsed,
            "suggested_action": SUGGESTED_ACTIONS.get(status) if is_overdue else None,
        }

    @staticmethod
    def is_report_overdue(report: Any, now: datetime | None = None) -> bool:
        return CaseStatusService.check_overdue(report, now=now)["is_overdue"]

    @staticmethod
    def get_performance_metrics(
        reports: Iterable[Any],
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """
        Aggregate workflow statistics over a collection of reports.

        ``transition_times`` maps ``"from->to"`` to the elapsed seconds of
        every adjacent pair of timeline entries.  ``average_response_time``
        is the mean ``assigned->accepted`` time in minutes.
        ``average_resolution_time`` is the mean time in hours from a
        report's first ``accepted`` entry to the next ``resolved`` entry.
        Both averages are ``None`` when there are no samples.
        """
        now = now or timezone.now()
        status_distribution: dict[str, int] = {}
        transition_times: dict[str, list[float]] = {}
        resolution_samples: list[float] = []
        overdue_reports = 0

        for report in reports:
            document = _as_document(report)
            status = document.get("status")
            status_distribution[status] = status_distribution.get(status, 0) + 1

            if CaseStatusService.is_report_overdue(document, now=now):
                overdue_reports += 1

            timeline = CaseStatusService.get_status_timeline(document.get("status_history"))
            for previous, current in zip(timeline, timeline[1:]):
                key = f"{previous.status}->{current.status}"
                elapsed = (current.timestamp - previous.timestamp).total_seconds()
                transition_times.setdefault(key, []).append(elapsed)

            accepted_at = next(
                (e.timestamp for e in timeline if e.status == CaseStatus.ACCEPTED), None,
            )
            if accepted_at is not None:
                resolved_at = next(
                    (e.timestamp for e in timeline
                     if e.status == CaseStatus.RESOLVED and e.timestamp >= accepted_at),
                    None,
                )
                if resolved_at is not None:
                    resolution_samples.append((resolved_at - accepted_at).total_seconds())

        response_samples = transition_times.get(
            f"{CaseStatus.ASSIGNED.value}->{CaseStatus.ACCEPTED.value}", [],
        )
        average_response_time = None
        if response_samples:
            average_response_time = _round_half_up(
                sum(response_samples) / len(response_samples) / 60,
            )
        average_resolution_time = None
        if resolution_samples:
            average_resolution_time = _round_half_up(
                sum(resolution_samples) / len(resolution_samples) / 3600,
            )

        return {
            "status_distribution": status_distribution,
            "overdue_reports": overdue_reports,
            "transition_times": transition_times,
            "average_response_time": average_response_time,
            "average_resolution_time": average_resolution_time,
        }


# ═══════════════════════════════════════════════════════════════════
#  Report Query Service
# ═══════════════════════════════════════════════════════════════════

#: Role → queryset filter.  Roles not listed see nothing.
_REPORT_SCOPE_CONFIG = {
    UserRole.CITIZEN: lambda qs, u: qs.filter(reporter=u),
    UserRole.OFFICER: lambda qs, u: qs.filter(current_officer_id=str(u.pk)),
    UserRole.INVESTIGATOR: lambda qs, u: qs.filter(current_officer_id=str(u.pk)),
    UserRole.DESK_OFFICER: lambda qs, u: qs,
    UserRole.SUPERVISOR: lambda qs, u: qs,
    UserRole.ADMIN: lambda qs, u: qs,
}

#: Roles allowed to read dashboard-wide metrics.
METRICS_ROLES: tuple[str, ...] = (
    UserRole.ADMIN,
    UserRole.SUPERVISOR,
    UserRole.DESK_OFFICER,
)

#: Rows fetched per database round trip when streaming reports for metrics.
METRICS_CHUNK_SIZE = 500


class ReportQueryService:
    """Role-scoped report lookups for the API layer."""

    @staticmethod
    def get_filtered_queryset(user: Any, filters: dict[str, Any]) -> QuerySet:
        """
        Reports visible to ``user``, optionally narrowed by ``status``.

        Citizens see their own submissions, officers and investigators
        see the reports currently assigned to them, and desk officers,
        supervisors and admins see everything.
        """
        qs = apply_role_filter(
            Report.objects.all(),
            user,
            scope_config=_REPORT_SCOPE_CONFIG,
            default="none",
        )
        status = filters.get("status")
        if status:
            qs = qs.filter(status=status)
        return qs

    @staticmethod
    def get_report_detail(user: Any, report_id: Any) -> Report:
        """
        Raises:
            NotFound: If the report does not exist or is outside the
                user's scope.
        """
        qs = ReportQueryService.get_filtered_queryset(user, {})
        try:
            report = qs.filter(pk=report_id).first()
        except ValidationError:
            report = None
        if report is None:
            raise NotFound("Report not found")
        return report

    @staticmethod
    def get_metrics(user: Any, now: datetime | None = None) -> dict[str, Any]:
        require_role(user, *METRICS_ROLES)
        started = time.monotonic()
        reports = (
            Report.objects
            .only(*DOCUMENT_FIELDS)
            .order_by()
            .iterator(chunk_size=METRICS_CHUNK_SIZE)
        )
        metrics = CaseStatusService.get_performance_metrics(
            (report.to_document() for report in reports), now=now,
        )
        logger.debug(
            "Computed metrics over %d report(s) in %.3fs",
            sum(metrics["status_distribution"].values()), time.monotonic() - started,
        )
        return metrics


# ═══════════════════════════════════════════════════════════════════
#  Report Creation Service
# ═══════════════════════════════════════════════════════════════════


class ReportCreationService:
    """Citizen report intake."""

    @staticmethod
    def create_report(validated_data: dict[str, Any], requesting_user: Any) -> Report:
        """
        Create a report in ``pending`` status with an empty history.

        Workflow fields in ``validated_data`` are ignored; only the
        workflow engine may set them.
        """
        report = Report.objects.create(
            reporter=requesting_user,
            category=validated_data.get("category", ""),
            description=validated_data["description"],
            jurisdiction_id=validated_data.get("jurisdiction_id", ""),
        )
        logger.info(
            "Report %s submitted by %s (%s)",
            report.pk, requesting_user.pk, get_user_role_name(requesting_user),
        )
        return report


# ═══════════════════════════════════════════════════════════════════
#  Report Assignment Service
# ═══════════════════════════════════════════════════════════════════

#: Statuses that count towards an officer's open workload.
OPEN_CASE_STATUSES: tuple[str, ...] = (
    CaseStatus.ASSIGNED,
    CaseStatus.ACCEPTED,
    CaseStatus.RESPONDING,
)

AUTO_ASSIGN_NOTE = "Auto-assigned to least-loaded officer"

_NEVER = datetime.min.replace(tzinfo=dt_timezone.utc)


@dataclass(frozen=True)
class OfficerPick:
    """Officer chosen by ``ReportAssignmentService.auto_pick_officer``."""

    officer_id: str
    open_cases: int
    last_updated: datetime | None = None

    @property
    def reason(self) -> str:
        last = self.last_updated.isoformat() if self.last_updated else "never"
        return f"open={self.open_cases}, lastUpdated={last}"


class ReportAssignmentService:
    """Least-loaded officer selection for the ``validated → assigned`` step."""

    @staticmethod
    def auto_pick_officer(report_id: Any) -> OfficerPick:
        """
        Choose the officer a report should be assigned to.

        Candidates are active users with the ``officer`` role.  When the
        report has a jurisdiction and at least one candidate serves it,
        only those candidates are considered.  Candidates are ranked by:

        1. Open cases: reports they hold in ``OPEN_CASE_STATUSES``.
        2. Most recent ``updated_at`` over every report they hold, oldest
           first.  Officers holding no reports rank ahead of everyone.
        3. User id.

        Read-only: the report is not modified.

        Raises:
            NotFound: If the report does not exist.
            Conflict: If there is no active officer to pick.
        """
        try:
            report = Report.objects.only("id", "jurisdiction_id").get(pk=report_id)
        except (Report.DoesNotExist, ValidationError):
            raise NotFound("Report not found")

        officers = User.objects.filter(role=UserRole.OFFICER, is_active=True)
        if report.jurisdiction_id:
            local = officers.filter(jurisdiction_id=report.jurisdiction_id)
            if local.exists():
                officers = local
        officer_ids = [str(pk) for pk in officers.order_by("pk").values_list("pk", flat=True)]
        if not officer_ids:
            raise Conflict("No active officers available")

        workloads = {
            row["current_officer_id"]: row
            for row in (
                Report.objects
                .filter(current_officer_id__in=officer_ids)
                .order_by()
                .values("current_officer_id")
                .annotate(
                    open_cases=Count("pk", filter=Q(status__in=OPEN_CASE_STATUSES)),
                    last_updated=Max("updated_at"),
                )
            )
        }

        picks = [
            OfficerPick(
                officer_id=officer_id,
                open_cases=workloads.get(officer_id, {}).get("open_cases", 0),
                last_updated=workloads.get(officer_id, {}).get("last_updated"),
            )
            for officer_id in officer_ids
        ]
        # Stable sort keeps user-id order for full ties.
        picks.sort(key=lambda p: (p.open_cases, p.last_updated or _NEVER))
        winner = picks[0]
        logger.debug(
            "Picked officer %s for report %s out of %d candidate(s) (%s)",
            winner.officer_id, report.pk, len(picks), winner.reason,
        )
        return winner

    @staticmethod
    def auto_assign(
        user: Any,
        report_id: Any,
        notes: str = "",
        store: ReportStore | None = None,
    ) -> tuple[OfficerPick, StatusTransitionResult]:
        """
        Assign a ``validated`` report to the officer picked by
        ``auto_pick_officer``, acting as ``user``.

        The transition itself goes through ``perform_transition`` with the
        pick as ``metadata["assignedTo"]``, so it is validated and written
        exactly like a manual assignment.

        Raises:
            NotFound: If the report is outside the user's scope.
            WorkflowValidationError: If ``user`` may not assign the report
                from its current status.
            Conflict: If there is no active officer to pick.
        """
        report = ReportQueryService.get_report_detail(user, report_id)
        role = get_user_role_name(user) or ""
        note = notes or AUTO_ASSIGN_NOTE

        if CaseStatus.ASSIGNED not in CaseStatusService.get_available_transitions(report.status, role):
            raise WorkflowValidationError(
                CaseStatusService.validate_transition(
                    report.status, CaseStatus.ASSIGNED, role, {"notes": note},
                )
            )

        pick = ReportAssignmentService.auto_pick_officer(report.pk)
        result = CaseStatusService.perform_transition(
            StatusTransitionContext(
                report_id=str(report.pk),
                current_user_id=str(user.pk),
                user_role=role,
                notes=note,
                metadata={
                    "targetStatus": CaseStatus.ASSIGNED.value,
                    "assignedTo": pick.officer_id,
                    "autoAssigned": True,
                },
            ),
            store=store,
        )
        if result.success:
            logger.info(
                "Report %s auto-assigned to officer %s by %s (%s)",
                report.pk, pick.officer_id, user.pk, pick.reason,
            )
        return pick, result
