"""
core.domain.exceptions — Domain-specific exception hierarchy.

These exceptions represent business-rule violations inside service layers.
They are deliberately **not** DRF exceptions so that the domain layer stays
framework-agnostic.  The global DRF exception handler
(``core.domain.exception_handler``) maps them to HTTP responses.

Mapping cheatsheet
------------------
┌─────────────────────────┬──────────────────────────────┬──────┐
│ Domain Exception        │ DRF / HTTP equivalent        │ Code │
├─────────────────────────┼──────────────────────────────┼──────┤
│ DomainError             │ ValidationError / 400        │ 400  │
│ WorkflowValidationError │ ValidationError / 400        │ 400  │
│ PermissionDenied        │ PermissionDenied / 403       │ 403  │
│ NotFound                │ NotFound / 404               │ 404  │
│ Conflict                │ APIException / 409           │ 409  │
│ TransactionConflict     │ APIException / 409           │ 409  │
└─────────────────────────┴──────────────────────────────┴──────┘

Recommended usage inside a service::

    from core.domain.exceptions import NotFound

    report = store.get_by_id(report_id)
    if report is None:
        raise NotFound("Report not found")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from reports.services import WorkflowValidation


class DomainError(Exception):
    """
    Base class for all domain / business-rule errors.

    Catch this at the view boundary and convert to a 400 Bad Request.
    """

    def __init__(self, message: str = "A business rule was violated.") -> None:
        self.message = message
        super().__init__(self.message)


class PermissionDenied(DomainError):
    """
    The authenticated user does not have the required role for this
    operation.

    Maps to HTTP 403.
    """

    def __init__(
        self,
        message: str = "You do not have permission to perform this action.",
        *,
        required_role: str | None = None,
    ) -> None:
        super().__init__(message)
        self.required_role = required_role


class NotFound(DomainError):
    """
    The requested resource does not exist.

    Maps to HTTP 404.
    """

    def __init__(self, message: str = "The requested resource was not found.") -> None:
        super().__init__(message)


class Conflict(DomainError):
    """
    The operation conflicts with the current state of the resource.

    Maps to HTTP 409.
    """

    def __init__(self, message: str = "The operation conflicts with the current state.") -> None:
        super().__init__(message)


class TransactionConflict(Conflict):
    """
    A concurrent writer modified the document between the transaction's
    read and its commit.

    Raised by the report stores; ``run_transaction`` re-runs the
    transaction body when it sees one.  Only surfaces to callers once the
    retry budget is exhausted.
    """

    def __init__(
        self,
        message: str = "The report was modified concurrently. Please retry.",
        *,
        document_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.document_id = document_id


class WorkflowValidationError(DomainError):
    """
    The transition validator rejected a requested status change.

    Carries the full ``WorkflowValidation`` result so callers can surface
    ``required_role`` / ``required_fields`` to the user.
    """

    def __init__(self, validation: WorkflowValidation) -> None:
        super().__init__(validation.error_message or "Invalid transition")
        self.validation = validation
