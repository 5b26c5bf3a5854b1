"""
core.domain — Shared domain utilities for cross-app service layers.

Modules
-------
exceptions         Domain-specific exceptions that map cleanly to HTTP responses.
exception_handler  DRF handler translating domain exceptions to responses.
transactions       Helpers for ``transaction.atomic``, ``select_for_update``
                   and conflict retries.
access             Role resolution and role-scoped queryset selectors.

Usage from any app::

    from core.domain.exceptions import DomainError, NotFound
    from core.domain.transactions import retry_on_conflict
    from core.domain.access import apply_role_filter
"""
