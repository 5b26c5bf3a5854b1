"""
Smoke tests — verify that Django boots, URL routing resolves, and
the core domain modules behave as the service layers expect.

These tests do NOT require real data — they just prove the plumbing
works.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from django.urls import resolve, reverse


# ════════════════════════════════════════════════════════════════════
#  URL Routing Smoke Tests
# ════════════════════════════════════════════════════════════════════

class TestURLRouting:
    """Ensure all top-level routes resolve without 404."""

    EXPECTED_URLS = [
        # (url_name, expected_path)
        ("report-list",                "/api/reports/"),
        ("report-metrics",             "/api/reports/metrics/"),
        ("report-validate-transition", "/api/reports/validate-transition/"),
        ("token_obtain_pair",          "/api/token/"),
        ("token_refresh",              "/api/token/refresh/"),
        ("schema",                     "/api/schema/"),
    ]

    @pytest.mark.parametrize("url_name,expected_path", EXPECTED_URLS)
    def test_url_resolves(self, url_name: str, expected_path: str):
        """Named URL reverses to the expected path."""
        assert reverse(url_name) == expected_path

    @pytest.mark.parametrize("url_name,expected_path", EXPECTED_URLS)
    def test_url_resolve_matches_view(self, url_name: str, expected_path: str):
        """Path resolves to a view function (not a 404)."""
        match = resolve(expected_path)
        assert match.func is not None

    def test_metrics_route_is_not_captured_by_detail(self):
        assert resolve("/api/reports/metrics/").url_name == "report-metrics"


@pytest.mark.django_db
def test_schema_generates(api_client, auth_header):
    api_client.credentials(HTTP_AUTHORIZATION=auth_header(role="admin")["Authorization"])
    resp = api_client.get("/api/schema/")
    assert resp.status_code == 200


# ════════════════════════════════════════════════════════════════════
#  Exception Behaviour Tests
# ════════════════════════════════════════════════════════════════════

class TestDomainExceptions:
    """Unit tests for domain exception classes."""

    def test_inheritance_chain(self):
        from core.domain.exceptions import (
            Conflict,
            DomainError,
            NotFound,
            PermissionDenied,
            TransactionConflict,
            WorkflowValidationError,
        )
        assert issubclass(TransactionConflict, Conflict)
        assert issubclass(Conflict, DomainError)
        assert issubclass(PermissionDenied, DomainError)
        assert issubclass(NotFound, DomainError)
        assert issubclass(WorkflowValidationError, DomainError)

    def test_domain_error_message(self):
        from core.domain.exceptions import DomainError
        err = DomainError("test message")
        assert str(err) == "test message"

    def test_transaction_conflict_document_id(self):
        from core.domain.exceptions import TransactionConflict
        err = TransactionConflict(document_id="r-1")
        assert err.document_id == "r-1"
        assert "modified concurrently" in str(err)

    def test_permission_denied_required_role(self):
        from core.domain.exceptions import PermissionDenied
        err = PermissionDenied("nope", required_role="supervisor")
        assert err.required_role == "supervisor"

    def test_workflow_validation_error_carries_result(self):
        from core.domain.exceptions import WorkflowValidationError
        from reports.services import CaseStatusService

        validation = CaseStatusService.validate_transition("pending", "validated", "citizen", {})
        err = WorkflowValidationError(validation)
        assert err.validation is validation
        assert str(err) == validation.error_message


# ════════════════════════════════════════════════════════════════════
#  Exception Handler Tests
# ════════════════════════════════════════════════════════════════════

class TestExceptionHandler:

    @pytest.mark.parametrize("exc,expected", [
        ("PermissionDenied", 403),
        ("NotFound", 404),
        ("TransactionConflict", 409),
        ("DomainError", 400),
    ])
    def test_status_mapping(self, exc, expected):
        from core.domain import exceptions
        from core.domain.exception_handler import domain_exception_handler

        resp = domain_exception_handler(getattr(exceptions, exc)("boom"), {})
        assert resp.status_code == expected
        assert resp.data["detail"] == "boom"

    def test_validation_body(self):
        from core.domain.exception_handler import domain_exception_handler
        from core.domain.exceptions import WorkflowValidationError
        from reports.services import CaseStatusService

        validation = CaseStatusService.validate_transition("validated", "assigned", "desk_officer", {})
        resp = domain_exception_handler(WorkflowValidationError(validation), {})
        assert resp.status_code == 400
        assert resp.data["required_fields"] == ["notes", "assignedTo"]
        assert resp.data["required_role"] == "desk_officer"

    def test_unknown_exceptions_are_left_to_django(self):
        from core.domain.exception_handler import domain_exception_handler
        assert domain_exception_handler(RuntimeError("x"), {}) is None


# ════════════════════════════════════════════════════════════════════
#  Access Helper Unit Tests
# ════════════════════════════════════════════════════════════════════

class TestAccessHelpers:
    """Unit tests for core.domain.access helpers."""

    def test_apply_role_filter_unknown_role_default_all(self):
        """Unknown role with default='all' returns unfiltered qs."""
        from core.domain.access import apply_role_filter

        user = SimpleNamespace(is_superuser=False, role="janitor")
        qs = MagicMock()
        result = apply_role_filter(qs, user, scope_config={}, default="all")
        assert result is qs  # returned unmodified

    def test_apply_role_filter_unknown_role_default_none(self):
        """Unknown role with default='none' returns empty qs."""
        from core.domain.access import apply_role_filter

        user = SimpleNamespace(is_superuser=False, role="janitor")
        qs = MagicMock()
        apply_role_filter(qs, user, scope_config={}, default="none")
        qs.none.assert_called_once()

    def test_apply_role_filter_dispatches_on_role(self):
        from core.domain.access import apply_role_filter

        user = SimpleNamespace(is_superuser=False, role="citizen")
        qs = MagicMock()
        apply_role_filter(qs, user, scope_config={"citizen": lambda q, u: q.filter(reporter=u)})
        qs.filter.assert_called_once_with(reporter=user)

    def test_require_role_raises(self):
        """require_role raises PermissionDenied for wrong role."""
        from core.domain.access import require_role
        from core.domain.exceptions import PermissionDenied

        user = SimpleNamespace(is_superuser=False, role="citizen")
        with pytest.raises(PermissionDenied) as exc_info:
            require_role(user, "supervisor", "admin")
        assert exc_info.value.required_role == "supervisor"

    def test_get_user_role_name_superuser(self):
        """Superusers always act as 'admin'."""
        from core.domain.access import get_user_role_name

        user = SimpleNamespace(is_superuser=True, role="citizen")
        assert get_user_role_name(user) == "admin"

    def test_get_user_role_name_unassigned(self):
        from core.domain.access import get_user_role_name

        assert get_user_role_name(SimpleNamespace(is_superuser=False, role="")) is None
