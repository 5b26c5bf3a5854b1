"""
Report document stores.

The case-status workflow never touches the ORM directly.  It talks to a
narrow store interface that mirrors a transactional document database:

- ``get_by_id(report_id)``  — read one report document (or ``None``).
- ``run_transaction(fn)``   — run ``fn(txn)`` as one atomic
  read-modify-write, re-running it when a concurrent writer wins.
- ``server_now()``          — the store's notion of "now", used for
  history timestamps.

Inside ``fn`` the transaction object offers ``get(report_id)`` and
``update(report_id, fields)``.  Updates are buffered and applied at commit
only if every document the body read is still at the version it saw;
otherwise the store raises ``TransactionConflict`` and re-runs the body.

Implementations
---------------
- ``DjangoReportStore``    — production store over ``Report`` rows.  Reads
  lock the row (``select_for_update``) and commits compare the ``version``
  column, so the guarantee holds on databases without row locks too.
- ``InMemoryReportStore``  — dict-backed store with the same semantics,
  used by the engine's unit tests and for local tooling.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from datetime import datetime
from typing import Any, Callable, Protocol, TypeVar

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db.models import F
from django.utils import timezone

from core.domain.exceptions import NotFound, TransactionConflict
from core.domain.transactions import lock_for_update, retry_on_conflict, run_in_atomic

from .models import Report

logger = logging.getLogger(__name__)

T = TypeVar("T")

#: Fields a transaction is allowed to write.
WRITABLE_FIELDS = frozenset({
    "status",
    "status_history",
    "current_officer_id",
    "investigation_started_at",
    "investigation_duration",
    "updated_at",
})


class StoreTransaction(Protocol):
    def get(self, report_id: str) -> dict[str, Any] | None: ...

    def update(self, report_id: str, fields: dict[str, Any]) -> None: ...


class ReportStore(Protocol):
    def get_by_id(self, report_id: str) -> dict[str, Any] | None: ...

    def run_transaction(self, fn: Callable[[StoreTransaction], T]) -> T: ...

    def server_now(self) -> datetime: ...


def _check_writable(fields: dict[str, Any]) -> None:
    unknown = set(fields) - WRITABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields not writable through a transaction: {sorted(unknown)}")


def _default_max_attempts() -> int:
    return getattr(settings, "WORKFLOW_TRANSACTION_MAX_ATTEMPTS", 5)


def _default_retry_delay() -> float:
    return getattr(settings, "WORKFLOW_TRANSACTION_RETRY_DELAY", 0.05)


# ═══════════════════════════════════════════════════════════════════
#  Django ORM store
# ═══════════════════════════════════════════════════════════════════


class _DjangoTransaction:
    """One attempt of a ``DjangoReportStore`` transaction."""

    def __init__(self) -> None:
        self._read_versions: dict[str, int] = {}
        self._writes: dict[str, dict[str, Any]] = {}

    def get(self, report_id: str) -> dict[str, Any] | None:
        try:
            report = lock_for_update(Report, report_id)
        except (NotFound, ValidationError):
            return None
        key = str(report.pk)
        self._read_versions[key] = report.version
        return report.to_document()

    def update(self, report_id: str, fields: dict[str, Any]) -> None:
        key = str(report_id)
        if key not in self._read_versions:
            raise RuntimeError("A report must be read in the transaction before it is updated.")
        _check_writable(fields)
        self._writes.setdefault(key, {}).update(fields)

    def commit(self) -> None:
        for key, fields in self._writes.items():
            expected = self._read_versions[key]
            updated = (
                Report.objects
                .filter(pk=key, version=expected)
                .update(version=F("version") + 1, **fields)
            )
            if updated == 0:
                logger.debug("Stale version %d for report %s", expected, key)
                raise TransactionConflict(document_id=key)


class DjangoReportStore:
    """
    ``ReportStore`` over the ``Report`` table.

    Each attempt runs inside ``transaction.atomic()``; a conflict raised at
    commit rolls the attempt back before ``retry_on_conflict`` re-runs it.
    """

    def __init__(
        self,
        *,
        max_attempts: int | None = None,
        retry_delay: float | None = None,
    ) -> None:
        self.max_attempts = max_attempts if max_attempts is not None else _default_max_attempts()
        self.retry_delay = retry_delay if retry_delay is not None else _default_retry_delay()

    def get_by_id(self, report_id: str) -> dict[str, Any] | None:
        try:
            return Report.objects.get(pk=report_id).to_document()
        except (Report.DoesNotExist, ValidationError):
            return None

    def server_now(self) -> datetime:
        return timezone.now()

    def run_transaction(self, fn: Callable[[StoreTransaction], T]) -> T:
        return retry_on_conflict(
            lambda: run_in_atomic(self._attempt, fn),
            max_attempts=self.max_attempts,
            base_delay=self.retry_delay,
        )

    @staticmethod
    def _attempt(fn: Callable[[StoreTransaction], T]) -> T:
        txn = _DjangoTransaction()
        result = fn(txn)
        txn.commit()
        return result


# ═══════════════════════════════════════════════════════════════════
#  In-memory store
# ═══════════════════════════════════════════════════════════════════


class _InMemoryTransaction:
    """One attempt of an ``InMemoryReportStore`` transaction."""

    def __init__(self, store: InMemoryReportStore) -> None:
        self._store = store
        self.read_versions: dict[str, int] = {}
        self.writes: dict[str, dict[str, Any]] = {}

    def get(self, report_id: str) -> dict[str, Any] | None:
        key = str(report_id)
        with self._store._lock:
            document = self._store._documents.get(key)
            if document is None:
                return None
            self.read_versions[key] = self._store._versions[key]
            return copy.deepcopy(document)

    def update(self, report_id: str, fields: dict[str, Any]) -> None:
        key = str(report_id)
        if key not in self.read_versions:
            raise RuntimeError("A report must be read in the transaction before it is updated.")
        _check_writable(fields)
        self.writes.setdefault(key, {}).update(copy.deepcopy(fields))


class InMemoryReportStore:
    """
    Dict-backed ``ReportStore`` with optimistic concurrency.

    Documents are deep-copied on the way in and out, so callers can never
    mutate stored state behind the store's back.
    """

    def __init__(
        self,
        *,
        max_attempts: int = 5,
        retry_delay: float = 0.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._clock = clock or timezone.now
        self._lock = threading.Lock()
        self._documents: dict[str, dict[str, Any]] = {}
        self._versions: dict[str, int] = {}

    def add(self, document: dict[str, Any] | None = None, **fields: Any) -> str:
        """
        Insert a new report document and return its id.

        Missing fields get the same defaults a freshly created ``Report``
        row would have.
        """
        data = {**(document or {}), **fields}
        now = self._clock()
        doc: dict[str, Any] = {
            "id": str(data.get("id") or uuid.uuid4()),
            "status": data.get("status", "pending"),
            "status_history": list(data.get("status_history") or []),
            "current_officer_id": data.get("current_officer_id"),
            "investigation_started_at": data.get("investigation_started_at"),
            "investigation_duration": data.get("investigation_duration"),
            "created_at": data.get("created_at", now),
            "updated_at": data.get("updated_at", now),
        }
        with self._lock:
            self._documents[doc["id"]] = copy.deepcopy(doc)
            self._versions[doc["id"]] = 0
        return doc["id"]

    def get_by_id(self, report_id: str) -> dict[str, Any] | None:
        with self._lock:
            document = self._documents.get(str(report_id))
            return copy.deepcopy(document) if document is not None else None

    def all(self) -> list[dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(doc) for doc in self._documents.values()]

    def version_of(self, report_id: str) -> int:
        with self._lock:
            return self._versions[str(report_id)]

    def server_now(self) -> datetime:
        return self._clock()

    def run_transaction(self, fn: Callable[[StoreTransaction], T]) -> T:
        return retry_on_conflict(
            lambda: self._attempt(fn),
            max_attempts=self.max_attempts,
            base_delay=self.retry_delay,
        )

    def _attempt(self, fn: Callable[[StoreTransaction], T]) -> T:
        txn = _InMemoryTransaction(self)
        result = fn(txn)
        with self._lock:
            for key, seen in txn.read_versions.items():
                if self._versions.get(key) != seen:
                    logger.debug("Stale version %d for report %s", seen, key)
                    raise TransactionConflict(document_id=key)
            for key, fields in txn.writes.items():
                self._documents[key].update(fields)
                self._versions[key] += 1
        return result

