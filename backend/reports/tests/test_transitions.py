"""
Unit tests — transactional transition executor against the in-memory store.

Covers the append-only history, the derived workflow fields
(assignee, investigation start/duration), failure normalisation and
concurrent transitions on the same report.
"""

from __future__ import annotations

import re
import threading
from datetime import timedelta

import pytest

from core.domain.exceptions import TransactionConflict
from reports.services import CaseStatusService, StatusTransitionContext
from reports.store import InMemoryReportStore


def _ctx(report_id, user_id, role, notes="", **metadata):
    return StatusTransitionContext(
        report_id=report_id,
        current_user_id=user_id,
        user_role=role,
        notes=notes,
        metadata=metadata or None,
    )


def _perform(store, *args, **kwargs):
    return CaseStatusService.perform_transition(_ctx(*args, **kwargs), store=store)


class TestPerformTransition:

    def test_desk_officer_validates_pending_report(self, memory_store, clock):
        report_id = memory_store.add(created_at=clock())
        clock.advance(minutes=30)

        result = _perform(memory_store, report_id, "desk-1", "desk_officer",
                          notes="reviewed", triageLevel="high")

        assert result.success is True
        assert result.new_status == "validated"
        assert result.error_message is None
        assert result.warnings == []
        report = memory_store.get_by_id(report_id)
        assert report["status"] == "validated"
        assert len(report["status_history"]) == 1
        entry = report["status_history"][0]
        assert entry["id"] == result.status_history_id
        assert entry["status"] == "validated"
        assert entry["previous_status"] == "pending"
        assert entry["officer_id"] == "desk-1"
        assert entry["officer_role"] == "desk_officer"
        assert entry["notes"] == "reviewed"
        assert entry["metadata"] == {"triageLevel": "high"}
        assert entry["timestamp"] == clock().isoformat()
        assert report["updated_at"] == clock()
        assert report["current_officer_id"] == "desk-1"

    def test_history_id_format(self, memory_store, clock):
        report_id = memory_store.add()
        result = _perform(memory_store, report_id, "desk-1", "desk_officer",
                          notes="ok", triageLevel="low")
        millis = int(clock().timestamp() * 1000)
        assert re.fullmatch(rf"hist_{millis}_[0-9a-z]{{9}}", result.status_history_id)

    def test_officer_cannot_assign_without_assignee(self, memory_store):
        report_id = memory_store.add(status="validated")

        result = _perform(memory_store, report_id, "officer-1", "officer", notes="taking it",
                          targetStatus="assigned")

        assert result.success is False
        assert "assignedTo" in result.error_message
        assert result.validation.required_role == "desk_officer"
        assert memory_store.get_by_id(report_id)["status"] == "validated"

    def test_assignment_sets_current_officer_to_assignee(self, memory_store):
        report_id = memory_store.add(status="validated")

        result = _perform(memory_store, report_id, "desk-1", "desk_officer", notes="unit 4",
                          assignedTo="inv-7")

        assert result.success is True
        assert memory_store.get_by_id(report_id)["current_officer_id"] == "inv-7"

    def test_investigation_duration_in_whole_hours(self, memory_store, clock):
        started = clock()
        report_id = memory_store.add(status="investigating", investigation_started_at=started,
                                     created_at=started)
        clock.advance(hours=5)

        result = _perform(memory_store, report_id, "inv-1", "investigator", notes="done",
                          targetStatus="resolved")

        assert result.success is True
        report = memory_store.get_by_id(report_id)
        assert report["status"] == "resolved"
        assert report["investigation_duration"] == 5

    @pytest.mark.parametrize("elapsed,expected", [
        (timedelta(hours=2, minutes=29), 2),
        (timedelta(hours=2, minutes=30), 3),
        (timedelta(minutes=10), 0),
    ])
    def test_investigation_duration_rounds_to_nearest_hour(self, memory_store, clock, elapsed, expected):
        report_id = memory_store.add(status="investigating", investigation_started_at=clock())
        clock.advance(seconds=elapsed.total_seconds())

        _perform(memory_store, report_id, "inv-1", "investigator", notes="done")

        assert memory_store.get_by_id(report_id)["investigation_duration"] == expected

    def test_resolving_without_start_time_leaves_duration_unset(self, memory_store):
        report_id = memory_store.add(status="investigating")
        _perform(memory_store, report_id, "inv-1", "investigator", notes="done")
        assert memory_store.get_by_id(report_id)["investigation_duration"] is None

    def test_investigation_start_is_set_once(self, memory_store, clock):
        report_id = memory_store.add(status="responding")
        first = clock()

        _perform(memory_store, report_id, "inv-1", "investigator", notes="on scene")
        clock.advance(hours=3)
        _perform(memory_store, report_id, "inv-1", "investigator", notes="interviewed witness",
                 targetStatus="investigating")
        clock.advance(hours=3)
        _perform(memory_store, report_id, "inv-1", "investigator", notes="solved")
        clock.advance(hours=1)
        _perform(memory_store, report_id, "sup-1", "supervisor", notes="reopen",
                 targetStatus="investigating")

        report = memory_store.get_by_id(report_id)
        assert report["investigation_started_at"] == first
        assert report["investigation_duration"] == 6
        assert report["status"] == "investigating"

    def test_default_next_status_is_used_without_target(self, memory_store):
        report_id = memory_store.add(status="accepted")
        result = _perform(memory_store, report_id, "inv-1", "investigator", notes="en route")
        assert result.new_status == "responding"

    def test_terminal_report_cannot_move(self, memory_store):
        report_id = memory_store.add(status="archived")
        result = _perform(memory_store, report_id, "admin-1", "admin", notes="again")
        assert result.success is False
        assert result.error_message == "Invalid transition from Archived to Archived"

    def test_location_is_recorded(self, memory_store):
        report_id = memory_store.add(status="accepted")
        context = StatusTransitionContext(
            report_id=report_id,
            current_user_id="inv-1",
            user_role="investigator",
            notes="leaving station",
            location={"latitude": 14.6, "longitude": 121.0},
        )
        CaseStatusService.perform_transition(context, store=memory_store)
        entry = memory_store.get_by_id(report_id)["status_history"][0]
        assert entry["location"] == {"latitude": 14.6, "longitude": 121.0}

    def test_sla_breach_is_reported_as_warning(self, memory_store, clock):
        report_id = memory_store.add(created_at=clock())
        clock.advance(hours=5)

        result = _perform(memory_store, report_id, "desk-1", "desk_officer",
                          notes="late review", triageLevel="low")

        assert result.success is True
        assert result.warnings == [
            "Transition completed after SLA breach of 4h for status 'pending'",
        ]


class TestHistoryIsAppendOnly:

    STEPS = [
        ("desk-1", "desk_officer", "reviewed", {"triageLevel": "high"}),
        ("desk-1", "desk_officer", "to inv-1", {"assignedTo": "inv-1"}),
        ("inv-1", "investigator", "accepted", {}),
        ("inv-1", "investigator", "driving", {}),
        ("inv-1", "investigator", "on scene", {}),
        ("inv-1", "investigator", "update", {"targetStatus": "investigating"}),
        ("inv-1", "investigator", "solved", {}),
        ("sup-1", "supervisor", "approved", {}),
    ]

    def test_entries_chain_and_never_change(self, memory_store, clock):
        report_id = memory_store.add()
        snapshots = []

        for n, (user_id, role, notes, metadata) in enumerate(self.STEPS, start=1):
            clock.advance(minutes=10)
            result = _perform(memory_store, report_id, user_id, role, notes, **metadata)
            assert result.success, result.error_message

            history = memory_store.get_by_id(report_id)["status_history"]
            assert len(history) == n
            assert history[:-1] == snapshots
            snapshots = [dict(entry) for entry in history]

        history = memory_store.get_by_id(report_id)["status_history"]
        assert history[0]["previous_status"] == "pending"
        for previous, entry in zip(history, history[1:]):
            assert entry["previous_status"] == previous["status"]
        assert [e["status"] for e in history] == [
            "validated", "assigned", "accepted", "responding",
            "investigating", "investigating", "resolved", "closed",
        ]
        assert len({e["id"] for e in history}) == len(history)

    def test_failed_transition_does_not_write(self, memory_store):
        report_id = memory_store.add()

        result = _perform(memory_store, report_id, "desk-1", "desk_officer", notes="")

        assert result.success is False
        assert set(result.validation.required_fields) == {"notes", "triageLevel"}
        assert memory_store.get_by_id(report_id)["status_history"] == []
        assert memory_store.version_of(report_id) == 0


class TestFailureNormalisation:

    def test_missing_report(self, memory_store):
        result = _perform(memory_store, "does-not-exist", "desk-1", "desk_officer", notes="x")
        assert result.success is False
        assert result.error_message == "Report not found"

    def test_unexpected_store_error(self):
        class BrokenStore:
            def run_transaction(self, fn):
                raise RuntimeError("store offline")

            def server_now(self):
                raise AssertionError("not reached")

        result = _perform(BrokenStore(), "r-1", "desk-1", "desk_officer", notes="x")
        assert result.success is False
        assert result.error_message == "store offline"

    def test_rejection_is_logged(self, memory_store, caplog):
        report_id = memory_store.add()
        with caplog.at_level("WARNING", logger="reports.services"):
            _perform(memory_store, report_id, "citizen-1", "citizen", notes="let me in")
        assert "Transition rejected" in caplog.text


class _ContendedStore(InMemoryReportStore):
    """Lets another writer commit to the report during the first N attempts."""

    def __init__(self, *, contended_attempts, **kwargs):
        super().__init__(**kwargs)
        self.contended_attempts = contended_attempts
        self.attempts = 0
        self.report_id = None

    def server_now(self):
        self.attempts += 1
        if self.attempts <= self.contended_attempts:
            rid = self.report_id
            InMemoryReportStore.run_transaction(
                self, lambda txn: (txn.get(rid), txn.update(rid, {"updated_at": self._clock()})),
            )
        return super().server_now()


class TestConcurrency:

    def test_conflicting_attempt_is_rerun(self, clock):
        store = _ContendedStore(contended_attempts=1, clock=clock)
        store.report_id = store.add()

        result = _perform(store, store.report_id, "desk-1", "desk_officer",
                          notes="reviewed", triageLevel="high")

        assert result.success is True
        assert store.attempts == 2
        report = store.get_by_id(store.report_id)
        assert len(report["status_history"]) == 1
        assert report["status"] == "validated"

    def test_exhausted_retries_fail_cleanly(self, clock):
        store = _ContendedStore(contended_attempts=99, max_attempts=3, clock=clock)
        store.report_id = store.add()

        result = _perform(store, store.report_id, "desk-1", "desk_officer",
                          notes="reviewed", triageLevel="high")

        assert result.success is False
        assert result.error_message == TransactionConflict().message
        assert store.attempts == 3
        report = store.get_by_id(store.report_id)
        assert report["status"] == "pending"
        assert report["status_history"] == []

    def test_racing_assignments_only_one_wins(self, clock):
        barrier = threading.Barrier(2, timeout=5)
        first_attempts = []
        lock = threading.Lock()

        class RacingStore(InMemoryReportStore):
            def server_now(self):
                # Hold both first attempts until each has read the report.
                with lock:
                    first = len(first_attempts) < 2
                    first_attempts.append(threading.get_ident())
                if first:
                    barrier.wait()
                return super().server_now()

        store = RacingStore(clock=clock)
        report_id = store.add(status="validated")
        results = []

        def assign(assignee):
            results.append(_perform(store, report_id, "desk-1", "desk_officer",
                                    notes=f"to {assignee}", assignedTo=assignee,
                                    targetStatus="assigned"))

        threads = [threading.Thread(target=assign, args=(a,)) for a in ("inv-1", "inv-2")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(r.success for r in results) == [False, True]
        winner = next(r for r in results if r.success)
        loser = next(r for r in results if not r.success)
        assert loser.error_message == "Invalid transition from Assigned to Investigator to Assigned to Investigator"

        report = store.get_by_id(report_id)
        assert report["status"] == "assigned"
        assert len(report["status_history"]) == 1
        assert report["status_history"][0]["id"] == winner.status_history_id
        assert report["current_officer_id"] == report["status_history"][0]["metadata"]["assignedTo"]
