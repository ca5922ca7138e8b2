"""
Unit Tests for the Operation Journal

Tests cover:
1. Record lifecycle (pending, steps, completed/failed)
2. Store failures while closing a record do not escape
3. Retention pruning of finished records
"""

import pytest

from ledger.errors import StoreUnavailableError
from ledger.journal import OperationJournal, OperationStatus
from ledger.store import InMemoryStore


class TestLifecycle:

    def test_begin_step_complete(self, store):
        journal = OperationJournal(store)

        op_id = journal.begin("join", "u1", tournamentId="t1")
        journal.step(op_id, "debit")
        journal.complete(op_id)

        record = journal.get(op_id)
        assert record["id"] == op_id
        assert record["userId"] == "u1"
        assert record["tournamentId"] == "t1"
        assert record["steps"] == {"debit": True}
        assert record["status"] == OperationStatus.COMPLETED
        assert record["finishedAt"] > record["startedAt"]

    def test_fail_records_error(self, store):
        journal = OperationJournal(store)

        op_id = journal.begin("referral", "u2")
        journal.fail(op_id, "Insufficient Balance")

        record = journal.get(op_id)
        assert record["status"] == OperationStatus.FAILED
        assert record["error"] == "Insufficient Balance"

    def test_close_failures_are_logged_not_raised(self, store, caplog):
        journal = OperationJournal(store)
        op_id = journal.begin("join", "u1")

        def broken_patch(path, values):
            raise StoreUnavailableError()

        store.patch = broken_patch

        journal.complete(op_id)
        journal.fail(op_id, "boom")

        assert journal.get(op_id)["status"] == OperationStatus.PENDING
        assert "Could not mark operation" in caplog.text

    def test_unexpected_errors_propagate(self, store):
        journal = OperationJournal(store)
        op_id = journal.begin("join", "u1")

        def broken_patch(path, values):
            raise RuntimeError("bug")

        store.patch = broken_patch

        with pytest.raises(RuntimeError):
            journal.complete(op_id)


class TestPrune:

    @pytest.fixture
    def journal(self):
        now = {"ms": 1_000}
        store = InMemoryStore(clock=lambda: now["ms"])
        journal = OperationJournal(store)
        journal.now = now
        return journal

    def _finished(self, journal, at, status=OperationStatus.COMPLETED):
        journal.now["ms"] = at
        op_id = journal.begin("join", "u1")
        if status == OperationStatus.COMPLETED:
            journal.complete(op_id)
        elif status == OperationStatus.FAILED:
            journal.fail(op_id, "x")
        return op_id

    def test_prunes_only_old_finished_records(self, journal):
        old_done = self._finished(journal, 1_000)
        old_failed = self._finished(journal, 2_000, OperationStatus.FAILED)
        old_pending = self._finished(journal, 3_000, OperationStatus.PENDING)
        recent = self._finished(journal, 9_000)

        removed = journal.prune(finished_before=5_000)

        assert removed == 2
        assert journal.get(old_done) is None
        assert journal.get(old_failed) is None
        assert journal.get(old_pending)["status"] == OperationStatus.PENDING
        assert journal.get(recent) is not None

    def test_prune_empty(self, store):
        assert OperationJournal(store).prune(finished_before=10 ** 15) == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
