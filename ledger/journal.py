"""
Intent journal for workflows that touch more than one key.

The store only offers single-key atomicity, so a referral or a join is
written as: intent record first (``pending``), one flag per finished step,
then ``completed``. A crash or store failure in between leaves the record
``pending`` or ``failed`` with the exact steps that went through.

Finished records are removed by ``prune`` after the retention window
(``scripts/prune_operations.py``).
"""

import logging
from typing import Any, Optional

from .errors import ArenaServiceError
from .store import SERVER_TIMESTAMP, DocumentStore

logger = logging.getLogger(__name__)

OPERATIONS_PATH = "operations"


class OperationStatus:
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class OperationJournal:
    def __init__(self, store: DocumentStore):
        self.store = store

    def begin(self, kind: str, user_id: str, **payload: Any) -> str:
        record = {
            "kind": kind,
            "userId": user_id,
            "status": OperationStatus.PENDING,
            "startedAt": SERVER_TIMESTAMP,
            **payload,
        }
        return self.store.append_child(OPERATIONS_PATH, record, key_field="id")

    def step(self, op_id: str, name: str) -> None:
        self.store.patch(f"{OPERATIONS_PATH}/{op_id}", {f"steps/{name}": True})

    def complete(self, op_id: str) -> None:
        # All wallet writes are done by now; a record stuck in pending only needs review.
        try:
            self.store.patch(f"{OPERATIONS_PATH}/{op_id}", {
                "status": OperationStatus.COMPLETED,
                "finishedAt": SERVER_TIMESTAMP,
            })
        except ArenaServiceError as e:
            logger.error("Could not mark operation %s as completed: %s", op_id, e)

    def fail(self, op_id: str, error: str) -> None:
        # Called from error paths; must not mask the original exception.
        try:
            self.store.patch(f"{OPERATIONS_PATH}/{op_id}", {
                "status": OperationStatus.FAILED,
                "error": error,
                "finishedAt": SERVER_TIMESTAMP,
            })
        except ArenaServiceError as e:
            logger.error("Could not mark operation %s as failed: %s", op_id, e)

    def get(self, op_id: str) -> Optional[dict]:
        return self.store.get(f"{OPERATIONS_PATH}/{op_id}")

    def prune(self, finished_before: int) -> int:
        """Delete completed and failed records finished before ``finished_before`` (epoch ms).

        Pending records are left alone; they are the ones that need review.
        """
        removed = 0
        for status in (OperationStatus.COMPLETED, OperationStatus.FAILED):
            for op_id, record in self.store.query_equal(OPERATIONS_PATH, "status", status).items():
                finished_at = record.get("finishedAt") if isinstance(record, dict) else None
                if isinstance(finished_at, int) and finished_at < finished_before:
                    self.store.set(f"{OPERATIONS_PATH}/{op_id}", None)
                    removed += 1
        logger.info("Pruned %d finished operations", removed)
        return removed
