"""
Delete finished operation journal records older than OPERATIONS_RETENTION_DAYS.

Usage: python scripts/prune_operations.py
"""

import logging
import sys
import time

from ledger.config import Settings, configure_logging
from ledger.firebase_store import FirebaseStore, init_firebase_app
from ledger.journal import OperationJournal

logger = logging.getLogger("prune_operations")

DAY_MS = 24 * 60 * 60 * 1000


def main() -> int:
    settings = Settings()
    configure_logging(settings.log_level)

    firebase_app = init_firebase_app(settings)
    if firebase_app is None:
        return 1

    cutoff = int(time.time() * 1000) - settings.operations_retention_days * DAY_MS
    removed = OperationJournal(FirebaseStore(firebase_app)).prune(cutoff)
    logger.info("Prune finished: %d operations removed", removed)
    return 0


if __name__ == "__main__":
    sys.exit(main())
