"""
Rebuild the referCode -> userId index from the users tree.

Usage: python scripts/backfill_referral_index.py
"""

import logging
import sys

from ledger.config import Settings, configure_logging
from ledger.firebase_store import FirebaseStore, init_firebase_app
from ledger.referral_index import ReferralIndex

logger = logging.getLogger("backfill_referral_index")


def main() -> int:
    settings = Settings()
    configure_logging(settings.log_level)

    firebase_app = init_firebase_app(settings)
    if firebase_app is None:
        return 1

    indexed = ReferralIndex(FirebaseStore(firebase_app)).backfill()
    logger.info("Backfill finished: %d codes indexed", indexed)
    return 0


if __name__ == "__main__":
    sys.exit(main())
