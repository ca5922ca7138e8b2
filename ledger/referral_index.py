import logging
from typing import Optional

from .store import DocumentStore

logger = logging.getLogger(__name__)

INDEX_PATH = "referCodes"
USERS_PATH = "users"

# Characters the realtime database rejects in keys.
FORBIDDEN_KEY_CHARS = set(".$#[]/")


def is_indexable(code: str) -> bool:
    return bool(code) and not (set(code) & FORBIDDEN_KEY_CHARS)


class ReferralIndex:
    """Secondary index ``referCode -> userId`` with a scan fallback."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def lookup(self, code: str) -> Optional[str]:
        indexable = is_indexable(code)
        if indexable:
            user_id = self.store.get(f"{INDEX_PATH}/{code}")
            if user_id:
                # Codes are assigned elsewhere; only trust the entry while the user still owns it.
                if self.store.get(f"{USERS_PATH}/{user_id}/referCode") == code:
                    return user_id
                logger.warning("Index entry %s -> %s is stale, rescanning", code, user_id)
                self.store.set(f"{INDEX_PATH}/{code}", None)

        matches = self.store.query_equal(USERS_PATH, "referCode", code)
        if not matches:
            return None

        user_id = next(iter(matches))
        if len(matches) > 1:
            logger.warning("Refer code %s is shared by %d users, using %s", code, len(matches), user_id)
        if indexable:
            logger.info("Indexing refer code %s -> %s after scan", code, user_id)
            self.register(user_id, code)
        return user_id

    def register(self, user_id: str, code: str) -> None:
        if not is_indexable(code):
            raise ValueError(f"Refer code {code!r} cannot be used as an index key")
        self.store.set(f"{INDEX_PATH}/{code}", user_id)

    def backfill(self) -> int:
        users = self.store.get(USERS_PATH) or {}
        indexed = 0
        for user_id, data in users.items():
            code = data.get("referCode") if isinstance(data, dict) else None
            if not code:
                continue
            if not is_indexable(code):
                logger.warning("Skipping user %s: refer code %r is not a valid key", user_id, code)
                continue
            self.register(user_id, code)
            indexed += 1
        logger.info("Indexed %d refer codes", indexed)
        return indexed
