"""
Firebase Realtime Database implementation of the document store port.
"""

import json
import logging
import os
from contextlib import contextmanager
from typing import Any, Callable, Optional

import firebase_admin
from firebase_admin import credentials, db
from firebase_admin import exceptions as firebase_exceptions

from .config import Settings
from .errors import StoreTimeoutError, StoreUnavailableError
from .store import DocumentStore

logger = logging.getLogger(__name__)


def load_credentials(settings: Settings) -> Optional[credentials.Certificate]:
    if settings.firebase_credentials:
        try:
            return credentials.Certificate(json.loads(settings.firebase_credentials))
        except (ValueError, TypeError) as e:
            logger.error("FIREBASE_CREDENTIALS is not a valid service account: %s", e)
            return None

    if os.path.exists(settings.firebase_credentials_file):
        return credentials.Certificate(settings.firebase_credentials_file)

    logger.warning(
        "%s not found. Ensure FIREBASE_CREDENTIALS is set.", settings.firebase_credentials_file
    )
    return None


def init_firebase_app(settings: Settings) -> Optional[firebase_admin.App]:
    """Initialize (or reuse) the default Firebase app. Returns None without credentials."""
    if firebase_admin._apps:
        return firebase_admin.get_app()

    cred = load_credentials(settings)
    if cred is None:
        logger.error("Firebase credentials not found! Server cannot connect to DB.")
        return None

    try:
        app = firebase_admin.initialize_app(cred, {
            "databaseURL": settings.database_url,
            "httpTimeout": settings.store_timeout_seconds,
        })
    except ValueError as e:
        logger.error("Failed to initialize Firebase Admin SDK: %s", e)
        return None
    logger.info("Firebase Admin SDK initialized successfully.")
    return app


@contextmanager
def _translate_errors(operation: str, path: str):
    try:
        yield
    except firebase_exceptions.DeadlineExceededError as e:
        logger.error("Store %s on %s timed out: %s", operation, path, e)
        raise StoreTimeoutError(details={"path": path, "operation": operation}) from e
    except firebase_exceptions.FirebaseError as e:
        logger.error("Store %s on %s failed: %s", operation, path, e)
        raise StoreUnavailableError(details={"path": path, "operation": operation}) from e


class FirebaseStore(DocumentStore):
    def __init__(self, app: Optional[firebase_admin.App] = None):
        self.app = app

    def _ref(self, path: str) -> db.Reference:
        return db.reference(path, app=self.app)

    def get(self, path: str) -> Any:
        with _translate_errors("get", path):
            return self._ref(path).get()

    def set(self, path: str, value: Any) -> None:
        with _translate_errors("set", path):
            if value is None:
                self._ref(path).delete()
            else:
                self._ref(path).set(value)

    def patch(self, path: str, values: dict) -> None:
        with _translate_errors("patch", path):
            self._ref(path).update(values)

    def increment(self, path: str, amount: int) -> None:
        with _translate_errors("increment", path):
            self._ref(path).set({".sv": {"increment": amount}})

    def conditional_update(self, path: str, update_fn: Callable[[Any], Any]) -> Any:
        with _translate_errors("transaction", path):
            return self._ref(path).transaction(update_fn)

    def query_equal(self, path: str, child: str, value: Any) -> dict:
        with _translate_errors("query", path):
            result = self._ref(path).order_by_child(child).equal_to(value).get()
        return dict(result) if result else {}

    def append_child(self, path: str, value: dict, key_field: Optional[str] = None) -> str:
        # push() POSTs the value; the database assigns the key from its own clock.
        with _translate_errors("push", path):
            child = self._ref(path).push(value)
            if key_field:
                child.child(key_field).set(child.key)
        return child.key
