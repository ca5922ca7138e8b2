"""
Document store port.

Workflows only talk to a DocumentStore. Paths are slash-separated keys into a
single JSON tree, the way the realtime database addresses them
(``users/u1/wallet/greenDiamondBalance``).
"""

import copy
import random
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from .errors import StoreUnavailableError

# Placeholder resolved by the store at write time.
SERVER_TIMESTAMP = {".sv": "timestamp"}

MAX_TRANSACTION_RETRIES = 25

PUSH_CHARS = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"


class PushIdGenerator:
    """Chronologically sortable 20-character keys, same scheme as the realtime database client."""

    def __init__(self, clock: Callable[[], int] = None):
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._lock = threading.Lock()
        self._last_ts = 0
        self._last_rand = [0] * 12

    def __call__(self) -> str:
        with self._lock:
            now = self._clock()
            duplicate = now == self._last_ts
            self._last_ts = now

            ts_chars = []
            for _ in range(8):
                ts_chars.append(PUSH_CHARS[now % 64])
                now //= 64
            key = "".join(reversed(ts_chars))

            if not duplicate:
                self._last_rand = [random.randrange(64) for _ in range(12)]
            else:
                i = 11
                while i >= 0 and self._last_rand[i] == 63:
                    self._last_rand[i] = 0
                    i -= 1
                if i >= 0:
                    self._last_rand[i] += 1
            return key + "".join(PUSH_CHARS[r] for r in self._last_rand)


def split_path(path: str) -> list[str]:
    parts = [p for p in path.split("/") if p]
    if not parts:
        raise ValueError("Store path must not be empty")
    return parts


class DocumentStore(ABC):
    """Primitives the workflows need from the remote store."""

    @abstractmethod
    def get(self, path: str) -> Any:
        """Point read. Returns None when nothing is stored at ``path``."""

    @abstractmethod
    def set(self, path: str, value: Any) -> None:
        """Overwrite the value at ``path``. Writing None deletes it."""

    @abstractmethod
    def patch(self, path: str, values: dict) -> None:
        """Update only the given children of ``path``."""

    @abstractmethod
    def increment(self, path: str, amount: int) -> None:
        """Atomically add ``amount`` to the number at ``path`` (missing counts as 0)."""

    @abstractmethod
    def conditional_update(self, path: str, update_fn: Callable[[Any], Any]) -> Any:
        """Optimistic read-modify-write on a single key.

        ``update_fn`` receives the current value and returns the new one. It may
        be called more than once when another writer wins the race. Exceptions
        raised by ``update_fn`` abort the transaction and propagate unchanged.
        Returns the committed value.
        """

    @abstractmethod
    def query_equal(self, path: str, child: str, value: Any) -> dict:
        """Children of ``path`` whose ``child`` field equals ``value``."""

    @abstractmethod
    def append_child(self, path: str, value: dict, key_field: Optional[str] = None) -> str:
        """Store ``value`` under a fresh chronological key below ``path`` and return the key.

        When ``key_field`` is given the key is also written into the value.
        """


class InMemoryStore(DocumentStore):
    """Thread-safe tree with a real compare-and-swap loop. Used by tests and local runs."""

    def __init__(self, data: Optional[dict] = None, clock: Optional[Callable[[], int]] = None):
        self._root: dict = copy.deepcopy(data) if data else {}
        self._lock = threading.RLock()
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._push_ids = PushIdGenerator(self._clock)

    def append_child(self, path: str, value: dict, key_field: Optional[str] = None) -> str:
        key = self._push_ids()
        if key_field:
            value = {**value, key_field: key}
        self.set(f"{path}/{key}", value)
        return key

    def get(self, path: str) -> Any:
        with self._lock:
            return copy.deepcopy(self._read(split_path(path)))

    def set(self, path: str, value: Any) -> None:
        with self._lock:
            self._write(split_path(path), self._resolve(value))

    def patch(self, path: str, values: dict) -> None:
        base = split_path(path)
        with self._lock:
            for key, value in values.items():
                self._write(base + split_path(key), self._resolve(value))

    def increment(self, path: str, amount: int) -> None:
        parts = split_path(path)
        with self._lock:
            current = self._read(parts)
            if not isinstance(current, (int, float)) or isinstance(current, bool):
                current = 0
            self._write(parts, current + amount)

    def conditional_update(self, path: str, update_fn: Callable[[Any], Any]) -> Any:
        parts = split_path(path)
        for _ in range(MAX_TRANSACTION_RETRIES):
            with self._lock:
                snapshot = copy.deepcopy(self._read(parts))
            new_value = update_fn(copy.deepcopy(snapshot))
            with self._lock:
                if self._read(parts) != snapshot:
                    continue
                resolved = self._resolve(new_value)
                self._write(parts, resolved)
                return copy.deepcopy(resolved)
        raise StoreUnavailableError(
            f"Transaction on {path} aborted after {MAX_TRANSACTION_RETRIES} retries"
        )

    def query_equal(self, path: str, child: str, value: Any) -> dict:
        with self._lock:
            node = self._read(split_path(path))
            if not isinstance(node, dict):
                return {}
            return {
                key: copy.deepcopy(item)
                for key, item in node.items()
                if isinstance(item, dict) and item.get(child) == value
            }

    def _read(self, parts: list[str]) -> Any:
        node: Any = self._root
        for part in parts:
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    def _write(self, parts: list[str], value: Any) -> None:
        if value is None:
            self._delete(parts)
            return
        node = self._root
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value

    def _delete(self, parts: list[str]) -> None:
        node = self._root
        trail = []
        for part in parts[:-1]:
            if not isinstance(node, dict) or part not in node:
                return
            trail.append((node, part))
            node = node[part]
        if isinstance(node, dict):
            node.pop(parts[-1], None)
        # Empty parents disappear, as they do in the realtime database.
        for parent, key in reversed(trail):
            if parent[key] == {}:
                del parent[key]

    def _resolve(self, value: Any) -> Any:
        if value == SERVER_TIMESTAMP:
            return self._clock()
        if isinstance(value, dict):
            return {k: self._resolve(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._resolve(v) for v in value]
        return value
