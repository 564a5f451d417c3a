"""
Store interfaces consumed by the services.

The engine only ever issues the operations below, so any backing technology
(in-process dicts, SQL, a document store) can be swapped in without touching
clustering, validation or the lock state machine.

Concurrency control lives at this boundary: ``VersionStore.key_lock`` hands
out one re-entrant lock per (session_id, cu_code), and every append/overwrite
acquires it.
"""

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager

from dacum.services.cp_document import CPDocument, normalize_cu_code

SESSION_FIELDS = frozenset({
    "language",
    "language_locked",
    "language_locked_at",
    "chart",
    "applied_at",
    "cluster_result",
})


class KeyedLocks:
    """Lazily created ``threading.RLock`` per hashable key."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict = {}

    def get(self, key) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            return lock

    @contextmanager
    def hold(self, key):
        lock = self.get(key)
        with lock:
            yield


class SessionStore(ABC):
    """Activity cards and per-session settings, keyed by session id."""

    @abstractmethod
    def get(self, session_id: str) -> list[dict]:
        """Cards of a session in insertion order."""

    @abstractmethod
    def append(self, session_id: str, card: dict) -> dict:
        """Persist a normalised card and return it with its assigned ``id``."""

    @abstractmethod
    def tag(self, session_id: str, card_id, group_id: str) -> dict:
        """Write ``group_id`` once. Raises NotFoundError / ConflictError."""

    @abstractmethod
    def get_session(self, session_id: str) -> dict:
        """Session settings, created with defaults on first access."""

    @abstractmethod
    def update_session(self, session_id: str, **fields) -> dict:
        """Update any of ``SESSION_FIELDS`` and return the session."""

    # ── Convenience wrappers ─────────────────────────────────────────────

    def set_language(self, session_id: str, language: str) -> dict:
        return self.update_session(session_id, language=language)

    def lock_language(self, session_id: str, locked_at: str) -> dict:
        return self.update_session(session_id, language_locked=True, language_locked_at=locked_at)

    def save_chart(self, session_id: str, chart: list, applied_at: str) -> dict:
        return self.update_session(session_id, chart=chart, applied_at=applied_at)

    def get_chart(self, session_id: str) -> list:
        return self.get_session(session_id).get("chart") or []

    def save_cluster_result(self, session_id: str, result: dict) -> dict:
        return self.update_session(session_id, cluster_result=result)

    def get_cluster_result(self, session_id: str) -> dict | None:
        return self.get_session(session_id).get("cluster_result")


class VersionStore(ABC):
    """Append-only CP document history per (session_id, cu_code)."""

    def __init__(self):
        self._locks = KeyedLocks()

    @staticmethod
    def key(session_id: str, cu_code: str) -> tuple[str, str]:
        return str(session_id), normalize_cu_code(cu_code)

    def key_lock(self, session_id: str, cu_code: str):
        """Context manager serialising read-validate-write on one document."""
        return self._locks.hold(self.key(session_id, cu_code))

    @abstractmethod
    def get_versions(self, session_id: str, cu_code: str) -> list[CPDocument]:
        """All versions, oldest first. Empty list when none exist."""

    @abstractmethod
    def append_version(self, session_id: str, cu_code: str, doc: CPDocument) -> CPDocument:
        """Store *doc* under the next version number and return the stored copy."""

    @abstractmethod
    def overwrite_latest_unlocked(self, session_id: str, cu_code: str, doc: CPDocument) -> CPDocument:
        """Replace the latest version in place. Raises ConflictError if it is LOCKED."""

    def latest(self, session_id: str, cu_code: str) -> CPDocument | None:
        versions = self.get_versions(session_id, cu_code)
        return versions[-1] if versions else None


class CatalogStore(ABC):
    """Flat reference catalog deduplicated by ``cu_code``, plus build progress."""

    @abstractmethod
    def list_records(self) -> list[dict]:
        ...

    @abstractmethod
    def has(self, cu_code: str) -> bool:
        ...

    @abstractmethod
    def add(self, record: dict) -> bool:
        """Append *record*; returns False (and stores nothing) for a known code."""

    @abstractmethod
    def count(self) -> int:
        ...

    @abstractmethod
    def get_progress(self) -> dict:
        """``{last_page, total_count, updated_at, failed_pages}``"""

    @abstractmethod
    def save_progress(self, progress: dict) -> None:
        ...


def default_progress() -> dict:
    return {"last_page": 0, "total_count": 0, "updated_at": None, "failed_pages": []}
