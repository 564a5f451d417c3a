"""
In-process store implementations.

Used by tests and single-process deployments (``STORE_BACKEND=memory``).
Data is kept as plain dicts and deep-copied on the way in and out so callers
can never mutate stored state by accident.
"""

import copy
import itertools
import threading

from dacum.core.exceptions import ConflictError, NotFoundError
from dacum.models.session import DEFAULT_LANGUAGE
from dacum.services.cp_document import STATUS_LOCKED, CPDocument, utcnow_iso
from dacum.stores.base import (
    SESSION_FIELDS,
    CatalogStore,
    SessionStore,
    VersionStore,
    default_progress,
)


class InMemorySessionStore(SessionStore):

    def __init__(self):
        self._lock = threading.Lock()
        self._cards: dict[str, list[dict]] = {}
        self._sessions: dict[str, dict] = {}
        self._ids = itertools.count(1)

    def get(self, session_id):
        with self._lock:
            return copy.deepcopy(self._cards.get(session_id, []))

    def append(self, session_id, card):
        with self._lock:
            stored = {
                "id": next(self._ids),
                "session_id": session_id,
                "raw_text": card["raw_text"],
                "panel_name": card.get("panel_name"),
                "source": card.get("source", "panel"),
                "group_id": None,
                "created_at": utcnow_iso(),
            }
            self._cards.setdefault(session_id, []).append(stored)
            return dict(stored)

    def tag(self, session_id, card_id, group_id):
        with self._lock:
            for card in self._cards.get(session_id, []):
                if card["id"] == card_id:
                    if card["group_id"] and card["group_id"] != group_id:
                        raise ConflictError("ActivityCard", "group_id", card["group_id"],
                                            component="card_store")
                    card["group_id"] = group_id
                    return dict(card)
        raise NotFoundError("ActivityCard", card_id, component="card_store")

    def get_session(self, session_id):
        with self._lock:
            return copy.deepcopy(self._ensure(session_id))

    def update_session(self, session_id, **fields):
        unknown = set(fields) - SESSION_FIELDS
        if unknown:
            raise ValueError(f"Unknown session fields: {sorted(unknown)}")
        with self._lock:
            session = self._ensure(session_id)
            session.update(copy.deepcopy(fields))
            return copy.deepcopy(session)

    def _ensure(self, session_id):
        session = self._sessions.get(session_id)
        if session is None:
            session = self._sessions[session_id] = {
                "session_id": session_id,
                "language": DEFAULT_LANGUAGE,
                "language_locked": False,
                "language_locked_at": None,
                "chart": [],
                "applied_at": None,
                "cluster_result": None,
            }
        return session


class InMemoryVersionStore(VersionStore):

    def __init__(self):
        super().__init__()
        self._history: dict[tuple[str, str], list[dict]] = {}

    def get_versions(self, session_id, cu_code):
        with self.key_lock(session_id, cu_code):
            rows = self._history.get(self.key(session_id, cu_code), [])
            return [CPDocument.from_dict(copy.deepcopy(r)) for r in rows]

    def append_version(self, session_id, cu_code, doc):
        with self.key_lock(session_id, cu_code):
            rows = self._history.setdefault(self.key(session_id, cu_code), [])
            stored = doc.copy()
            stored.version = rows[-1]["version"] + 1 if rows else 1
            rows.append(stored.to_dict())
            return stored.copy()

    def overwrite_latest_unlocked(self, session_id, cu_code, doc):
        with self.key_lock(session_id, cu_code):
            rows = self._history.get(self.key(session_id, cu_code))
            if not rows:
                raise NotFoundError("CPDocument", f"{session_id}/{cu_code}", component="version_store")
            if rows[-1]["status"] == STATUS_LOCKED:
                raise ConflictError("CPDocument", "status", STATUS_LOCKED,
                                    message="Latest version is locked and cannot be overwritten",
                                    component="version_store")
            stored = doc.copy()
            stored.version = rows[-1]["version"]
            rows[-1] = stored.to_dict()
            return stored.copy()


class InMemoryCatalogStore(CatalogStore):

    def __init__(self):
        self._lock = threading.Lock()
        self._records: dict[str, dict] = {}
        self._progress = default_progress()

    def list_records(self):
        with self._lock:
            return [dict(r) for r in self._records.values()]

    def has(self, cu_code):
        with self._lock:
            return cu_code in self._records

    def add(self, record):
        with self._lock:
            if record["cu_code"] in self._records:
                return False
            self._records[record["cu_code"]] = dict(record)
            return True

    def count(self):
        with self._lock:
            return len(self._records)

    def get_progress(self):
        with self._lock:
            return copy.deepcopy(self._progress)

    def save_progress(self, progress):
        with self._lock:
            self._progress = copy.deepcopy(progress)
