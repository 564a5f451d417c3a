"""
Flask-SQLAlchemy store implementations (``STORE_BACKEND=sql``).

Every write commits immediately: each store call is one unit of work. JSON
payloads (CP documents, charts, cluster results) are stored in Text columns
so SQLite and PostgreSQL behave the same.

Must be called inside an application context.
"""

import json
import logging
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from dacum.core.exceptions import ConflictError, NotFoundError
from dacum.models import db
from dacum.models.competency import CatalogProgressRecord, CPVersion, ReferenceCU
from dacum.models.session import ActivityCardRecord, PanelSession
from dacum.services.cp_document import STATUS_LOCKED, CPDocument
from dacum.stores.base import (
    SESSION_FIELDS,
    CatalogStore,
    SessionStore,
    VersionStore,
    default_progress,
)

logger = logging.getLogger(__name__)


def _parse_ts(value):
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


# ═════════════════════════════════════════════════════════════════════════════
# Sessions & cards
# ═════════════════════════════════════════════════════════════════════════════

class SqlSessionStore(SessionStore):

    def get(self, session_id):
        rows = (
            ActivityCardRecord.query
            .filter_by(session_id=session_id)
            .order_by(ActivityCardRecord.id)
            .all()
        )
        return [r.to_dict() for r in rows]

    def append(self, session_id, card):
        row = ActivityCardRecord(
            session_id=session_id,
            raw_text=card["raw_text"],
            panel_name=card.get("panel_name"),
            source=card.get("source", "panel"),
        )
        db.session.add(row)
        db.session.commit()
        return row.to_dict()

    def tag(self, session_id, card_id, group_id):
        row = ActivityCardRecord.query.filter_by(session_id=session_id, id=card_id).first()
        if not row:
            raise NotFoundError("ActivityCard", card_id, component="card_store")
        if row.group_id and row.group_id != group_id:
            raise ConflictError("ActivityCard", "group_id", row.group_id, component="card_store")
        row.group_id = group_id
        db.session.commit()
        return row.to_dict()

    def get_session(self, session_id):
        return self._serialize(self._ensure(session_id))

    def update_session(self, session_id, **fields):
        unknown = set(fields) - SESSION_FIELDS
        if unknown:
            raise ValueError(f"Unknown session fields: {sorted(unknown)}")
        row = self._ensure(session_id)
        if "language" in fields:
            row.language = fields["language"]
        if "language_locked" in fields:
            row.language_locked = bool(fields["language_locked"])
        if "language_locked_at" in fields:
            row.language_locked_at = _parse_ts(fields["language_locked_at"])
        if "chart" in fields:
            row.chart_json = json.dumps(fields["chart"] or [])
        if "applied_at" in fields:
            row.applied_at = _parse_ts(fields["applied_at"])
        if "cluster_result" in fields:
            result = fields["cluster_result"]
            row.cluster_result_json = json.dumps(result) if result is not None else None
        db.session.commit()
        return self._serialize(row)

    @staticmethod
    def _ensure(session_id) -> PanelSession:
        row = PanelSession.query.filter_by(session_id=session_id).first()
        if row is None:
            row = PanelSession(session_id=session_id)
            db.session.add(row)
            try:
                db.session.commit()
            except IntegrityError:
                # created concurrently by another request
                db.session.rollback()
                row = PanelSession.query.filter_by(session_id=session_id).one()
        return row

    @staticmethod
    def _serialize(row: PanelSession) -> dict:
        data = row.to_dict()
        data["chart"] = row.chart
        data["cluster_result"] = row.cluster_result
        return data


# ═════════════════════════════════════════════════════════════════════════════
# CP versions
# ═════════════════════════════════════════════════════════════════════════════

class SqlVersionStore(VersionStore):
    """
    Versions are rows of ``cp_versions``. The in-process key lock serialises
    writers in one process; the unique constraint on
    (session_id, cu_code, version) rejects a second process racing for the
    same number.
    """

    def _rows(self, session_id, cu_code):
        sid, code = self.key(session_id, cu_code)
        return (
            CPVersion.query
            .filter_by(session_id=sid, cu_code=code)
            .order_by(CPVersion.version)
            .all()
        )

    @staticmethod
    def _to_doc(row: CPVersion) -> CPDocument:
        doc = CPDocument.from_dict(row.document)
        doc.version = row.version
        return doc

    def get_versions(self, session_id, cu_code):
        with self.key_lock(session_id, cu_code):
            return [self._to_doc(r) for r in self._rows(session_id, cu_code)]

    def append_version(self, session_id, cu_code, doc):
        sid, code = self.key(session_id, cu_code)
        with self.key_lock(session_id, cu_code):
            latest = (
                db.session.query(db.func.max(CPVersion.version))
                .filter_by(session_id=sid, cu_code=code)
                .scalar()
            )
            stored = doc.copy()
            stored.version = (latest or 0) + 1
            db.session.add(CPVersion(
                session_id=sid,
                cu_code=code,
                version=stored.version,
                status=stored.status,
                document_json=json.dumps(stored.to_dict()),
            ))
            try:
                db.session.commit()
            except IntegrityError as exc:
                db.session.rollback()
                logger.warning("CP version race on %s/%s v%s", sid, code, stored.version)
                raise ConflictError("CPDocument", "version", stored.version,
                                    message="Concurrent write on the same document; retry",
                                    component="version_store") from exc
            return stored

    def overwrite_latest_unlocked(self, session_id, cu_code, doc):
        with self.key_lock(session_id, cu_code):
            rows = self._rows(session_id, cu_code)
            if not rows:
                raise NotFoundError("CPDocument", f"{session_id}/{cu_code}", component="version_store")
            row = rows[-1]
            if row.status == STATUS_LOCKED:
                raise ConflictError("CPDocument", "status", STATUS_LOCKED,
                                    message="Latest version is locked and cannot be overwritten",
                                    component="version_store")
            stored = doc.copy()
            stored.version = row.version
            row.status = stored.status
            row.document_json = json.dumps(stored.to_dict())
            row.saved_at = datetime.now(timezone.utc)
            db.session.commit()
            return stored


# ═════════════════════════════════════════════════════════════════════════════
# Reference catalog
# ═════════════════════════════════════════════════════════════════════════════

class SqlCatalogStore(CatalogStore):

    def list_records(self):
        return [r.to_dict() for r in ReferenceCU.query.order_by(ReferenceCU.id).all()]

    def has(self, cu_code):
        return db.session.query(ReferenceCU.id).filter_by(cu_code=cu_code).first() is not None

    def add(self, record):
        if self.has(record["cu_code"]):
            return False
        db.session.add(ReferenceCU(
            cu_code=record["cu_code"],
            cu_title=record["cu_title"],
            cu_description=record.get("cu_description", ""),
            source_ref=record.get("source_ref", ""),
        ))
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            return False
        return True

    def count(self):
        return ReferenceCU.query.count()

    def get_progress(self):
        row = db.session.get(CatalogProgressRecord, 1)
        return row.to_dict() if row else default_progress()

    def save_progress(self, progress):
        row = db.session.get(CatalogProgressRecord, 1)
        if row is None:
            row = CatalogProgressRecord(id=1)
            db.session.add(row)
        row.last_page = int(progress.get("last_page") or 0)
        row.total_count = int(progress.get("total_count") or 0)
        row.failed_pages_json = json.dumps(progress.get("failed_pages") or [])
        row.updated_at = _parse_ts(progress.get("updated_at"))
        db.session.commit()
