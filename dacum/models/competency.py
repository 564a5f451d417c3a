"""
Competency profile persistence models.

Models:
    - CPVersion: one snapshot in the append-only version history of a
      (session_id, cu_code) competency profile document
    - ReferenceCU: externally sourced reference competency unit
    - CatalogProgressRecord: single-row progress marker for catalog builds
"""

import json
from datetime import datetime, timezone

from dacum.models import db


class CPVersion(db.Model):
    """
    Immutable-by-convention CP document snapshot.

    Business rules:
    - (session_id, cu_code, version) is unique; version numbers are never reused.
    - Only the latest row may be overwritten, and only while its status is DRAFT.
    - ``cu_code`` is stored lower-cased so lookups are case-insensitive.
    """

    __tablename__ = "cp_versions"
    __table_args__ = (
        db.UniqueConstraint("session_id", "cu_code", "version", name="uq_cp_version"),
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.String(120), nullable=False, index=True)
    cu_code = db.Column(db.String(60), nullable=False, index=True)
    version = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(10), nullable=False, default="DRAFT", comment="DRAFT | LOCKED")
    document_json = db.Column(db.Text, nullable=False)
    saved_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    @property
    def document(self) -> dict:
        return json.loads(self.document_json)


class ReferenceCU(db.Model):
    """Reference catalog record, deduplicated by ``cu_code``."""

    __tablename__ = "reference_cus"

    id = db.Column(db.Integer, primary_key=True)
    cu_code = db.Column(db.String(60), nullable=False, unique=True, index=True)
    cu_title = db.Column(db.String(500), nullable=False)
    cu_description = db.Column(db.Text, default="")
    source_ref = db.Column(db.String(500), default="")
    indexed_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "cu_code": self.cu_code,
            "cu_title": self.cu_title,
            "cu_description": self.cu_description or "",
            "source_ref": self.source_ref or "",
            "indexed_at": self.indexed_at.isoformat() if self.indexed_at else None,
        }


class CatalogProgressRecord(db.Model):
    """Resumable build marker. The table holds at most one row."""

    __tablename__ = "catalog_progress"

    id = db.Column(db.Integer, primary_key=True)
    last_page = db.Column(db.Integer, nullable=False, default=0)
    total_count = db.Column(db.Integer, nullable=False, default=0)
    failed_pages_json = db.Column(db.Text, default="[]")
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self):
        return {
            "last_page": self.last_page,
            "total_count": self.total_count,
            "failed_pages": json.loads(self.failed_pages_json or "[]"),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
