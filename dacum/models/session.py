"""
Panel session & activity card models.

Models:
    - PanelSession: one DACUM panel workshop (language, language lock,
      applied competency profile chart, latest cluster result)
    - ActivityCardRecord: one statement of work submitted by a panelist

Card rows are insert-only. The single exception is ``group_id``, which the
apply-cluster step writes once.
"""

import json
from datetime import datetime, timezone

from dacum.models import db

VALID_LANGUAGES = frozenset({"MS", "EN"})
DEFAULT_LANGUAGE = "MS"


class PanelSession(db.Model):
    """Session-level settings and derived artifacts for one panel."""

    __tablename__ = "panel_sessions"

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.String(120), nullable=False, unique=True, index=True)
    language = db.Column(db.String(4), nullable=False, default=DEFAULT_LANGUAGE)
    language_locked = db.Column(db.Boolean, nullable=False, default=False)
    language_locked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # JSON-encoded payloads (SQLite-safe, same approach as AI embeddings)
    chart_json = db.Column(db.Text, nullable=True, comment="Applied CU -> WA list")
    applied_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cluster_result_json = db.Column(db.Text, nullable=True, comment="Latest cluster run")

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    @property
    def chart(self) -> list:
        return json.loads(self.chart_json) if self.chart_json else []

    @property
    def cluster_result(self) -> dict | None:
        return json.loads(self.cluster_result_json) if self.cluster_result_json else None

    def to_dict(self):
        return {
            "session_id": self.session_id,
            "language": self.language,
            "language_locked": bool(self.language_locked),
            "language_locked_at": self.language_locked_at.isoformat() if self.language_locked_at else None,
            "applied_at": self.applied_at.isoformat() if self.applied_at else None,
        }


class ActivityCardRecord(db.Model):
    """Persisted ActivityCard."""

    __tablename__ = "activity_cards"

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.String(120), nullable=False, index=True)
    raw_text = db.Column(db.Text, nullable=False)
    panel_name = db.Column(db.String(150), nullable=True)
    source = db.Column(db.String(30), nullable=False, default="panel")
    group_id = db.Column(db.String(40), nullable=True, comment="CU code written by apply-cluster")
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "session_id": self.session_id,
            "raw_text": self.raw_text,
            "panel_name": self.panel_name,
            "source": self.source,
            "group_id": self.group_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
