"""
AI usage model.

AIUsageLog records every embedding / generation call routed through the
LLM gateway: provider, model, token estimate, latency and outcome.
"""

from datetime import datetime, timezone

from dacum.models import db


class AIUsageLog(db.Model):
    """Token usage and latency for one LLM gateway call."""

    __tablename__ = "ai_usage_logs"

    id = db.Column(db.Integer, primary_key=True)
    provider = db.Column(db.String(30), nullable=False, comment="openai / gemini / anthropic / local")
    model = db.Column(db.String(80), nullable=False)
    prompt_tokens = db.Column(db.Integer, default=0)
    completion_tokens = db.Column(db.Integer, default=0)
    latency_ms = db.Column(db.Integer, default=0)
    purpose = db.Column(db.String(100), default="", comment="e.g. cluster_title, ws_seed, catalog_embedding")
    success = db.Column(db.Boolean, default=True)
    error_message = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "provider": self.provider,
            "model": self.model,
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "latency_ms": self.latency_ms,
            "purpose": self.purpose,
            "success": self.success,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
