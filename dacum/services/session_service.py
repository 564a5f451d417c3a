"""
Panel session service: activity card ingestion, session language and the
applied competency profile chart.

Card payloads arrive from several front-ends with different names for the
activity text; ``normalize_card`` is the single place that maps them to
``raw_text``.
"""

import logging

from dacum.core.exceptions import ConflictError, ValidationError
from dacum.models.session import VALID_LANGUAGES
from dacum.services.cp_document import utcnow_iso

logger = logging.getLogger(__name__)

CARD_TEXT_KEYS = ("activity", "activityTitle", "waTitle", "wa", "title", "text", "name", "raw_text")
CARD_SOURCES = frozenset({"panel", "seed", "import"})


def normalize_card(data, *, source: str = "panel") -> dict:
    """Map any known activity-text synonym to ``raw_text``.

    >>> normalize_card({"waTitle": " Record attendance "})["raw_text"]
    'Record attendance'
    """
    if isinstance(data, str):
        data = {"raw_text": data}
    if not isinstance(data, dict):
        raise ValidationError("Card must be an object or a string", component="cards")

    text = ""
    for key in CARD_TEXT_KEYS:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            text = " ".join(value.split())
            break
    if not text:
        raise ValidationError(
            "Card has no activity text",
            details={"accepted_fields": list(CARD_TEXT_KEYS)},
            component="cards",
        )

    panel_name = data.get("panel_name") or data.get("panelName")
    card_source = str(data.get("source") or source)
    if card_source not in CARD_SOURCES:
        card_source = source
    return {
        "raw_text": text,
        "panel_name": str(panel_name).strip() if panel_name else None,
        "source": card_source,
    }


class SessionService:

    def __init__(self, session_store):
        self.store = session_store

    # ── Cards ─────────────────────────────────────────────────────────────

    def list_cards(self, session_id: str) -> list[dict]:
        return self.store.get(session_id)

    def add_card(self, session_id: str, data) -> dict:
        card = self.store.append(session_id, normalize_card(data))
        logger.debug("Card %s added to session %s", card["id"], session_id)
        return card

    def add_cards(self, session_id: str, items: list) -> list[dict]:
        """Normalise every item first so one bad card rejects the whole batch."""
        normalized = [normalize_card(item) for item in items]
        return [self.store.append(session_id, card) for card in normalized]

    def seed_cards(self, session_id: str, wa_titles: list) -> list[dict]:
        cards = []
        for title in wa_titles or []:
            if not isinstance(title, str) or not title.strip():
                continue
            cards.append(self.store.append(session_id, normalize_card({"raw_text": title}, source="seed")))
        logger.info("Seeded %d cards into session %s", len(cards), session_id)
        return cards

    # ── Language ──────────────────────────────────────────────────────────

    def get_config(self, session_id: str) -> dict:
        session = self.store.get_session(session_id)
        return {
            "session_id": session_id,
            "language": session["language"],
            "language_locked": bool(session["language_locked"]),
            "language_locked_at": session["language_locked_at"],
        }

    def set_language(self, session_id: str, language) -> dict:
        lang = str(language or "").strip().upper()
        if lang not in VALID_LANGUAGES:
            raise ValidationError(
                f"Invalid language '{language}'",
                details={"valid": sorted(VALID_LANGUAGES)},
                component="session",
            )
        session = self.store.get_session(session_id)
        if session["language_locked"] and session["language"] != lang:
            raise ConflictError("Session", "language", session["language"],
                                message="Session language is locked",
                                component="session")
        self.store.set_language(session_id, lang)
        return self.get_config(session_id)

    def lock_language(self, session_id: str) -> dict:
        session = self.store.get_session(session_id)
        if not session["language_locked"]:
            self.store.lock_language(session_id, utcnow_iso())
            logger.info("Session %s language locked as %s", session_id, session["language"])
        return self.get_config(session_id)

    # ── Summary & chart ───────────────────────────────────────────────────

    def summary(self, session_id: str) -> dict:
        cards = self.store.get(session_id)
        session = self.store.get_session(session_id)
        tagged = sum(1 for c in cards if c.get("group_id"))
        return {
            "session_id": session_id,
            "total_cards": len(cards),
            "tagged": tagged,
            "untagged": len(cards) - tagged,
            "language": session["language"],
            "language_locked": bool(session["language_locked"]),
            "has_cluster_result": session.get("cluster_result") is not None,
            "cu_count": len(session.get("chart") or []),
        }

    def get_chart(self, session_id: str) -> dict:
        session = self.store.get_session(session_id)
        return {
            "session_id": session_id,
            "language": session["language"],
            "applied_at": session["applied_at"],
            "cus": session.get("chart") or [],
        }
