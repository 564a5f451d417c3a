"""
CU-to-catalog comparison for the comparator screen.

Thin orchestration over MatchingEngine: resolves the CUs to compare (inline
or the session chart), applies configured defaults and adds a summary.
"""

import logging

from dacum.ai.matching import DEFAULT_ACCEPT_THRESHOLD, DEFAULT_TOP_K
from dacum.core.exceptions import ValidationError

logger = logging.getLogger(__name__)


class CompareService:

    def __init__(self, engine, session_store=None, *,
                 top_k: int = DEFAULT_TOP_K, accept_threshold: float = DEFAULT_ACCEPT_THRESHOLD):
        self.engine = engine
        self.sessions = session_store
        self.top_k = top_k
        self.accept_threshold = accept_threshold

    def compare(self, cus: list | None = None, session_id: str | None = None, options: dict | None = None) -> dict:
        if cus is None and session_id and self.sessions is not None:
            cus = self.sessions.get_chart(session_id)
        if not isinstance(cus, list) or not cus:
            raise ValidationError("Provide a non-empty 'cus' list or a session with an applied chart",
                                  component="matching")
        if not all(isinstance(cu, dict) for cu in cus):
            raise ValidationError("Each CU must be an object", component="matching")

        options = options or {}
        try:
            top_k = int(options.get("top_k", self.top_k))
            threshold = float(options.get("accept_threshold", self.accept_threshold))
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid match options: {exc}", component="matching") from exc

        results = self.engine.match(cus, top_k=top_k, accept_threshold=threshold)
        matched = sum(1 for r in results if r.decision == "MATCH")
        logger.info("Compared %d CUs against catalog: %d matched", len(results), matched)
        return {
            "results": [r.to_dict() for r in results],
            "summary": {
                "total": len(results),
                "matched": matched,
                "unmatched": len(results) - matched,
            },
            "catalog": {"record_count": self.engine.catalog_store.count()},
        }
