"""
DACUM Competency Profile Platform
Matching Engine.

Compares a session's competency units against the reference catalog by
embedding similarity:

    1. Render every CU and every catalog record to one descriptive text
    2. Embed all texts (batched, ≤ EMBED_BATCH_SIZE per request)
    3. Cosine similarity of each CU against every catalog vector
    4. Top-K candidates, confidence band, MATCH / NO_MATCH decision

Catalog vectors are cached and rebuilt only when the catalog count changes.
Embedding failures are never swallowed: they surface as EmbeddingUnavailable
so the caller can show a blocking error instead of an empty result.
"""

import logging
import threading
from dataclasses import dataclass, field

from dacum.ai.similarity import cosine
from dacum.core.exceptions import EmbeddingUnavailable, ValidationError
from dacum.services.cp_document import wa_title_of
from dacum.utils.errors import E

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 3
MAX_TOP_K = 10
DEFAULT_ACCEPT_THRESHOLD = 0.78
MAX_BATCH_SIZE = 200

# (lower bound, band), checked in order
CONFIDENCE_BANDS = (
    (0.85, "HIGH"),
    (0.78, "MEDIUM"),
    (0.70, "LOW"),
)


def confidence_band(score: float) -> str:
    for bound, band in CONFIDENCE_BANDS:
        if score >= bound:
            return band
    return "NONE"


def render_cu_text(cu: dict) -> str:
    """``"{title}\\n{detail}"``: WA titles joined by "; ", else the CU description."""
    title = str(cu.get("cu_title") or cu.get("cuTitle") or cu.get("title") or "").strip()
    activities = cu.get("work_activities") or cu.get("workActivities") or cu.get("activities") or []
    wa_titles = [t for t in (wa_title_of(wa) for wa in activities) if t]
    if wa_titles:
        detail = "; ".join(wa_titles)
    else:
        detail = str(cu.get("cu_description") or cu.get("cuDescription") or "").strip()
    return f"{title}\n{detail}"


def render_record_text(record: dict) -> str:
    return f"{record.get('cu_title', '')}\n{record.get('cu_description', '')}"


@dataclass
class Candidate:
    cu_code: str
    cu_title: str
    score: float

    def to_dict(self) -> dict:
        return {"cu_code": self.cu_code, "cu_title": self.cu_title, "score": self.score}


@dataclass
class MatchResult:
    input_cu: dict
    candidates: list[Candidate] = field(default_factory=list)
    best_score: float = 0.0
    confidence: str = "NONE"
    decision: str = "NO_MATCH"
    accept_threshold: float = DEFAULT_ACCEPT_THRESHOLD

    def to_dict(self) -> dict:
        return {
            "input_cu": self.input_cu,
            "candidates": [c.to_dict() for c in self.candidates],
            "best_score": self.best_score,
            "confidence": self.confidence,
            "decision": self.decision,
            "accept_threshold": self.accept_threshold,
        }


class MatchingEngine:
    """
    Args:
        embedder: collaborator exposing ``embed(texts) -> list[vector]``.
        catalog_store: CatalogStore supplying ``list_records`` / ``count``.
        batch_size: texts per embedding request (capped at 200).
    """

    def __init__(self, embedder, catalog_store, batch_size: int = MAX_BATCH_SIZE):
        self.embedder = embedder
        self.catalog_store = catalog_store
        self.batch_size = max(1, min(int(batch_size), MAX_BATCH_SIZE))
        self._cache_lock = threading.Lock()
        self._cache_count: int | None = None
        self._cache_records: list[dict] = []
        self._cache_vectors: list[list[float]] = []

    # ── Embedding ─────────────────────────────────────────────────────────

    def _embed(self, texts: list[str]) -> list[list[float]]:
        vectors = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start:start + self.batch_size]
            try:
                out = self.embedder.embed(batch)
            except EmbeddingUnavailable:
                raise
            except Exception as exc:
                raise EmbeddingUnavailable(f"Embedding call failed: {exc}") from exc
            if out is None or len(out) != len(batch):
                raise EmbeddingUnavailable(
                    "Embedding service returned the wrong number of vectors",
                    details={"expected": len(batch), "received": len(out or [])},
                )
            vectors.extend(out)
        return vectors

    def catalog_vectors(self) -> tuple[list[dict], list[list[float]]]:
        """Cached ``(records, vectors)``; rebuilt when the catalog count changes."""
        with self._cache_lock:
            count = self.catalog_store.count()
            if count == 0:
                raise ValidationError(
                    "Reference catalog is empty; build it before matching",
                    code=E.CATALOG_EMPTY,
                    component="matching",
                )
            if count != self._cache_count:
                records = self.catalog_store.list_records()
                logger.info("Rebuilding catalog embedding cache (%d records)", len(records))
                vectors = self._embed([render_record_text(r) for r in records])
                self._cache_records, self._cache_vectors = records, vectors
                self._cache_count = count
            return self._cache_records, self._cache_vectors

    def invalidate(self) -> None:
        with self._cache_lock:
            self._cache_count = None
            self._cache_records, self._cache_vectors = [], []

    # ── Matching ──────────────────────────────────────────────────────────

    def match(
        self,
        input_cus: list[dict],
        top_k: int = DEFAULT_TOP_K,
        accept_threshold: float = DEFAULT_ACCEPT_THRESHOLD,
    ) -> list[MatchResult]:
        """
        Raises:
            ValidationError: empty catalog (code CATALOG_EMPTY).
            EmbeddingUnavailable: any embedding failure.
        """
        top_k = max(1, min(int(top_k), MAX_TOP_K))
        accept_threshold = float(accept_threshold)
        if not input_cus:
            return []

        records, catalog_vecs = self.catalog_vectors()
        input_vecs = self._embed([render_cu_text(cu) for cu in input_cus])

        results = []
        for cu, vec in zip(input_cus, input_vecs):
            scored = sorted(
                (
                    Candidate(
                        cu_code=rec["cu_code"],
                        cu_title=rec.get("cu_title", ""),
                        score=round(cosine(vec, cvec), 4),
                    )
                    for rec, cvec in zip(records, catalog_vecs)
                ),
                key=lambda c: -c.score,
            )
            top = scored[:top_k]
            best = top[0].score if top else 0.0
            results.append(MatchResult(
                input_cu={
                    "cu_code": str(cu.get("cu_code") or cu.get("cuCode") or ""),
                    "cu_title": str(cu.get("cu_title") or cu.get("cuTitle") or cu.get("title") or ""),
                },
                candidates=top,
                best_score=best,
                confidence=confidence_band(best),
                decision="MATCH" if best >= accept_threshold else "NO_MATCH",
                accept_threshold=accept_threshold,
            ))
        return results
