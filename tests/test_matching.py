"""
Tests: Matching Engine and CompareService.

Uses a bag-of-keywords embedder so expected cosine scores can be worked out
by hand.
"""

import pytest

from dacum.ai.matching import (
    MatchingEngine,
    confidence_band,
    render_cu_text,
    render_record_text,
)
from dacum.core.exceptions import EmbeddingUnavailable, ValidationError
from dacum.services.compare_service import CompareService
from dacum.stores import build_stores
from dacum.utils.errors import E

VOCAB = ("attendance", "equipment", "report", "safety")


class KeywordEmbedder:
    def __init__(self):
        self.batches = []

    def embed(self, texts):
        self.batches.append(list(texts))
        return [[float(word in t.lower()) for word in VOCAB] for t in texts]


class BrokenEmbedder:
    def embed(self, texts):
        raise TimeoutError("provider timeout")


class ShortEmbedder:
    def embed(self, texts):
        return [[1.0, 0.0, 0.0, 0.0]]


@pytest.fixture()
def catalog():
    store = build_stores("memory")[2]
    store.add({"cu_code": "REF-1", "cu_title": "Attendance", "cu_description": "Attendance register"})
    store.add({"cu_code": "REF-2", "cu_title": "Equipment", "cu_description": "Equipment safety"})
    store.add({"cu_code": "REF-3", "cu_title": "Reporting", "cu_description": "Report writing"})
    return store


def _cu(code, title, *wa_titles, description=""):
    return {
        "cu_code": code,
        "cu_title": title,
        "cu_description": description,
        "work_activities": [{"wa_title": t} for t in wa_titles],
    }


class TestRendering:
    def test_cu_text_uses_wa_titles(self):
        text = render_cu_text(_cu("CU-01", "Attendance", "Record attendance", "Log sheet"))
        assert text == "Attendance\nRecord attendance; Log sheet"

    def test_cu_text_falls_back_to_description(self):
        assert render_cu_text(_cu("CU-01", "Attendance", description="Daily register")) == "Attendance\nDaily register"

    def test_record_text(self):
        assert render_record_text({"cu_title": "T", "cu_description": "D"}) == "T\nD"


class TestConfidence:
    @pytest.mark.parametrize("score,band", [
        (0.95, "HIGH"), (0.85, "HIGH"), (0.8, "MEDIUM"), (0.78, "MEDIUM"),
        (0.7, "LOW"), (0.69, "NONE"), (-0.2, "NONE"),
    ])
    def test_bands(self, score, band):
        assert confidence_band(score) == band


class TestMatch:
    def test_best_candidate_and_decision(self, catalog):
        engine = MatchingEngine(KeywordEmbedder(), catalog)
        [result] = engine.match([_cu("CU-01", "Attendance", "Record attendance")])
        assert result.candidates[0].cu_code == "REF-1"
        assert result.best_score == pytest.approx(1.0)
        assert result.confidence == "HIGH"
        assert result.decision == "MATCH"
        assert result.input_cu == {"cu_code": "CU-01", "cu_title": "Attendance"}

    def test_partial_overlap_below_threshold(self, catalog):
        engine = MatchingEngine(KeywordEmbedder(), catalog)
        # [0,1,0,0] vs REF-2 [0,1,0,1]: cos = 1/sqrt(2)
        [result] = engine.match([_cu("CU-02", "Equipment", "Service equipment")])
        assert result.candidates[0].cu_code == "REF-2"
        assert result.best_score == pytest.approx(0.7071, abs=1e-4)
        assert result.confidence == "LOW"
        assert result.decision == "NO_MATCH"

    def test_threshold_is_inclusive(self, catalog):
        engine = MatchingEngine(KeywordEmbedder(), catalog)
        [result] = engine.match([_cu("CU-02", "Equipment", "x")], accept_threshold=0.7071)
        assert result.decision == "MATCH"

    def test_top_k_bounds(self, catalog):
        engine = MatchingEngine(KeywordEmbedder(), catalog)
        [one] = engine.match([_cu("CU-01", "Attendance", "x")], top_k=1)
        assert len(one.candidates) == 1
        [capped] = engine.match([_cu("CU-01", "Attendance", "x")], top_k=50)
        assert len(capped.candidates) == 3

    def test_candidates_sorted_descending(self, catalog):
        engine = MatchingEngine(KeywordEmbedder(), catalog)
        [result] = engine.match([_cu("CU-09", "Safety report", "Equipment safety report")])
        scores = [c.score for c in result.candidates]
        assert scores == sorted(scores, reverse=True)

    def test_empty_input(self, catalog):
        assert MatchingEngine(KeywordEmbedder(), catalog).match([]) == []

    def test_empty_catalog(self):
        engine = MatchingEngine(KeywordEmbedder(), build_stores("memory")[2])
        with pytest.raises(ValidationError) as exc:
            engine.match([_cu("CU-01", "Attendance", "x")])
        assert exc.value.code == E.CATALOG_EMPTY

    def test_embedding_failure_surfaces(self, catalog):
        with pytest.raises(EmbeddingUnavailable):
            MatchingEngine(BrokenEmbedder(), catalog).match([_cu("CU-01", "Attendance", "x")])

    def test_wrong_vector_count_surfaces(self, catalog):
        with pytest.raises(EmbeddingUnavailable):
            MatchingEngine(ShortEmbedder(), catalog).match([_cu("CU-01", "Attendance", "x")])


class TestCatalogCache:
    def test_vectors_cached_until_count_changes(self, catalog):
        embedder = KeywordEmbedder()
        engine = MatchingEngine(embedder, catalog)
        engine.catalog_vectors()
        engine.catalog_vectors()
        assert len(embedder.batches) == 1

        catalog.add({"cu_code": "REF-4", "cu_title": "Safety", "cu_description": ""})
        records, vectors = engine.catalog_vectors()
        assert len(embedder.batches) == 2
        assert len(records) == len(vectors) == 4

    def test_invalidate_forces_rebuild(self, catalog):
        embedder = KeywordEmbedder()
        engine = MatchingEngine(embedder, catalog)
        engine.catalog_vectors()
        engine.invalidate()
        engine.catalog_vectors()
        assert len(embedder.batches) == 2

    def test_batches_respect_batch_size(self, catalog):
        embedder = KeywordEmbedder()
        MatchingEngine(embedder, catalog, batch_size=2).catalog_vectors()
        assert [len(b) for b in embedder.batches] == [2, 1]


class TestCompareService:
    def test_summary(self, catalog):
        service = CompareService(MatchingEngine(KeywordEmbedder(), catalog))
        result = service.compare([
            _cu("CU-01", "Attendance", "Record attendance"),
            _cu("CU-02", "Equipment", "Service equipment"),
        ])
        assert result["summary"] == {"total": 2, "matched": 1, "unmatched": 1}
        assert result["catalog"]["record_count"] == 3
        assert result["results"][0]["decision"] == "MATCH"

    def test_uses_session_chart(self, catalog):
        session_store = build_stores("memory")[0]
        session_store.save_chart("s1", [_cu("CU-01", "Attendance", "Record attendance")], None)
        service = CompareService(MatchingEngine(KeywordEmbedder(), catalog), session_store)
        result = service.compare(session_id="s1")
        assert result["summary"]["matched"] == 1

    def test_options_override_defaults(self, catalog):
        service = CompareService(MatchingEngine(KeywordEmbedder(), catalog), accept_threshold=0.99)
        result = service.compare([_cu("CU-02", "Equipment", "x")], options={"accept_threshold": 0.5, "top_k": 1})
        assert result["results"][0]["decision"] == "MATCH"
        assert len(result["results"][0]["candidates"]) == 1

    @pytest.mark.parametrize("cus", [None, [], ["CU-01"]])
    def test_invalid_input(self, catalog, cus):
        service = CompareService(MatchingEngine(KeywordEmbedder(), catalog))
        with pytest.raises(ValidationError):
            service.compare(cus)
