"""
Tests: Reference catalog builder (incremental, resumable, deduplicating)
and keyword search. Runs against both store backends.
"""

import json

import pytest

from dacum.core.exceptions import ValidationError
from dacum.services.catalog_service import (
    CatalogBuilder,
    CatalogSource,
    JsonFileCatalogSource,
    StaticCatalogSource,
    normalize_record,
)
from dacum.stores import build_stores

PAGES = {
    1: [
        {"cuCode": "REF-001", "cuTitle": "Attendance Management", "cuDesc": "Record and verify attendance"},
        {"cuCode": "REF-002", "cuTitle": "Equipment Maintenance", "cuDesc": "Inspect and service equipment"},
    ],
    2: [
        {"cuCode": "REF-002", "cuTitle": "Equipment Maintenance (dup)"},
        {"cuCode": "REF-003", "cuTitle": "Report Preparation", "jdUrl": "https://example.org/ref-003"},
        {"cuTitle": "No code here"},
    ],
    3: [
        {"cu_code": "REF-004", "cu_title": "Safety Audit", "cu_description": "Audit site safety"},
    ],
}


class FlakySource(CatalogSource):
    """Page 2 fails until ``healed`` is set."""

    def __init__(self):
        self.healed = False

    def fetch_page(self, page):
        if page == 2 and not self.healed:
            raise ConnectionError("upstream timeout")
        return StaticCatalogSource(PAGES).fetch_page(page)


@pytest.fixture(params=["memory", "sql"])
def store(request):
    return build_stores(request.param)[2]


class TestNormalize:
    def test_maps_source_fields(self):
        rec = normalize_record({"cuCode": " REF-9 ", "cuTitle": "A  title", "jdUrl": "u"})
        assert rec["cu_code"] == "REF-9"
        assert rec["cu_title"] == "A title"
        assert rec["source_ref"] == "u"
        assert rec["cu_description"] == ""

    @pytest.mark.parametrize("raw", [{"cuTitle": "x"}, {"cuCode": "x"}, "REF-1", None])
    def test_rejects_incomplete(self, raw):
        assert normalize_record(raw) is None


class TestBuild:
    def test_increment_adds_and_dedups(self, store):
        builder = CatalogBuilder(store, StaticCatalogSource(PAGES))
        result = builder.build_increment(1, 2)
        assert result["added"] == 3
        assert result["skipped"] == 2
        assert result["pages_processed"] == 2
        assert result["failed_pages"] == []
        assert result["progress"]["last_page"] == 2
        assert result["progress"]["total_count"] == 3
        assert store.count() == 3

    def test_rebuilding_same_range_adds_nothing(self, store):
        builder = CatalogBuilder(store, StaticCatalogSource(PAGES))
        builder.build_increment(1, 3)
        again = builder.build_increment(1, 3)
        assert again["added"] == 0
        assert store.count() == 4

    def test_failed_page_reported_and_resumable(self, store):
        source = FlakySource()
        builder = CatalogBuilder(store, source)
        result = builder.build_increment(1, 3)
        assert [f["page"] for f in result["failed_pages"]] == [2]
        assert "upstream timeout" in result["failed_pages"][0]["error"]
        assert result["progress"]["last_page"] == 3
        assert store.count() == 3

        source.healed = True
        retry = builder.build_increment(2)
        assert retry["added"] == 1
        assert retry["progress"]["failed_pages"] == []
        assert store.count() == 4

    def test_resume_continues_after_last_page(self, store):
        builder = CatalogBuilder(store, StaticCatalogSource(PAGES))
        builder.build_increment(1)
        result = builder.resume(pages=2)
        assert (result["from_page"], result["to_page"]) == (2, 3)
        assert store.get_progress()["last_page"] == 3

    @pytest.mark.parametrize("args", [(0, 1), (3, 2), ("x", None)])
    def test_invalid_range(self, store, args):
        with pytest.raises(ValidationError):
            CatalogBuilder(store, StaticCatalogSource(PAGES)).build_increment(*args)

    def test_no_source_configured(self, store):
        with pytest.raises(ValidationError):
            CatalogBuilder(store).build_increment(1)

    def test_status(self, store):
        builder = CatalogBuilder(store, StaticCatalogSource(PAGES))
        assert builder.status()["record_count"] == 0
        builder.build_increment(1)
        status = builder.status()
        assert status["record_count"] == 2
        assert status["last_page"] == 1
        assert status["source_configured"] is True

    def test_json_file_source(self, store, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text(json.dumps({"pages": {"1": PAGES[1]}}), encoding="utf-8")
        result = CatalogBuilder(store, JsonFileCatalogSource(str(path))).build_increment(1, 2)
        assert result["added"] == 2
        assert result["pages_processed"] == 2


class TestSearch:
    @pytest.fixture()
    def builder(self, store):
        builder = CatalogBuilder(store, StaticCatalogSource(PAGES))
        builder.build_increment(1, 3)
        return builder

    def test_title_hits_rank_first(self, builder):
        result = builder.search("audit")
        assert result["total_indexed"] == 4
        assert result["hits"][0]["cu_code"] == "REF-004"
        assert result["hits"][0]["score"] == 3 + 2 + 1

    def test_case_insensitive_and_whitespace_normalised(self, builder):
        assert builder.search("  EQUIPMENT   maintenance ")["hits"][0]["cu_code"] == "REF-002"

    def test_code_match(self, builder):
        hits = builder.search("ref-003")["hits"]
        assert [h["cu_code"] for h in hits] == ["REF-003"]

    def test_empty_query(self, builder):
        assert builder.search("")["hits"] == []

    def test_limit(self, builder):
        assert len(builder.search("ref", limit=2)["hits"]) == 2
