"""
Tests: Reference catalog API and the CU comparator endpoint.

The testing app runs the gateway on its local stub provider, so identical
texts embed to identical vectors and match with score 1.0.
"""

import pytest

from dacum.services.catalog_service import StaticCatalogSource

PAGES = {
    1: [
        {"cuCode": "REF-001", "cuTitle": "Attendance Management", "cuDesc": "Record and verify attendance"},
        {"cuCode": "REF-002", "cuTitle": "Equipment Maintenance", "cuDesc": "Inspect and service equipment"},
    ],
    2: [
        {"cuCode": "REF-003", "cuTitle": "Report Preparation", "cuDesc": "Compile monthly reports"},
    ],
}


@pytest.fixture()
def source(services):
    services.catalog.source = StaticCatalogSource(PAGES)
    return services.catalog.source


@pytest.fixture()
def built(client, source):
    res = client.post("/api/v1/catalog/build", json={"from_page": 1, "to_page": 2})
    assert res.status_code == 200
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════════
# Catalog
# ═════════════════════════════════════════════════════════════════════════════


class TestCatalogAPI:
    def test_status_empty(self, client):
        data = client.get("/api/v1/catalog/status").get_json()
        assert data["record_count"] == 0
        assert data["last_page"] == 0
        assert data["source_configured"] is False

    def test_build_without_source(self, client):
        res = client.post("/api/v1/catalog/build", json={"from_page": 1})
        assert res.status_code == 422
        assert res.get_json()["details"]["component"] == "catalog"

    def test_build(self, client, built):
        assert built["added"] == 3
        assert built["progress"]["last_page"] == 2
        status = client.get("/api/v1/catalog/status").get_json()
        assert status["record_count"] == 3

    def test_rebuild_is_idempotent(self, client, built):
        again = client.post("/api/v1/catalog/build", json={"from_page": 1, "to_page": 2}).get_json()
        assert again["added"] == 0

    def test_resume(self, client, source):
        client.post("/api/v1/catalog/build", json={"from_page": 1})
        res = client.post("/api/v1/catalog/build", json={"resume": 1})
        assert res.get_json()["from_page"] == 2
        assert client.get("/api/v1/catalog/status").get_json()["record_count"] == 3

    def test_build_requires_range(self, client, source):
        assert client.post("/api/v1/catalog/build", json={}).status_code == 400

    def test_invalid_range(self, client, source):
        assert client.post("/api/v1/catalog/build", json={"from_page": 3, "to_page": 1}).status_code == 422

    def test_search(self, client, built):
        res = client.post("/api/v1/catalog/search", json={"q": "equipment"})
        assert res.status_code == 200
        hits = res.get_json()["hits"]
        assert hits[0]["cu_code"] == "REF-002"

    def test_search_requires_query(self, client):
        assert client.post("/api/v1/catalog/search", json={}).status_code == 400


# ═════════════════════════════════════════════════════════════════════════════
# Comparator
# ═════════════════════════════════════════════════════════════════════════════


class TestCompareAPI:
    def test_identical_text_matches(self, client, built):
        res = client.post("/api/v1/compare", json={"cus": [{
            "cu_code": "CU-01",
            "cu_title": "Attendance Management",
            "cu_description": "Record and verify attendance",
        }]})
        assert res.status_code == 200
        data = res.get_json()
        [result] = data["results"]
        assert result["decision"] == "MATCH"
        assert result["confidence"] == "HIGH"
        assert result["candidates"][0]["cu_code"] == "REF-001"
        assert result["best_score"] == pytest.approx(1.0)
        assert data["summary"] == {"total": 1, "matched": 1, "unmatched": 0}

    def test_top_k_option(self, client, built):
        res = client.post("/api/v1/compare", json={"cus": [{"cu_code": "CU-01", "cu_title": "x"}], "top_k": 2})
        assert len(res.get_json()["results"][0]["candidates"]) == 2

    def test_empty_catalog(self, client):
        res = client.post("/api/v1/compare", json={"cus": [{"cu_code": "CU-01", "cu_title": "Attendance"}]})
        assert res.status_code == 422
        body = res.get_json()
        assert body["code"] == "CATALOG_EMPTY"
        assert body["details"]["component"] == "matching"

    def test_requires_input(self, client):
        assert client.post("/api/v1/compare", json={}).status_code == 400
        assert client.post("/api/v1/compare", json={"cus": "CU-01"}).status_code == 400

    def test_session_without_chart(self, client, built):
        assert client.post("/api/v1/compare", json={"session_id": "s1"}).status_code == 422
