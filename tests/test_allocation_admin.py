"""
Allocation API Tests

Tests validate:
- /api/v1/allocation/resolve runs both rounds on posted records
- Bad records map to 400, instability on request to 409
- /api/v1/allocation/run downloads, runs and optionally saves
- Admin key enforcement on /run
- Service health endpoint

Version: allocation_matching_v1
"""

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from main import app
from ta_allocation.integrations.source_client import AllocationSourceError
from ta_allocation.matching.errors import RecordValidationError
from ta_allocation.matching.models import AllocationRecords, BlockingPair, StabilityReport
from ta_allocation.storage.outcome_store import OutcomeStoreError


# ============================================================================
# Test Fixtures
# ============================================================================

RECORDS = {
    "students": [
        {"id": "S1", "ta_type": "1", "rand_score": 0.9},
        {"id": "S2", "ta_type": "2", "rand_score": 0.5},
    ],
    "courses": [
        {"id": "C1", "ta_type": "1", "rand_score": 0.5, "course": "101", "short_title": "Micro"},
    ],
    "student_preferences": [
        {"student_allocation_id": "S1", "course_allocation_id": "C1", "score": 1.0},
    ],
    "course_preferences": [
        {"course_allocation_id": "C1", "student_allocation_id": "S1", "score": 1.0},
    ],
}


@pytest.fixture
def client(monkeypatch):
    monkeypatch.delenv("ADMIN_API_KEY", raising=False)
    return TestClient(app)


@pytest.fixture
def source():
    """Patch the record source with an in-memory copy of RECORDS."""
    with patch("ta_allocation.matching.admin.AllocationSourceClient") as cls:
        cls.return_value.fetch_records.return_value = AllocationRecords.model_validate(RECORDS)
        yield cls


# ============================================================================
# Resolve Endpoint Tests
# ============================================================================

class TestResolveEndpoint:
    """POST /api/v1/allocation/resolve"""

    def test_resolve_scenario(self, client):
        response = client.post("/api/v1/allocation/resolve", json=RECORDS)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["outcome"] == [["S1", "C1"], ["S2", "none"]]
        assert body["result"]["is_stable"] is True
        assert body["result"]["match_hash"].startswith("sha256:")
        assert body["rows_saved"] is None

    def test_resolve_verbose_reports(self, client):
        response = client.post("/api/v1/allocation/resolve", json={**RECORDS, "verbose": True})

        first_round = response.json()["result"]["first_round"]
        assert "ROUND 1" in first_round["report"]

    def test_bad_records_rejected(self, client):
        bad = {**RECORDS, "students": [{"id": "S1", "ta_type": "9", "rand_score": 0.1}]}

        response = client.post("/api/v1/allocation/resolve", json=bad)

        assert response.status_code == 422

    def test_empty_body_allowed(self, client):
        response = client.post("/api/v1/allocation/resolve", json={})

        assert response.status_code == 200
        assert response.json()["outcome"] == []

    def test_unstable_is_conflict_when_required(self, client):
        unstable = StabilityReport(blocking_pairs=[
            BlockingPair(student_id="S1", course_id="C1", student_score=1.0, course_score=1.0)
        ])
        with patch("ta_allocation.matching.rounds.check_matching_stability", return_value=unstable):
            lenient = client.post("/api/v1/allocation/resolve", json=RECORDS)
            strict = client.post("/api/v1/allocation/resolve", json={**RECORDS, "require_stable": True})

        assert lenient.status_code == 200
        assert lenient.json()["result"]["is_stable"] is False
        assert strict.status_code == 409


# ============================================================================
# Run Endpoint Tests
# ============================================================================

class TestRunEndpoint:
    """POST /api/v1/allocation/run"""

    def test_run_without_save(self, client, source):
        with patch("ta_allocation.matching.admin.save_matching") as save:
            response = client.post("/api/v1/allocation/run", json={})

        assert response.status_code == 200
        assert response.json()["outcome"] == [["S1", "C1"], ["S2", "none"]]
        save.assert_not_called()

    def test_run_with_save(self, client, source):
        with patch("ta_allocation.matching.admin.save_matching", return_value=2) as save:
            response = client.post("/api/v1/allocation/run", json={"save": True})

        assert response.status_code == 200
        assert response.json()["rows_saved"] == 2
        saved = save.call_args[0][0]
        assert [p.as_tuple() for p in saved] == [("S1", "C1"), ("S2", "none")]

    def test_source_failure_is_bad_gateway(self, client, source):
        source.return_value.fetch_records.side_effect = AllocationSourceError(
            "GET student_allocations returned 503", status_code=503
        )

        response = client.post("/api/v1/allocation/run", json={})

        assert response.status_code == 502
        assert "503" in response.json()["detail"]

    def test_store_failure_is_bad_gateway(self, client, source):
        with patch(
            "ta_allocation.matching.admin.save_matching",
            side_effect=OutcomeStoreError("failed to save allocation outcome"),
        ):
            response = client.post("/api/v1/allocation/run", json={"save": True})

        assert response.status_code == 502

    def test_invalid_source_records_is_bad_request(self, client):
        with patch("ta_allocation.matching.admin.AllocationSourceClient") as cls:
            cls.return_value.fetch_records.side_effect = RecordValidationError(
                "invalid allocation records: 1 error(s)", errors=[{"loc": ["students", 0]}]
            )
            response = client.post("/api/v1/allocation/run", json={})

        assert response.status_code == 400
        assert response.json()["detail"]["errors"] == [{"loc": ["students", 0]}]


# ============================================================================
# Admin Key Tests
# ============================================================================

class TestAdminKey:
    """X-Admin-API-Key handling on /run."""

    def test_missing_key(self, client, source, monkeypatch):
        monkeypatch.setenv("ADMIN_API_KEY", "secret")

        response = client.post("/api/v1/allocation/run", json={})

        assert response.status_code == 401
        assert "Missing" in response.json()["detail"]

    def test_wrong_key(self, client, source, monkeypatch):
        monkeypatch.setenv("ADMIN_API_KEY", "secret")

        response = client.post("/api/v1/allocation/run", json={}, headers={"X-Admin-API-Key": "nope"})

        assert response.status_code == 401

    def test_right_key(self, client, source, monkeypatch):
        monkeypatch.setenv("ADMIN_API_KEY", "secret")

        response = client.post("/api/v1/allocation/run", json={}, headers={"X-Admin-API-Key": "secret"})

        assert response.status_code == 200

    def test_resolve_needs_no_key(self, client, monkeypatch):
        monkeypatch.setenv("ADMIN_API_KEY", "secret")

        response = client.post("/api/v1/allocation/resolve", json=RECORDS)

        assert response.status_code == 200


# ============================================================================
# Health Tests
# ============================================================================

class TestHealth:
    """Module and service health."""

    def test_allocation_health(self, client):
        response = client.get("/api/v1/allocation/health")

        assert response.status_code == 200
        assert response.json()["version"] == "allocation_matching_v1"

    def test_service_health_degraded_without_database(self, client):
        with patch("ta_allocation.health.get_db_connection", side_effect=Exception("no database")):
            response = client.get("/api/v1/health")

        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "degraded"
        assert body["database_connected"] is False
        assert body["details"]["database_error"] == "no database"

    def test_service_health_with_database(self, client):
        conn = MagicMock()
        cursor = conn.cursor.return_value.__enter__.return_value
        cursor.fetchone.return_value = {"exists": True}

        with patch("ta_allocation.health.get_db_connection", return_value=conn):
            response = client.get("/api/v1/health")

        body = response.json()
        assert body["status"] == "healthy"
        assert body["database_connected"] is True
        assert body["outcome_table_exists"] is True
        conn.close.assert_called_once()
