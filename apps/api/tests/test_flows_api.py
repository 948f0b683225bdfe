"""
Integration tests for flow generation and block lookup endpoints.
"""
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from routers.flows import get_flow_planner
from services.flow_planner import PlannedBlock, PlannerResult
from services.segments import Section


@pytest.fixture
def override_planner(client):
    from main import app

    planner = MagicMock()
    app.dependency_overrides[get_flow_planner] = lambda: planner
    yield planner
    app.dependency_overrides.pop(get_flow_planner, None)


class TestGenerateFlow:
    def test_requires_auth(self, client, catalog):
        response = client.post("/api/flows/generate", json={"polyvagal_state": "steady", "duration_minutes": 5})
        assert response.status_code == 401
        assert response.json()["error_code"] == "UNAUTHORIZED"

    def test_rejects_bad_token(self, client, catalog):
        response = client.post(
            "/api/flows/generate",
            json={"polyvagal_state": "steady", "duration_minutes": 5},
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert response.status_code == 401

    def test_steady_five_minutes_end_to_end(self, client, catalog, auth_headers):
        response = client.post(
            "/api/flows/generate",
            json={"polyvagal_state": "steady", "duration_minutes": 5,
                  "body_scan_start": False, "body_scan_end": False},
            headers=auth_headers,
        )
        assert response.status_code == 200
        data = response.json()

        blocks = [s for s in data["segments"] if s["type"] == "somi_block"]
        assert len(blocks) == 3
        assert not any(s["type"] == "body_scan" for s in data["segments"])
        assert data["actual_duration_seconds"] == 240
        assert data["source"] == "algorithmic"
        assert data["reasoning"]

    def test_only_active_video_blocks_are_used(self, client, catalog, auth_headers):
        response = client.post(
            "/api/flows/generate",
            json={"polyvagal_state": "steady", "duration_minutes": 60},
            headers=auth_headers,
        )
        ids = {s["somi_block_id"] for s in response.json()["segments"] if s["type"] == "somi_block"}
        assert ids <= set(range(1, 10))

    def test_block_segment_shape(self, client, catalog, auth_headers):
        response = client.post(
            "/api/flows/generate",
            json={"polyvagal_state": "wired", "duration_minutes": 10, "body_scan_start": True, "body_scan_end": True},
            headers=auth_headers,
        )
        segments = response.json()["segments"]
        assert segments[0] == {
            "type": "body_scan", "section": "warm_up", "duration_seconds": 60,
            "somi_block_id": None, "canonical_name": None, "name": None, "description": None,
            "energy_delta": None, "safety_delta": None, "url": None,
        }
        block = segments[2]
        assert block["type"] == "somi_block"
        assert block["url"].startswith("https://cdn.example.com/")
        assert block["duration_seconds"] == 60

    @pytest.mark.parametrize("duration", [0, 61, -5])
    def test_duration_out_of_range(self, client, catalog, auth_headers, duration):
        response = client.post(
            "/api/flows/generate",
            json={"polyvagal_state": "steady", "duration_minutes": duration},
            headers=auth_headers,
        )
        assert response.status_code == 422

    def test_unknown_state_rejected(self, client, catalog, auth_headers):
        response = client.post(
            "/api/flows/generate",
            json={"polyvagal_state": "ecstatic", "duration_minutes": 5},
            headers=auth_headers,
        )
        assert response.status_code == 422

    def test_missing_field_rejected(self, client, catalog, auth_headers):
        response = client.post("/api/flows/generate", json={"polyvagal_state": "steady"}, headers=auth_headers)
        assert response.status_code == 422

    def test_empty_catalog_is_503(self, client, auth_headers):
        response = client.post(
            "/api/flows/generate",
            json={"polyvagal_state": "steady", "duration_minutes": 5},
            headers=auth_headers,
        )
        assert response.status_code == 503
        assert response.json()["error_code"] == "CATALOG_UNAVAILABLE"

    def test_catalog_read_failure_is_503(self, client, catalog, auth_headers):
        with patch("sqlalchemy.orm.Query.all", side_effect=OperationalError("SELECT", {}, Exception("db gone"))):
            response = client.post(
                "/api/flows/generate",
                json={"polyvagal_state": "steady", "duration_minutes": 5},
                headers=auth_headers,
            )
        assert response.status_code == 503

    def test_ai_plan_returned(self, client, catalog, auth_headers, override_planner):
        override_planner.plan.return_value = PlannerResult(
            success=True,
            blocks=[
                PlannedBlock("eye_covering", Section.WARM_UP),
                PlannedBlock("humming", Section.MAIN),
                PlannedBlock("self_havening", Section.INTEGRATION),
            ],
            reasoning="Gentle first, then sound, then touch.",
        )
        response = client.post(
            "/api/flows/generate",
            json={"polyvagal_state": "shutdown", "duration_minutes": 5, "use_ai": True, "local_hour": 22},
            headers=auth_headers,
        )
        data = response.json()
        assert data["source"] == "ai"
        assert data["reasoning"] == "Gentle first, then sound, then touch."
        assert [s["canonical_name"] for s in data["segments"] if s["type"] == "somi_block"] == [
            "eye_covering", "humming", "self_havening",
        ]

    def test_planner_failure_invisible_to_user(self, client, catalog, auth_headers, override_planner):
        override_planner.plan.side_effect = RuntimeError("upstream 529")
        response = client.post(
            "/api/flows/generate",
            json={"polyvagal_state": "steady", "duration_minutes": 5, "use_ai": True},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["source"] == "algorithmic"

    def test_local_hour_bounds(self, client, catalog, auth_headers):
        response = client.post(
            "/api/flows/generate",
            json={"polyvagal_state": "steady", "duration_minutes": 5, "local_hour": 24},
            headers=auth_headers,
        )
        assert response.status_code == 422


class TestBlocks:
    def test_lookup_by_canonical_names(self, client, catalog, auth_headers):
        response = client.get("/api/blocks?canonical_names=humming,shaking,nope", headers=auth_headers)
        assert response.status_code == 200
        names = [b["canonical_name"] for b in response.json()["blocks"]]
        assert names == ["humming", "shaking"]

    def test_lookup_returns_catalog_fields(self, client, catalog, auth_headers):
        [scan] = client.get("/api/blocks?canonical_names=body_scan", headers=auth_headers).json()["blocks"]
        assert scan["id"] == 20
        assert scan["block_type"] == "body_scan"
        assert scan["media_type"] == "audio"
        assert scan["active"] is True

    def test_catalog_read_failure_is_503(self, client, catalog, auth_headers):
        with patch("sqlalchemy.orm.Query.all", side_effect=OperationalError("SELECT", {}, Exception("db gone"))):
            response = client.get("/api/blocks?canonical_names=humming", headers=auth_headers)
        assert response.status_code == 503
        assert response.json()["error_code"] == "CATALOG_UNAVAILABLE"

    def test_canonical_names_required(self, client, catalog, auth_headers):
        assert client.get("/api/blocks", headers=auth_headers).status_code == 422
        assert client.get("/api/blocks?canonical_names=,", headers=auth_headers).status_code == 422

    def test_requires_auth(self, client, catalog):
        assert client.get("/api/blocks?canonical_names=humming").status_code == 401


class TestHealth:
    def test_ping(self, client):
        assert client.get("/ping").json() == {"pong": True}

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
