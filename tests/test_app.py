# tests for the health check, app configuration and session headers
# basic app-level tests

import pytest

from tests.conftest import session_headers


class TestHealthCheck:
    """app health and config"""

    async def test_health_check(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["service"] == "clinicdesk"

    async def test_openapi_schema(self, client):
        resp = await client.get("/openapi.json")
        assert resp.status_code == 200
        schema = resp.json()
        assert schema["info"]["title"] == "ClinicDesk API"
        assert "/attendance/{patient_id}/confirm" in schema["paths"]

    async def test_docs_available(self, client):
        resp = await client.get("/docs")
        assert resp.status_code == 200


class TestSessionHeaders:
    """employee, branch and role forwarded by the front-end"""

    async def test_missing_headers(self, client):
        resp = await client.get("/attendance")
        assert resp.status_code == 401

    @pytest.mark.parametrize("headers", [
        {"X-Employee-Id": "abc", "X-Branch-Id": "1"},
        {"X-Employee-Id": "0", "X-Branch-Id": "1"},
        {"X-Employee-Id": "7", "X-Branch-Id": "1", "X-Role": "nurse"},
    ])
    async def test_invalid_headers(self, client, headers):
        resp = await client.get("/attendance", headers=headers)
        assert resp.status_code == 401

    async def test_role_defaults_to_reception(self, client):
        resp = await client.get("/ledger", headers={"X-Employee-Id": "7", "X-Branch-Id": "1"})
        assert resp.status_code == 403

    async def test_reception_can_use_attendance(self, client):
        resp = await client.get("/attendance?date=2024-01-10", headers=session_headers())
        assert resp.status_code == 200
