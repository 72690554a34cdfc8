"""
Tests for the HTTP surface: webhook endpoints and the admin API.
The app is driven in-process through httpx.ASGITransport; the lifespan is not
run, the test service graph is attached to app.state directly.
"""
import json
from unittest.mock import AsyncMock

import httpx
import pytest

from paybridge.main import create_app


@pytest.fixture
async def http(settings, services):
    app = create_app(settings)
    app.state.services = services
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://paybridge.test") as client:
        yield client


def _known_client(uisp, user_ident="W2123", client_id=1211):
    async def find(value):
        return {"id": client_id, "userIdent": user_ident} if value == user_ident else None
    uisp.find_client_by_user_ident.side_effect = find


# ---------------------------------------------------------------------------
# Webhook endpoints
# ---------------------------------------------------------------------------

class TestPaymentWebhook:
    async def test_payment_posted(self, http, uisp):
        _known_client(uisp)
        body = {"data": {"customer_id": "W2123", "attributes": {"amount": 500, "payment_type": "mpesa"}}}

        response = await http.post("/webhook/payment", json=body)

        assert response.status_code == 200
        assert response.json()["message"] == "Payment successfully posted to UISP"
        assert response.headers["X-Correlation-ID"]

    async def test_empty_body_is_ping(self, http, uisp):
        response = await http.post("/webhook/payment", content=b"")

        assert response.status_code == 200
        assert response.json()["success"] is True
        uisp.post_payment.assert_not_awaited()

    async def test_empty_object_is_ping(self, http, services):
        response = await http.post("/webhook/payment", json={})

        assert response.status_code == 200
        assert await services.ledger.get_payment("anything") is None

    async def test_pipeline_status_code_passed_through(self, http):
        response = await http.post("/webhook/payment", json={"amount": 500, "payment_type": "mpesa"})

        assert response.status_code == 400
        assert response.json()["error"] == "Missing customer identification"

    async def test_unexpected_error_is_500(self, http, services):
        services.pipeline.handle_webhook = AsyncMock(side_effect=RuntimeError("database is gone"))

        response = await http.post("/webhook/payment", content=json.dumps({"amount": 1}))

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error", "message": "database is gone"}

    async def test_correlation_id_echoed(self, http):
        response = await http.post("/webhook/payment", content=b"", headers={"X-Correlation-ID": "abc123"})
        assert response.headers["X-Correlation-ID"] == "abc123"

    async def test_oversized_correlation_id_replaced(self, http):
        response = await http.post("/webhook/payment", content=b"", headers={"X-Correlation-ID": "c" * 200})
        assert len(response.headers["X-Correlation-ID"]) == 32

    async def test_get_probe(self, http):
        response = await http.get("/webhook/payment")

        assert response.status_code == 200
        assert response.json()["correctMethod"] == "POST"

    async def test_webhook_test_endpoint(self, http):
        response = await http.get("/webhook/test")
        assert response.json()["message"] == "Webhook endpoint is active"


# ---------------------------------------------------------------------------
# Admin: mappings
# ---------------------------------------------------------------------------

class TestMappingsApi:
    async def test_crud(self, http):
        created = await http.post(
            "/api/mappings",
            json={"splynx_customer_id": " 838 ", "uisp_client_id": 1211, "notes": "Initial mapping"},
        )
        assert created.status_code == 200
        assert created.json()["data"]["splynx_customer_id"] == "838"

        fetched = await http.get("/api/mappings/838")
        assert fetched.json()["data"]["uisp_client_id"] == 1211

        listed = await http.get("/api/mappings")
        assert listed.json()["count"] == 1

        deleted = await http.delete("/api/mappings/838")
        assert deleted.json()["message"] == "Customer mapping deleted successfully"

        assert (await http.get("/api/mappings/838")).status_code == 404
        assert (await http.delete("/api/mappings/838")).status_code == 404

    async def test_rejects_invalid_client_id(self, http):
        response = await http.post("/api/mappings", json={"splynx_customer_id": "838", "uisp_client_id": 0})
        assert response.status_code == 422


class TestAdminKey:
    async def test_open_when_no_key_configured(self, http):
        assert (await http.get("/api/mappings")).status_code == 200

    async def test_required_when_configured(self, http, services):
        services.settings.admin_api_key = "s3cret"

        assert (await http.get("/api/mappings")).status_code == 401
        assert (await http.get("/api/mappings", headers={"X-Admin-Key": "wrong"})).status_code == 401
        assert (await http.get("/api/mappings", headers={"X-Admin-Key": "s3cret"})).status_code == 200

    async def test_webhook_not_behind_admin_key(self, http, services):
        services.settings.admin_api_key = "s3cret"
        assert (await http.post("/webhook/payment", content=b"")).status_code == 200


# ---------------------------------------------------------------------------
# Admin: sync
# ---------------------------------------------------------------------------

class TestSyncApi:
    async def test_blocking_sync_and_logs(self, http, uisp, uisp_record):
        uisp.list_clients.side_effect = [[uisp_record(1, "W1")]]

        response = await http.post("/api/clients/sync/wait")

        assert response.status_code == 200
        data = response.json()["data"]
        assert (data["total"], data["synced"], data["failed"]) == (1, 1, 0)

        logs = (await http.get("/api/sync/logs")).json()["data"]
        assert len(logs) == 1
        assert logs[0]["status"] == "completed"

    async def test_background_sync(self, http, services, uisp):
        response = await http.post("/api/clients/sync")

        assert response.json() == {"success": True, "message": "Client sync started in background"}
        await services.runner.drain()
        assert uisp.list_clients.await_count == 1

    async def test_blocking_sync_failure(self, http, uisp):
        uisp.list_clients.side_effect = httpx.ConnectError("refused")

        response = await http.post("/api/clients/sync/wait")

        assert response.status_code == 500

    async def test_single_client_sync(self, http):
        response = await http.post("/api/clients/1211/sync")

        assert response.status_code == 200
        assert response.json()["data"]["uisp_id"] == 1211
        assert "uisp_data" not in response.json()["data"]

    async def test_sync_logs_limit_validated(self, http):
        assert (await http.get("/api/sync/logs", params={"limit": 0})).status_code == 422

    async def test_splynx_customer_sync_requires_mirror(self, http):
        assert (await http.post("/api/splynx/customers/sync")).status_code == 503

    async def test_splynx_customer_sync(self, http, convex, splynx):
        convex.configured = True
        splynx.list_customers.return_value = [{"id": 838, "login": "jane.w"}]

        response = await http.post("/api/splynx/customers/sync")

        assert response.status_code == 200
        assert response.json()["count"] == 1
