"""
Tests for the Splynx, UISP and Convex HTTP clients.
All external HTTP calls are mocked via httpx.AsyncClient.
"""
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from paybridge.errors import IntegrationError, IntegrationNotConfiguredError
from paybridge.integrations.convex import ConvexClient
from paybridge.integrations.splynx import SplynxClient, generate_signature, transform_customer
from paybridge.integrations.uisp import UispClient, transform_client


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_mock_response(json_data) -> MagicMock:
    """Build a mock httpx.Response that returns *json_data*."""
    response = MagicMock()
    response.json.return_value = json_data
    response.raise_for_status = MagicMock()
    return response


def _make_mock_response_error(exc: Exception) -> MagicMock:
    response = MagicMock()
    response.raise_for_status.side_effect = exc
    return response


def _build_mock_client(
    post_response: MagicMock | None = None,
    get_response: MagicMock | None = None,
    request_response: MagicMock | None = None,
    request_side_effect: Exception | None = None,
) -> AsyncMock:
    """Return a fully-wired mock httpx.AsyncClient usable as an async ctx mgr."""
    mock_client = AsyncMock()
    mock_client.post = AsyncMock(return_value=post_response or _make_mock_response({}))
    mock_client.get = AsyncMock(return_value=get_response or _make_mock_response({}))
    if request_side_effect:
        mock_client.request = AsyncMock(side_effect=request_side_effect)
    else:
        mock_client.request = AsyncMock(return_value=request_response or _make_mock_response({}))
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    return mock_client


# ===================================================================
# Splynx
# ===================================================================

class TestSplynxClient:
    def _make_client(self, **overrides):
        values = {"api_url": "https://splynx.test/", "api_key": "key", "api_secret": "secret"}
        values.update(overrides)
        return SplynxClient(**values)

    def test_signature_is_hmac_of_nonce_and_key(self):
        # HMAC-SHA256("secret", "1700000000000key")
        assert generate_signature("1700000000000", "key", "secret") == (
            "437fa385bfe4ec013b81215b71f904dd22d5d13062b11eb7a8c8be0acdcab428"
        )
        assert generate_signature("1", "key", "secret") != generate_signature("2", "key", "secret")

    async def test_get_customer_login_sends_auth_params(self):
        mock_client = _build_mock_client(get_response=_make_mock_response({"id": 838, "login": " jane.w "}))
        client = self._make_client()

        with patch("httpx.AsyncClient", return_value=mock_client), \
                patch("paybridge.integrations.splynx.time.time", return_value=1700000000.0):
            login = await client.get_customer_login("838")

        assert login == "jane.w"
        url = mock_client.get.call_args.args[0]
        params = mock_client.get.call_args.kwargs["params"]
        assert url == "https://splynx.test/api/2.0/admin/customers/838"
        assert params["auth_type"] == "auth_key"
        assert params["key"] == "key"
        assert params["nonce"] == "1700000000000"
        assert params["signature"] == generate_signature("1700000000000", "key", "secret")

    async def test_customer_without_login(self):
        mock_client = _build_mock_client(get_response=_make_mock_response({"id": 838, "login": ""}))

        with patch("httpx.AsyncClient", return_value=mock_client):
            assert await self._make_client().get_customer_login("838") is None

    async def test_http_error_propagates(self):
        error = httpx.HTTPStatusError("404", request=MagicMock(), response=MagicMock())
        mock_client = _build_mock_client(get_response=_make_mock_response_error(error))

        with patch("httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(httpx.HTTPStatusError):
                await self._make_client().get_customer("838")

    async def test_list_customers_passes_limit(self):
        mock_client = _build_mock_client(get_response=_make_mock_response([{"id": 1}, {"id": 2}]))
        client = self._make_client(list_limit=250)

        with patch("httpx.AsyncClient", return_value=mock_client):
            customers = await client.list_customers()

        assert len(customers) == 2
        assert mock_client.get.call_args.kwargs["params"]["limit"] == 250

    async def test_unconfigured_raises(self):
        with pytest.raises(IntegrationNotConfiguredError):
            await self._make_client(api_secret="").get_customer("838")

    def test_transform_customer(self):
        record = transform_customer({"id": 838, "login": "jane.w", "name": "Jane", "email": ""})
        assert record["splynx_id"] == "838"
        assert record["login"] == "jane.w"
        assert record["email"] is None


# ===================================================================
# UISP
# ===================================================================

class TestUispClient:
    def _make_client(self, app_key="app-key"):
        return UispClient(
            api_url="https://uisp.test/api/v1.0/",
            crm_api_url="https://uisp.test/crm/api/v1.0",
            app_key=app_key,
            directory_search_limit=500,
        )

    async def test_post_payment(self):
        mock_client = _build_mock_client(request_response=_make_mock_response({"id": 9001}))

        with patch("httpx.AsyncClient", return_value=mock_client):
            response = await self._make_client().post_payment({"clientId": 1211, "amount": 500.0})

        assert response == {"id": 9001}
        args = mock_client.request.call_args
        assert args.args == ("POST", "https://uisp.test/crm/api/v1.0/payments")
        assert args.kwargs["headers"]["X-Auth-App-Key"] == "app-key"
        assert args.kwargs["json"] == {"clientId": 1211, "amount": 500.0}

    async def test_post_payment_timeout_propagates(self):
        mock_client = _build_mock_client(request_side_effect=httpx.ReadTimeout("slow"))

        with patch("httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(httpx.ReadTimeout):
                await self._make_client().post_payment({})

    async def test_post_payment_created_with_empty_body(self):
        response = _make_mock_response(None)
        response.status_code = 201
        response.text = ""
        response.json.side_effect = ValueError("Expecting value")
        mock_client = _build_mock_client(request_response=response)

        with patch("httpx.AsyncClient", return_value=mock_client):
            result = await self._make_client().post_payment({"clientId": 1211})

        assert result == {"response": ""}
        mock_client.request.assert_awaited_once()

    async def test_find_client_by_user_ident_exact_match(self, uisp_record):
        clients = [uisp_record(1, "W21"), uisp_record(1211, "W2123"), uisp_record(7, "W21234")]
        mock_client = _build_mock_client(request_response=_make_mock_response(clients))

        with patch("httpx.AsyncClient", return_value=mock_client):
            found = await self._make_client().find_client_by_user_ident("W2123")

        assert found["id"] == 1211
        args = mock_client.request.call_args
        assert args.args == ("GET", "https://uisp.test/api/v1.0/clients")
        assert args.kwargs["params"] == {"limit": 500}

    async def test_find_client_no_match(self, uisp_record):
        mock_client = _build_mock_client(request_response=_make_mock_response([uisp_record()]))

        with patch("httpx.AsyncClient", return_value=mock_client):
            assert await self._make_client().find_client_by_user_ident("W9999") is None

    async def test_list_clients_paging_params(self):
        mock_client = _build_mock_client(request_response=_make_mock_response([]))

        with patch("httpx.AsyncClient", return_value=mock_client):
            await self._make_client().list_clients(limit=100, offset=200)

        assert mock_client.request.call_args.kwargs["params"] == {"limit": 100, "offset": 200}

    async def test_missing_app_key(self):
        with pytest.raises(IntegrationNotConfiguredError):
            await self._make_client(app_key="").post_payment({})

    def test_transform_client(self, uisp_record):
        record = transform_client(uisp_record(isSuspended=True, accountBalance="12.50"))

        assert record["uisp_id"] == 1211
        assert record["custom_id"] == "W2123"
        assert record["email"] == "jane@example.com"
        assert record["phone"] == "+254700000001"
        assert record["account_balance"] == Decimal("12.50")
        assert record["account_outstanding"] == Decimal("500.0")
        assert record["is_active"] is True
        assert record["is_suspended"] is True
        assert record["country"] == "110"

    def test_transform_client_names_from_contact(self, uisp_record):
        record = transform_client(uisp_record(firstName=None, lastName=None, currencyCode=None))
        assert (record["first_name"], record["last_name"]) == ("Jane", "Wanjiru")
        assert record["currency_code"] == "KES"


# ===================================================================
# Convex
# ===================================================================

class TestConvexClient:
    async def test_mutation_payload_and_auth(self):
        mock_client = _build_mock_client(
            post_response=_make_mock_response({"status": "success", "value": "id123"})
        )
        client = ConvexClient("https://mirror.convex.cloud/", deploy_key="dk")

        with patch("httpx.AsyncClient", return_value=mock_client):
            value = await client.mutation("payments:insertPayment", {"transaction_id": "T1"})

        assert value == "id123"
        args = mock_client.post.call_args
        assert args.args[0] == "https://mirror.convex.cloud/api/mutation"
        assert args.kwargs["json"] == {
            "path": "payments:insertPayment",
            "args": {"transaction_id": "T1"},
            "format": "json",
        }
        assert args.kwargs["headers"]["Authorization"] == "Convex dk"

    async def test_query_without_deploy_key(self):
        mock_client = _build_mock_client(
            post_response=_make_mock_response({"status": "success", "value": None})
        )

        with patch("httpx.AsyncClient", return_value=mock_client):
            assert await ConvexClient("https://mirror.convex.cloud").query("a:b", {}) is None

        assert "Authorization" not in mock_client.post.call_args.kwargs["headers"]

    async def test_function_error_raises(self):
        mock_client = _build_mock_client(
            post_response=_make_mock_response({"status": "error", "errorMessage": "validator failed"})
        )

        with patch("httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(IntegrationError, match="validator failed"):
                await ConvexClient("https://mirror.convex.cloud").mutation("a:b", {})

    async def test_unconfigured(self):
        client = ConvexClient("")
        assert client.configured is False
        with pytest.raises(IntegrationNotConfiguredError):
            await client.query("a:b", {})
