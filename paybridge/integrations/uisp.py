"""
UISP integration (target system).
Two base URLs: the clients API (api/v1.0) and the CRM API (crm/api/v1.0) that accepts payments.
Every request carries the static X-Auth-App-Key header.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

import httpx

from paybridge.config import Settings
from paybridge.errors import IntegrationNotConfiguredError

logger = logging.getLogger(__name__)


def _decimal(value, default: str = "0") -> Decimal:
    try:
        return Decimal(str(value)) if value not in (None, "") else Decimal(default)
    except InvalidOperation:
        return Decimal(default)


def transform_client(raw: dict, default_currency: str = "KES") -> dict:
    """Map a UISP client payload onto the local clients table."""
    contacts = raw.get("contacts") or []
    contact = contacts[0] if contacts else {}
    contact_name = (contact.get("name") or "").split()

    return {
        "uisp_id": int(raw["id"]),
        "custom_id": raw.get("userIdent") or None,
        "first_name": raw.get("firstName") or (contact_name[0] if contact_name else None),
        "last_name": raw.get("lastName") or (contact_name[1] if len(contact_name) > 1 else None),
        "company_name": raw.get("companyName") or None,
        "email": contact.get("email") or raw.get("username") or None,
        "phone": contact.get("phone") or None,
        "street1": raw.get("street1") or None,
        "street2": raw.get("street2") or None,
        "city": raw.get("city") or None,
        "country": str(raw["countryId"]) if raw.get("countryId") is not None else None,
        "state": str(raw["stateId"]) if raw.get("stateId") is not None else None,
        "zip_code": raw.get("zipCode") or None,
        "balance": _decimal(raw.get("balance")),
        "account_balance": _decimal(raw.get("accountBalance")),
        "account_outstanding": _decimal(raw.get("accountOutstanding")),
        "currency_code": raw.get("currencyCode") or default_currency,
        "is_active": not raw.get("isArchived", False),
        "is_suspended": bool(raw.get("isSuspended", False)),
        "registration_date": raw.get("registrationDate") or None,
        "previous_isp": raw.get("previousIsp") or None,
        "tax_id": raw.get("taxId") or None,
        "company_tax_id": raw.get("companyTaxId") or None,
        "note": raw.get("note") or None,
        "uisp_data": raw,
    }


class UispClient:
    """UISP clients + payments API."""

    def __init__(
        self,
        api_url: str,
        crm_api_url: str,
        app_key: str,
        timeout: float = 30.0,
        sync_timeout: float = 60.0,
        directory_search_limit: int = 1000,
    ):
        self.api_url = api_url.rstrip("/")
        self.crm_api_url = crm_api_url.rstrip("/")
        self.app_key = app_key
        self.timeout = timeout
        self.sync_timeout = sync_timeout
        self.directory_search_limit = directory_search_limit

    @classmethod
    def from_settings(cls, settings: Settings) -> "UispClient":
        return cls(
            api_url=settings.uisp_api_url,
            crm_api_url=settings.uisp_crm_api_url,
            app_key=settings.uisp_app_key,
            timeout=settings.uisp_timeout_seconds,
            sync_timeout=settings.uisp_sync_timeout_seconds,
            directory_search_limit=settings.uisp_directory_search_limit,
        )

    @property
    def configured(self) -> bool:
        return bool(self.app_key and self.api_url and self.crm_api_url)

    def _headers(self) -> dict:
        if not self.app_key:
            raise IntegrationNotConfiguredError("UISP", "UISP_APP_KEY")
        return {"Content-Type": "application/json", "X-Auth-App-Key": self.app_key}

    async def _send(
        self,
        method: str,
        base_url: str,
        path: str,
        timeout: Optional[float] = None,
        **kwargs,
    ) -> httpx.Response:
        headers = self._headers()
        if not base_url:
            raise IntegrationNotConfiguredError("UISP", "UISP_API_URL/UISP_CRM_API_URL")
        async with httpx.AsyncClient(timeout=timeout or self.timeout) as client:
            response = await client.request(method, f"{base_url}{path}", headers=headers, **kwargs)
            response.raise_for_status()
            return response

    async def _request(self, method: str, base_url: str, path: str, **kwargs) -> object:
        response = await self._send(method, base_url, path, **kwargs)
        return response.json()

    async def post_payment(self, body: dict) -> dict:
        """
        POST /payments on the CRM API. Non-2xx and timeouts raise httpx errors.
        Any 2xx means UISP recorded the payment, even when the body is not JSON.
        """
        response = await self._send("POST", self.crm_api_url, "/payments", json=body)
        try:
            data = response.json()
        except ValueError:
            logger.warning(
                "UISP accepted payment with undecodable body (HTTP %s)", response.status_code
            )
            return {"response": response.text}
        return data if isinstance(data, dict) else {"response": data}

    async def get_client(self, client_id: int) -> dict:
        data = await self._request("GET", self.api_url, f"/clients/{client_id}")
        if not isinstance(data, dict):
            raise httpx.DecodingError(f"Unexpected UISP client payload for {client_id}")
        return data

    async def list_clients(self, limit: int = 100, offset: int = 0) -> list[dict]:
        logger.info("Fetching UISP clients (limit=%d, offset=%d)", limit, offset)
        data = await self._request(
            "GET", self.api_url, "/clients",
            timeout=self.sync_timeout,
            params={"limit": limit, "offset": offset},
        )
        return data if isinstance(data, list) else []

    async def find_client_by_user_ident(self, user_ident: str) -> Optional[dict]:
        """
        UISP cannot filter by userIdent server-side: fetch one bounded page of
        clients and match exactly on the client side.
        """
        logger.info("Searching UISP clients for userIdent %s", user_ident)
        clients = await self._request(
            "GET", self.api_url, "/clients",
            params={"limit": self.directory_search_limit},
        )
        for client in clients if isinstance(clients, list) else []:
            if client.get("userIdent") == user_ident:
                logger.info("Found UISP client %s for userIdent %s", client.get("id"), user_ident)
                return client

        logger.warning("No UISP client found with userIdent %s", user_ident)
        return None
