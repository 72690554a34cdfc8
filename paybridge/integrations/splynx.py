"""
Splynx API v2 integration (source system).
Auth is a per-request nonce + HMAC-SHA256(secret, nonce + key) passed as query params.
"""
import hashlib
import hmac
import logging
import time
from typing import Optional

import httpx

from paybridge.config import Settings
from paybridge.errors import IntegrationNotConfiguredError

logger = logging.getLogger(__name__)


def generate_signature(nonce: str, api_key: str, api_secret: str) -> str:
    message = f"{nonce}{api_key}"
    return hmac.new(api_secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def transform_customer(raw: dict) -> dict:
    """Normalize a Splynx customer for the Convex mirror."""
    raw_id = raw.get("id")
    return {
        "splynx_id": str(raw_id) if raw_id is not None else "",
        "login": raw.get("login") or None,
        "name": raw.get("name") or None,
        "email": raw.get("email") or None,
        "phone": raw.get("phone") or None,
        "status": raw.get("status") or None,
        "billing_type": raw.get("billing_type") or None,
        "category": raw.get("category") or None,
        "street_1": raw.get("street_1") or None,
        "city": raw.get("city") or None,
        "zip_code": raw.get("zip_code") or None,
    }


class SplynxClient:
    """Splynx admin API: customer directory lookups and bulk listing."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        api_secret: str,
        timeout: float = 10.0,
        list_limit: int = 1000,
    ):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.api_secret = api_secret
        self.timeout = timeout
        self.list_limit = list_limit

    @classmethod
    def from_settings(cls, settings: Settings) -> "SplynxClient":
        return cls(
            api_url=settings.splynx_api_url,
            api_key=settings.splynx_api_key,
            api_secret=settings.splynx_api_secret,
            timeout=settings.splynx_timeout_seconds,
            list_limit=settings.splynx_customer_list_limit,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_url and self.api_key and self.api_secret)

    def _auth_params(self) -> dict:
        if not self.configured:
            raise IntegrationNotConfiguredError("Splynx", "SPLYNX_API_URL/KEY/SECRET")
        nonce = str(int(time.time() * 1000))
        return {
            "auth_type": "auth_key",
            "key": self.api_key,
            "signature": generate_signature(nonce, self.api_key, self.api_secret),
            "nonce": nonce,
        }

    async def _get(self, path: str, timeout: Optional[float] = None, **params) -> object:
        query = {**self._auth_params(), **params}
        async with httpx.AsyncClient(timeout=timeout or self.timeout) as client:
            response = await client.get(f"{self.api_url}/api/2.0/admin{path}", params=query)
            response.raise_for_status()
            return response.json()

    async def get_customer(self, customer_id: str) -> dict:
        logger.info("Fetching customer %s from Splynx", customer_id)
        data = await self._get(f"/customers/{customer_id}")
        if not isinstance(data, dict):
            raise httpx.DecodingError(f"Unexpected Splynx customer payload for {customer_id}")
        return data

    async def get_customer_login(self, customer_id: str) -> Optional[str]:
        """The customer's login / portal handle, used as the UISP userIdent."""
        customer = await self.get_customer(customer_id)
        login = customer.get("login")
        return str(login).strip() if login else None

    async def list_customers(self) -> list[dict]:
        logger.info("Fetching all customers from Splynx (limit=%d)", self.list_limit)
        data = await self._get("/customers", timeout=max(self.timeout, 30.0), limit=self.list_limit)
        customers = data if isinstance(data, list) else []
        logger.info("Fetched %d customers from Splynx", len(customers))
        return customers
