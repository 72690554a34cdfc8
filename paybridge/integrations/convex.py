"""
Convex mirror integration - calls deployed Convex functions over the HTTP function API.
POST {convex_url}/api/mutation|query  {"path": "module:function", "args": {...}, "format": "json"}
"""
import logging
from typing import Any

import httpx

from paybridge.config import Settings
from paybridge.errors import IntegrationError, IntegrationNotConfiguredError

logger = logging.getLogger(__name__)


class ConvexClient:
    def __init__(self, url: str, deploy_key: str = "", timeout: float = 10.0):
        self.url = url.rstrip("/")
        self.deploy_key = deploy_key
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "ConvexClient":
        return cls(
            url=settings.convex_url,
            deploy_key=settings.convex_deploy_key,
            timeout=settings.convex_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self.url)

    async def _call(self, kind: str, path: str, args: dict) -> Any:
        if not self.configured:
            raise IntegrationNotConfiguredError("Convex", "CONVEX_URL")

        headers = {"Content-Type": "application/json"}
        if self.deploy_key:
            headers["Authorization"] = f"Convex {self.deploy_key}"

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                f"{self.url}/api/{kind}",
                json={"path": path, "args": args, "format": "json"},
                headers=headers,
            )
            response.raise_for_status()
            body = response.json()

        if body.get("status") != "success":
            raise IntegrationError(f"Convex {kind} {path} failed: {body.get('errorMessage', 'unknown error')}")
        return body.get("value")

    async def mutation(self, path: str, args: dict) -> Any:
        return await self._call("mutation", path, args)

    async def query(self, path: str, args: dict) -> Any:
        return await self._call("query", path, args)
