"""
FastAPI dependencies. Services are built once in the lifespan and live on app.state.
"""
import hmac
from typing import Optional

from fastapi import Header, HTTPException, Request

from paybridge.services.container import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


async def require_admin_key(
    request: Request,
    x_admin_key: Optional[str] = Header(default=None),
) -> None:
    """Enforced only when ADMIN_API_KEY is configured."""
    expected = request.app.state.services.settings.admin_api_key
    if not expected:
        return
    if not x_admin_key or not hmac.compare_digest(x_admin_key, expected):
        raise HTTPException(status_code=401, detail="Invalid admin key")
