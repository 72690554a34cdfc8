"""
Webhook endpoints - receive payment notifications from Splynx.

The pipeline decides the status code and body; this layer only adapts the
request and catches anything unexpected as a generic 500.
"""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from paybridge.api.deps import get_services
from paybridge.services.container import Services

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhook", tags=["webhooks"])


@router.post("/payment")
async def payment_webhook(
    request: Request,
    services: Services = Depends(get_services),
):
    """Receive a Splynx payment webhook (JSON:API, payment object, or bare payload)."""
    client_ip = request.client.host if request.client else None
    try:
        body = await request.body()
        result = await services.pipeline.handle_webhook(body, dict(request.headers), client_ip)
    except Exception as e:
        logger.error("Error processing payment webhook: %s", str(e), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "message": str(e)},
        )
    return JSONResponse(status_code=result.status_code, content=result.body)


@router.get("/payment")
async def payment_webhook_probe():
    """Browsers and uptime checks use GET; Splynx delivers with POST."""
    return {
        "success": True,
        "message": "Webhook endpoint is active and ready to receive POST requests",
        "method": "GET (for testing)",
        "note": "Actual payments should use POST method",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "correctMethod": "POST",
    }


@router.get("/test")
async def webhook_test():
    return {
        "message": "Webhook endpoint is active",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
