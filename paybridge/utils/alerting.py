"""
Operator alerting - sends alerts on payment and sync failures
and on webhooks signed with the wrong secret.

Alert channels:
1. Structured log (always) - at the alert severity, ERROR by default
2. Webhook (configurable) - Discord/Slack URL via ALERT_WEBHOOK_URL

Rate limiting: per-type in-memory cooldowns prevent alert storms when UISP
is down and every payment exhausts its retries.
"""
import logging
import time
from typing import Optional

import httpx

from paybridge.utils.logging import get_correlation_id

logger = logging.getLogger(__name__)

ALERT_COOLDOWN_SECONDS = 300  # 5 minutes

_local_cooldowns: dict[str, float] = {}  # alert_type -> expiry (monotonic)


class AlertType:
    """Alert type constants."""
    PAYMENT_FAILED = "payment_failed"
    CLIENT_SYNC_FAILED = "client_sync_failed"
    WEBHOOK_SIGNATURE_INVALID = "webhook_signature_invalid"


async def send_alert(
    alert_type: str,
    message: str,
    webhook_url: str = "",
    correlation_id: Optional[str] = None,
    severity: str = "error",
    extra: Optional[dict] = None,
) -> bool:
    """
    Send an alert through all configured channels.
    Returns False when the alert was suppressed by the cooldown.
    """
    if not _acquire_cooldown(alert_type):
        return False

    cid = correlation_id or get_correlation_id()

    log_message = f"ALERT [{alert_type}]: {message}"
    if cid:
        log_message += f" (correlation_id={cid})"

    if severity == "critical":
        logger.critical(log_message)
    elif severity == "warning":
        logger.warning(log_message)
    else:
        logger.error(log_message)

    if webhook_url:
        await _send_webhook_alert(webhook_url, alert_type, message, severity, cid, extra)
    return True


def reset_cooldowns() -> None:
    _local_cooldowns.clear()


def _acquire_cooldown(alert_type: str) -> bool:
    now = time.monotonic()
    if now < _local_cooldowns.get(alert_type, 0):
        return False
    _local_cooldowns[alert_type] = now + ALERT_COOLDOWN_SECONDS
    return True


async def _send_webhook_alert(
    webhook_url: str,
    alert_type: str,
    message: str,
    severity: str,
    correlation_id: Optional[str],
    extra: Optional[dict],
) -> None:
    """Send alert to configured webhook (Discord/Slack)."""
    try:
        severity_emoji = {"critical": "\U0001f6a8", "error": "❌", "warning": "⚠️"}.get(
            severity, "ℹ️"
        )
        content = f"{severity_emoji} **{alert_type}**\n{message}"
        if correlation_id:
            content += f"\n`correlation_id: {correlation_id}`"
        if extra:
            for key, val in extra.items():
                content += f"\n`{key}: {val}`"

        # "content" for Discord, "text" for Slack
        payload = {"content": content, "text": content}

        async with httpx.AsyncClient(timeout=5.0) as client:
            await client.post(webhook_url, json=payload)
    except Exception as e:
        # Alert sending failure should never crash the pipeline
        logger.warning("Failed to send webhook alert: %s", str(e))
