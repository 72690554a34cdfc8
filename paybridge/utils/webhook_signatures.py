"""
Webhook signature validation - verify Splynx payment webhooks are authentic.

Splynx signs with HMAC-SHA256 over the raw body. The header name has changed
between Splynx versions, so every known name is checked in order.
"""
import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = ("x-splynx-signature", "x-webhook-signature", "x-signature")


@dataclass(frozen=True)
class SignatureCheck:
    """Outcome of validating one inbound webhook."""
    validated: bool
    reason: str  # valid, no_secret, missing_signature, invalid_signature

    @property
    def enforced(self) -> bool:
        """A secret was configured, so the outcome is meaningful."""
        return self.reason != "no_secret"


def validate_hmac_sha256(
    secret: str,
    signature: str,
    body: bytes,
    header_prefix: str = "sha256=",
) -> bool:
    """
    Validate HMAC-SHA256 webhook signature in constant time.
    Handles signatures with optional prefix (e.g., "sha256=...").
    """
    if not secret or not signature:
        return False

    sig = signature.strip()
    if sig.startswith(header_prefix):
        sig = sig[len(header_prefix):]

    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, sig.lower())


def compute_payload_hash(body: bytes) -> str:
    """Compute SHA-256 hash of raw payload for the audit trail."""
    return hashlib.sha256(body).hexdigest()


def extract_signature(headers: Mapping[str, str]) -> Optional[str]:
    """Return the first signature header present, checking names case-insensitively."""
    lowered = {k.lower(): v for k, v in headers.items()}
    for name in SIGNATURE_HEADERS:
        value = lowered.get(name)
        if value:
            return value
    return None


def check_splynx_signature(secret: str, headers: Mapping[str, str], body: bytes) -> SignatureCheck:
    """
    Validate a Splynx webhook. Never raises; the caller decides whether to reject.
    An empty secret disables validation.
    """
    if not secret:
        logger.warning("Webhook validation skipped: SPLYNX_WEBHOOK_SECRET not configured")
        return SignatureCheck(validated=False, reason="no_secret")

    signature = extract_signature(headers)
    if not signature:
        logger.warning("Webhook validation failed: no signature header found")
        return SignatureCheck(validated=False, reason="missing_signature")

    if validate_hmac_sha256(secret, signature, body):
        logger.info("Webhook signature validated")
        return SignatureCheck(validated=True, reason="valid")

    logger.error("Webhook validation failed: invalid signature")
    return SignatureCheck(validated=False, reason="invalid_signature")
