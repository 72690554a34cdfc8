"""
Reconciliation pipeline - Splynx payment webhook to settled UISP payment.

Flow:
1. Signature check (flag, or reject when REQUIRE_VALID_SIGNATURE is on)
2. Audit row in webhook_logs, before any business logic
3. Normalize the payload shape, answer connectivity probes
4. Validate payment fields
5. Resolve Splynx customer -> UISP client
6. Idempotency check, insert pending payment (unique constraint is the backstop)
7. Forward to UISP with retries
8. pending -> success | failed, then mirror + client refresh in the background

The webhook response is returned as soon as the UISP outcome is known.
"""
import json
import logging
import time
from dataclasses import dataclass
from typing import Mapping, Optional

from paybridge.errors import (
    CustomerNotFoundError,
    DuplicateTransactionError,
    PaymentValidationError,
)
from paybridge.models import PaymentStatus
from paybridge.schemas.webhook_payloads import (
    NormalizedWebhook,
    SplynxPayment,
    normalize_payload,
    parse_payment,
)
from paybridge.services.background import BackgroundTaskRunner
from paybridge.services.client_sync import ClientSync
from paybridge.services.forwarder import OutboundPayment, PaymentForwarder
from paybridge.services.identity import IdentityResolver
from paybridge.services.ledger import LedgerStore
from paybridge.services.mirror import MirrorPropagator
from paybridge.utils.alerting import AlertType, send_alert
from paybridge.utils.logging import get_correlation_id
from paybridge.utils.timezone import parse_source_timestamp
from paybridge.utils.webhook_signatures import (
    SignatureCheck,
    check_splynx_signature,
    compute_payload_hash,
)

logger = logging.getLogger(__name__)

PING_MESSAGE = "Webhook endpoint is active and ready to receive payments"
PROBE_NOTE = "This was a test request. Real payments must include customer_id or client_id"

# Headers never copied into the audit trail
REDACTED_HEADERS = {"authorization", "cookie", "x-admin-key"}


@dataclass(frozen=True)
class PipelineResult:
    status_code: int
    body: dict

    @property
    def processed(self) -> bool:
        return self.status_code < 400

    @property
    def error(self) -> Optional[str]:
        return self.body.get("error")


def synthesize_transaction_id(client_id: int, now_ms: Optional[int] = None) -> str:
    """SPLYNX-<epoch ms>-<client id>, used when Splynx sends no transaction id."""
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"SPLYNX-{stamp}-{client_id}"


def _audit_headers(headers: Mapping[str, str]) -> dict:
    return {k: v for k, v in headers.items() if k.lower() not in REDACTED_HEADERS}


class ReconciliationPipeline:
    def __init__(
        self,
        ledger: LedgerStore,
        resolver: IdentityResolver,
        forwarder: PaymentForwarder,
        mirror: MirrorPropagator,
        client_sync: ClientSync,
        runner: BackgroundTaskRunner,
        webhook_secret: str = "",
        require_valid_signature: bool = False,
        default_currency: str = "KES",
        alert_webhook_url: str = "",
    ):
        self.ledger = ledger
        self.resolver = resolver
        self.forwarder = forwarder
        self.mirror = mirror
        self.client_sync = client_sync
        self.runner = runner
        self.webhook_secret = webhook_secret
        self.require_valid_signature = require_valid_signature
        self.default_currency = default_currency
        self.alert_webhook_url = alert_webhook_url

    async def handle_webhook(
        self,
        raw_body: bytes,
        headers: Mapping[str, str],
        ip_address: Optional[str] = None,
    ) -> PipelineResult:
        started = time.monotonic()

        body, parse_error = self._decode(raw_body)
        signature = check_splynx_signature(self.webhook_secret, headers, raw_body)
        log_id = await self._audit(raw_body, body, headers, ip_address, signature)

        logger.info(
            "Payment webhook received (validated=%s, ip=%s)", signature.validated, ip_address,
            extra={"source": "splynx"},
        )
        if signature.reason == "invalid_signature":
            # A wrong signature means a rotated secret or a forged sender; missing ones are routine
            await send_alert(
                AlertType.WEBHOOK_SIGNATURE_INVALID,
                f"Payment webhook from {ip_address or 'unknown'} failed signature validation",
                webhook_url=self.alert_webhook_url,
                severity="warning",
                extra={"rejected": self.require_valid_signature, "audit_log_id": log_id},
            )

        try:
            if parse_error is not None:
                result = PipelineResult(400, {"error": "Invalid JSON payload", "message": parse_error})
            elif self.require_valid_signature and signature.enforced and not signature.validated:
                logger.warning("Rejecting webhook: %s", signature.reason)
                result = PipelineResult(401, {"error": "Invalid webhook signature"})
            else:
                result = await self._process(body, started)
        except Exception as e:
            await self._complete_audit(log_id, False, str(e))
            raise

        await self._complete_audit(log_id, result.processed, result.error)
        return result

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    def _decode(self, raw_body: bytes) -> tuple[dict, Optional[str]]:
        if not raw_body or not raw_body.strip():
            return {}, None
        try:
            body = json.loads(raw_body)
        except ValueError as e:
            return {}, str(e)
        if not isinstance(body, dict):
            return {}, "Webhook body must be a JSON object"
        return body, None

    async def _audit(
        self,
        raw_body: bytes,
        body: dict,
        headers: Mapping[str, str],
        ip_address: Optional[str],
        signature: SignatureCheck,
    ) -> Optional[int]:
        payload = body if body else {"_raw": raw_body.decode("utf-8", errors="replace")[:10000]}
        try:
            return await self.ledger.log_webhook(
                payload=payload,
                headers=_audit_headers(headers),
                ip_address=ip_address,
                validated=signature.validated,
                payload_hash=compute_payload_hash(raw_body),
                correlation_id=get_correlation_id(),
            )
        except Exception as e:
            logger.error("Failed to write webhook audit log: %s", str(e), exc_info=True)
            return None

    async def _complete_audit(self, log_id: Optional[int], processed: bool, error: Optional[str]) -> None:
        if log_id is None:
            return
        try:
            await self.ledger.complete_webhook_log(log_id, processed, error)
        except Exception as e:
            logger.warning("Failed to complete webhook audit log %s: %s", log_id, str(e))

    # ------------------------------------------------------------------
    # Business flow
    # ------------------------------------------------------------------

    async def _process(self, body: dict, started: float) -> PipelineResult:
        webhook = normalize_payload(body)
        logger.info(
            "Splynx %s payload detected (customer %s, fields %s)",
            webhook.shape.value, webhook.source_customer_id, sorted(webhook.payment_data),
        )

        probe = self._probe_response(webhook)
        if probe is not None:
            return probe

        if webhook.source_customer_id is None:
            logger.error("No customer_id or client_id found in webhook payload")
            return PipelineResult(400, {
                "error": "Missing customer identification",
                "message": "Webhook must include customer_id or client_id",
            })

        try:
            payment = parse_payment(webhook.payment_data)
        except PaymentValidationError as e:
            logger.warning("Webhook payment rejected: %s", str(e))
            response = {"error": "Missing required fields", "missingFields": e.missing_fields}
            if e.invalid_fields:
                response["invalidFields"] = e.invalid_fields
            return PipelineResult(400, response)

        try:
            resolution = await self.resolver.resolve(webhook.source_customer_id)
        except CustomerNotFoundError as e:
            return PipelineResult(400, {
                "error": "Customer not found",
                "message": (
                    f"{str(e)}. Please ensure the customer exists in UISP with matching userIdent."
                ),
                "splynxCustomerId": e.source_customer_id,
                "customerLogin": e.customer_login,
            })

        transaction_id = payment.transaction_id or synthesize_transaction_id(resolution.client_id)

        existing = await self.ledger.get_payment(transaction_id)
        if existing is not None:
            return self._already_processed(transaction_id, existing.status)

        try:
            record = await self.ledger.insert_payment(
                transaction_id=transaction_id,
                client_id=resolution.client_id,
                amount=payment.amount,
                currency_code=(payment.currency_code or self.default_currency).upper(),
                source_customer_id=webhook.source_customer_id,
                payment_type=payment.payment_type,
                payment_method=payment.payment_method or payment.payment_type,
                created_at=parse_source_timestamp(payment.created_at),
            )
        except DuplicateTransactionError:
            # Lost the race with a concurrent delivery of the same transaction
            existing = await self.ledger.get_payment(transaction_id)
            return self._already_processed(
                transaction_id, existing.status if existing else PaymentStatus.PENDING
            )

        self.mirror.propagate_pending_payment(record)
        return await self._forward(transaction_id, resolution.client_id, payment, started)

    def _probe_response(self, webhook: NormalizedWebhook) -> Optional[PipelineResult]:
        if webhook.is_empty:
            logger.info("Webhook test/ping request received")
            return PipelineResult(200, {"success": True, "message": PING_MESSAGE})
        if webhook.looks_like_probe:
            logger.info("Webhook validation/test request received (fields: %s)", sorted(webhook.payment_data))
            body = {"success": True, "message": PING_MESSAGE}
            if webhook.source_customer_id is None:
                body["note"] = PROBE_NOTE
            return PipelineResult(200, body)
        return None

    def _already_processed(self, transaction_id: str, status: str) -> PipelineResult:
        logger.warning(
            "Payment already processed (status %s)", status,
            extra={"transaction_id": transaction_id},
        )
        return PipelineResult(200, {
            "message": "Payment already processed",
            "transactionId": transaction_id,
            "status": status,
        })

    async def _forward(
        self,
        transaction_id: str,
        client_id: int,
        payment: SplynxPayment,
        started: float,
    ) -> PipelineResult:
        outbound = OutboundPayment(
            transaction_id=transaction_id,
            client_id=client_id,
            amount=payment.amount,
            currency_code=payment.currency_code,
            note=payment.free_text_note,
            source_timestamp=payment.source_timestamp,
        )

        async def record_retry(attempt: int, error: Exception) -> None:
            await self.ledger.record_retry(transaction_id, attempt)
            logger.warning(
                "Retry attempt %d for transaction %s: %s", attempt, transaction_id, str(error),
                extra={"transaction_id": transaction_id},
            )

        try:
            response = await self.forwarder.forward(outbound, on_retry=record_retry)
        except Exception as e:
            error_message = str(e) or type(e).__name__
            await self.ledger.mark_failed(transaction_id, error_message)
            self.mirror.propagate_status(transaction_id, PaymentStatus.FAILED, error_message=error_message)
            logger.error(
                "Failed to post payment to UISP: %s", error_message,
                extra={"transaction_id": transaction_id, "client_id": client_id},
            )
            await send_alert(
                AlertType.PAYMENT_FAILED,
                f"Payment {transaction_id} for UISP client {client_id} could not be posted: {error_message}",
                webhook_url=self.alert_webhook_url,
                extra={"transaction_id": transaction_id, "amount": str(payment.amount)},
            )
            return PipelineResult(500, {
                "error": "Failed to post payment to UISP",
                "transactionId": transaction_id,
                "message": error_message,
            })

        serialized = json.dumps(response, default=str)
        await self.ledger.mark_success(transaction_id, serialized)
        self.mirror.propagate_status(transaction_id, PaymentStatus.SUCCESS, uisp_response=serialized)
        self.runner.submit(
            f"client_refresh:{client_id}", self.client_sync.refresh_after_payment(client_id)
        )

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Payment successfully processed in %dms", duration_ms,
            extra={"transaction_id": transaction_id, "client_id": client_id},
        )
        return PipelineResult(200, {
            "message": "Payment successfully posted to UISP",
            "transactionId": transaction_id,
            "uispPaymentId": response.get("id"),
            "duration": f"{duration_ms}ms",
        })
