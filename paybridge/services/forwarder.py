"""
Forwarder - posts a resolved payment to the UISP CRM payments endpoint.
Every attempt is bounded by the UISP client timeout; timeouts and non-2xx
responses count as failed attempts for the retry engine.
"""
import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from paybridge.errors import IntegrationNotConfiguredError
from paybridge.integrations.uisp import UispClient
from paybridge.utils.retry import RetryObserver, RetryPolicy, retry_with_backoff
from paybridge.utils.timezone import format_uisp_datetime, parse_source_timestamp

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class OutboundPayment:
    """A payment with its UISP client resolved, ready to forward."""
    transaction_id: str
    client_id: int
    amount: Decimal
    currency_code: Optional[str] = None
    note: Optional[str] = None
    source_timestamp: Union[str, int, float, None] = None


class PaymentForwarder:
    def __init__(
        self,
        uisp: UispClient,
        policy: RetryPolicy,
        payment_method_id: str = "ccff6158-de2e-45a2-af01-b973cab5cb5f",
        provider_name: str = "Splynx",
        default_currency: str = "KES",
        utc_offset_hours: int = 3,
    ):
        self.uisp = uisp
        self.policy = policy
        self.payment_method_id = payment_method_id
        self.provider_name = provider_name
        self.default_currency = default_currency
        self.utc_offset_hours = utc_offset_hours

    def build_uisp_payment(self, payment: OutboundPayment) -> dict:
        amount = Decimal(str(payment.amount)).quantize(CENTS, rounding=ROUND_HALF_UP)
        provider_time = format_uisp_datetime(
            parse_source_timestamp(payment.source_timestamp), self.utc_offset_hours
        )
        return {
            "clientId": int(payment.client_id),
            "methodId": self.payment_method_id,
            "amount": float(amount),
            "currencyCode": (payment.currency_code or self.default_currency).upper(),
            "note": payment.note or f"Transaction: {payment.transaction_id}",
            "providerName": self.provider_name,
            "providerPaymentId": payment.transaction_id,
            "providerPaymentTime": provider_time,
            "applyToInvoicesAutomatically": True,
        }

    async def forward(
        self,
        payment: OutboundPayment,
        on_retry: Optional[RetryObserver] = None,
    ) -> dict:
        """
        POST the payment, retrying per policy. Returns the UISP response body.
        Raises the last error when the retry budget is exhausted.
        """
        if not self.uisp.configured:
            raise IntegrationNotConfiguredError("UISP", "UISP_APP_KEY/UISP_CRM_API_URL")

        body = self.build_uisp_payment(payment)
        logger.info(
            "Posting payment to UISP: client %s amount %s", body["clientId"], body["amount"],
            extra={"transaction_id": payment.transaction_id, "client_id": body["clientId"]},
        )

        response = await retry_with_backoff(
            lambda: self.uisp.post_payment(body),
            self.policy,
            on_retry=on_retry,
            description=f"UISP payment {payment.transaction_id}",
        )

        logger.info(
            "Payment %s posted to UISP (UISP payment id %s)",
            payment.transaction_id, response.get("id"),
            extra={"transaction_id": payment.transaction_id},
        )
        return response
