"""
Domain exceptions raised across the payment pipeline.
Transport failures are httpx.HTTPError; everything here is a business outcome.
"""
from typing import Optional


class IntegrationNotConfiguredError(Exception):
    """An external platform was called without the credentials it needs."""

    def __init__(self, integration: str, missing: str):
        self.integration = integration
        self.missing = missing
        super().__init__(f"{integration} not configured: {missing} missing")


class IntegrationError(Exception):
    """The external platform answered, but reported a failure."""


class DuplicateTransactionError(Exception):
    """The ledger already holds a payment with this transaction id."""

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Payment {transaction_id} already exists")


class PaymentStateError(Exception):
    """A status transition was attempted on a payment that is not pending."""

    def __init__(self, transaction_id: str, status: Optional[str]):
        self.transaction_id = transaction_id
        self.status = status
        super().__init__(
            f"Payment {transaction_id} cannot transition from status {status or 'missing'}"
        )


class CustomerNotFoundError(Exception):
    """No identity strategy mapped the Splynx customer to a UISP client."""

    def __init__(self, source_customer_id: str, customer_login: Optional[str] = None):
        self.source_customer_id = source_customer_id
        self.customer_login = customer_login or source_customer_id
        super().__init__(
            f"Splynx customer {source_customer_id} (login: {self.customer_login}) not found in UISP"
        )


class PaymentValidationError(Exception):
    """The payment payload is missing or has malformed required fields."""

    def __init__(self, missing_fields: list[str], invalid_fields: Optional[list[str]] = None):
        self.missing_fields = missing_fields
        self.invalid_fields = invalid_fields or []
        problems = ", ".join(self.missing_fields + self.invalid_fields)
        super().__init__(f"Invalid payment payload: {problems}")
