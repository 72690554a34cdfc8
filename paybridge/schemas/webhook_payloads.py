"""
Splynx payment webhook payloads.

The same logical payment arrives in one of three shapes. Shapes are detected by
priority-ordered structural predicates and normalized into one NormalizedWebhook
before anything else looks at the body:

1. JSON:API envelope  {"data": {"customer_id": ..., "attributes": {...payment...}}}
2. Payment object     {"payment": {...payment...}}
3. Bare payload       {...payment...}
"""
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from paybridge.errors import PaymentValidationError


class PayloadShape(str, Enum):
    JSON_API = "json_api"
    PAYMENT_OBJECT = "payment_object"
    BARE = "bare"


def _is_json_api(body: dict) -> bool:
    data = body.get("data")
    return isinstance(data, dict) and isinstance(data.get("attributes"), dict)


def _is_payment_object(body: dict) -> bool:
    return isinstance(body.get("payment"), dict)


SHAPE_PREDICATES: tuple[tuple[PayloadShape, Callable[[dict], bool]], ...] = (
    (PayloadShape.JSON_API, _is_json_api),
    (PayloadShape.PAYMENT_OBJECT, _is_payment_object),
    (PayloadShape.BARE, lambda body: True),
)


@dataclass(frozen=True)
class NormalizedWebhook:
    """Canonical view of an inbound payment webhook."""
    shape: PayloadShape
    payment_data: dict
    source_customer_id: Optional[str]

    @property
    def is_empty(self) -> bool:
        return not self.payment_data

    @property
    def has_amount(self) -> bool:
        amount = self.payment_data.get("amount")
        return amount is not None and amount != ""

    @property
    def looks_like_probe(self) -> bool:
        """Connectivity test: nothing at all, or a lone field with no amount."""
        return self.is_empty or (not self.has_amount and len(self.payment_data) < 2)


def coerce_identifier(value: Any) -> Optional[str]:
    """Customer identifiers arrive as ints or strings; normalize to a stripped string."""
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text or None


def _identifier_from(payment_data: dict) -> Optional[str]:
    return coerce_identifier(payment_data.get("customer_id")) or coerce_identifier(
        payment_data.get("client_id")
    )


def detect_shape(body: dict) -> PayloadShape:
    for shape, predicate in SHAPE_PREDICATES:
        if predicate(body):
            return shape
    return PayloadShape.BARE


def normalize_payload(body: dict) -> NormalizedWebhook:
    """Pick the payment dict and Splynx customer id out of whichever shape arrived."""
    shape = detect_shape(body)

    if shape is PayloadShape.JSON_API:
        data = body["data"]
        payment_data = dict(data["attributes"])
        # customer_id lives on the data level, not inside attributes
        customer_id = coerce_identifier(data.get("customer_id")) or _identifier_from(payment_data)
    elif shape is PayloadShape.PAYMENT_OBJECT:
        payment_data = dict(body["payment"])
        customer_id = _identifier_from(payment_data)
    else:
        payment_data = dict(body)
        customer_id = _identifier_from(payment_data)

    return NormalizedWebhook(shape=shape, payment_data=payment_data, source_customer_id=customer_id)


class SplynxPayment(BaseModel):
    """Payment fields the bridge reads; everything else in the payload is ignored."""
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    amount: Decimal = Field(gt=0)
    currency_code: Optional[str] = Field(default=None, max_length=3)
    payment_type: Optional[str] = None
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    created_at: Optional[str] = None
    real_create_datetime: Optional[str] = None
    comment: Optional[str] = None
    note: Optional[str] = None

    @property
    def source_timestamp(self) -> Optional[str]:
        return self.real_create_datetime or self.created_at

    @property
    def free_text_note(self) -> Optional[str]:
        return self.comment or self.note


def parse_payment(payment_data: dict) -> SplynxPayment:
    """Validate the payment dict, reporting missing and malformed fields by name."""
    try:
        return SplynxPayment.model_validate(payment_data)
    except ValidationError as e:
        missing: list[str] = []
        invalid: list[str] = []
        for err in e.errors():
            field = ".".join(str(part) for part in err.get("loc", ())) or "payload"
            target = missing if err.get("type") == "missing" else invalid
            if field not in target:
                target.append(field)
        raise PaymentValidationError(missing, invalid) from e
