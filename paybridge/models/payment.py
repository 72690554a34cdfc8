"""
Payment ledger - one row per Splynx transaction, the idempotency source of truth.
Status only ever moves pending -> success or pending -> failed.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from paybridge.database import Base


class PaymentStatus:
    """Payment status constants."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"

    TERMINAL = (SUCCESS, FAILED)


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    transaction_id: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    client_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)  # UISP client id
    source_customer_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False, default="KES")
    payment_type: Mapped[Optional[str]] = mapped_column(String(64))
    payment_method: Mapped[Optional[str]] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.PENDING, server_default=PaymentStatus.PENDING
    )
    uisp_response: Mapped[Optional[str]] = mapped_column(Text)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_retry_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_payments_status", "status"),
        Index("ix_payments_created_at", "created_at"),
    )

    def to_dict(self) -> dict:
        return {
            "transaction_id": self.transaction_id,
            "client_id": self.client_id,
            "source_customer_id": self.source_customer_id,
            "amount": float(self.amount) if self.amount is not None else None,
            "currency_code": self.currency_code,
            "payment_type": self.payment_type,
            "payment_method": self.payment_method,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "received_at": self.received_at.isoformat() if self.received_at else None,
            "status": self.status,
            "uisp_response": self.uisp_response,
            "error_message": self.error_message,
            "retry_count": self.retry_count,
            "last_retry_at": self.last_retry_at.isoformat() if self.last_retry_at else None,
        }
