"""
Client model - local mirror of a UISP client record.
Upserted by uisp_id during client sync; last_payment_at is stamped after every forwarded payment.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from paybridge.database import Base
from paybridge.models.webhook_log import JsonType


class Client(Base):
    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uisp_id: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    custom_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)  # UISP userIdent

    # Identity / contact
    first_name: Mapped[Optional[str]] = mapped_column(String(255))
    last_name: Mapped[Optional[str]] = mapped_column(String(255))
    company_name: Mapped[Optional[str]] = mapped_column(String(255))
    email: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(64))

    # Address
    street1: Mapped[Optional[str]] = mapped_column(String(255))
    street2: Mapped[Optional[str]] = mapped_column(String(255))
    city: Mapped[Optional[str]] = mapped_column(String(128))
    country: Mapped[Optional[str]] = mapped_column(String(64))
    state: Mapped[Optional[str]] = mapped_column(String(64))
    zip_code: Mapped[Optional[str]] = mapped_column(String(32))

    # Balances
    balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    account_balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    account_outstanding: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    currency_code: Mapped[str] = mapped_column(String(3), default="KES")

    # Flags
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    is_suspended: Mapped[bool] = mapped_column(Boolean, default=False, index=True)

    registration_date: Mapped[Optional[str]] = mapped_column(String(64))
    previous_isp: Mapped[Optional[str]] = mapped_column(String(255))
    tax_id: Mapped[Optional[str]] = mapped_column(String(64))
    company_tax_id: Mapped[Optional[str]] = mapped_column(String(64))
    note: Mapped[Optional[str]] = mapped_column(Text)

    uisp_data: Mapped[Optional[dict]] = mapped_column(JsonType, default=dict)
    synced_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True
    )
    last_payment_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
