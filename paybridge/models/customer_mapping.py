"""
Splynx customer -> UISP client mapping.
Last-resort identity strategy and operator-maintained override table.
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from paybridge.database import Base


class CustomerMapping(Base):
    __tablename__ = "customer_mappings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    splynx_customer_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    uisp_client_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    def to_dict(self) -> dict:
        return {
            "splynx_customer_id": self.splynx_customer_id,
            "uisp_client_id": self.uisp_client_id,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
