"""
Webhook audit trail - every inbound call is recorded before any business logic runs.
The intake columns are write-once; only the outcome columns are filled in afterwards.
"""
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB

from paybridge.database import Base

JsonType = JSON().with_variant(JSONB(), "postgresql")


class WebhookLog(Base):
    __tablename__ = "webhook_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    received_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False, index=True)
    payload = Column(JsonType, nullable=False)
    payload_hash = Column(String(64), nullable=False, index=True)
    headers = Column(JsonType, nullable=False)
    ip_address = Column(String(64), nullable=True)
    validated = Column(Boolean, nullable=False, default=False, server_default="0")
    processed = Column(Boolean, nullable=False, default=False, server_default="0")
    error_message = Column(Text, nullable=True)
    correlation_id = Column(String(64), nullable=True, index=True)
