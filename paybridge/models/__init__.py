"""
Database models - import all models here so Alembic can discover them.
"""
from paybridge.models.payment import Payment, PaymentStatus
from paybridge.models.webhook_log import WebhookLog
from paybridge.models.client import Client
from paybridge.models.sync_log import SyncLog, SyncStatus
from paybridge.models.customer_mapping import CustomerMapping

__all__ = [
    "Payment",
    "PaymentStatus",
    "WebhookLog",
    "Client",
    "SyncLog",
    "SyncStatus",
    "CustomerMapping",
]
