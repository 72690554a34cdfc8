"""
Client sync - imports UISP clients into the ledger and the Convex mirror.

Full sync pages through /clients until a short or empty page, upserts each
record with per-record failure isolation, and finalizes one sync_logs row.
Single-client sync refreshes one customer after a successful payment.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from paybridge.integrations.splynx import SplynxClient, transform_customer
from paybridge.integrations.uisp import UispClient, transform_client
from paybridge.models import SyncStatus
from paybridge.services.ledger import LedgerStore
from paybridge.services.mirror import MirrorPropagator
from paybridge.utils.alerting import AlertType, send_alert

logger = logging.getLogger(__name__)

FULL_CLIENT_SYNC = "full_client_sync"
MAX_LOGGED_ERRORS = 50


@dataclass
class SyncResult:
    sync_log_id: int
    total: int = 0
    synced: int = 0
    failed: int = 0
    duration_ms: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        result = {
            "success": True,
            "syncLogId": self.sync_log_id,
            "total": self.total,
            "synced": self.synced,
            "failed": self.failed,
            "duration": self.duration_ms,
        }
        if self.errors:
            result["errors"] = self.errors
        return result


class ClientSync:
    def __init__(
        self,
        uisp: UispClient,
        ledger: LedgerStore,
        mirror: MirrorPropagator,
        splynx: Optional[SplynxClient] = None,
        page_size: int = 100,
        default_currency: str = "KES",
        alert_webhook_url: str = "",
    ):
        self.uisp = uisp
        self.ledger = ledger
        self.mirror = mirror
        self.splynx = splynx
        self.page_size = page_size
        self.default_currency = default_currency
        self.alert_webhook_url = alert_webhook_url

    async def fetch_all_clients(self) -> list[dict]:
        clients: list[dict] = []
        offset = 0
        while True:
            page = await self.uisp.list_clients(limit=self.page_size, offset=offset)
            if not page:
                break
            clients.extend(page)
            offset += self.page_size
            logger.info("Fetched %d clients so far...", len(clients))
            if len(page) < self.page_size:
                break
        return clients

    async def sync_all_clients(self) -> SyncResult:
        """
        Full UISP -> ledger sync. A fetch failure marks the run failed and re-raises;
        individual upsert failures are counted and the run still completes.
        """
        started = time.monotonic()
        sync_log_id = await self.ledger.create_sync_log(FULL_CLIENT_SYNC)
        result = SyncResult(sync_log_id=sync_log_id)
        logger.info("Starting full client sync from UISP (sync log %d)", sync_log_id)

        try:
            raw_clients = await self.fetch_all_clients()
        except Exception as e:
            await self.ledger.finalize_sync_log(
                sync_log_id, SyncStatus.FAILED, 0, 0, 0, error_message=str(e)
            )
            await send_alert(
                AlertType.CLIENT_SYNC_FAILED,
                f"Full client sync failed: {str(e)}",
                webhook_url=self.alert_webhook_url,
                extra={"sync_log_id": sync_log_id},
            )
            raise

        result.total = len(raw_clients)
        logger.info("Total clients fetched: %d", result.total)

        transformed: list[dict] = []
        for raw in raw_clients:
            try:
                record = transform_client(raw, self.default_currency)
                await self.ledger.upsert_client(record)
                transformed.append(record)
                result.synced += 1
                if result.synced % 10 == 0:
                    logger.info("Synced %d/%d clients", result.synced, result.total)
            except Exception as e:
                result.failed += 1
                message = f"Client {raw.get('id')}: {str(e)}"
                if len(result.errors) < MAX_LOGGED_ERRORS:
                    result.errors.append(message)
                logger.error("Failed to sync client %s: %s", raw.get("id"), str(e))

        self.mirror.propagate_clients(transformed)

        result.duration_ms = int((time.monotonic() - started) * 1000)
        await self.ledger.finalize_sync_log(
            sync_log_id,
            SyncStatus.COMPLETED,
            result.total,
            result.synced,
            result.failed,
            error_message="; ".join(result.errors) or None,
        )
        logger.info(
            "Client sync completed: total=%d synced=%d failed=%d duration=%dms",
            result.total, result.synced, result.failed, result.duration_ms,
        )
        return result

    async def sync_single_client(self, client_id: int) -> dict:
        logger.info("Syncing single client: %s", client_id, extra={"client_id": client_id})
        raw = await self.uisp.get_client(client_id)
        record = transform_client(raw, self.default_currency)
        await self.ledger.upsert_client(record)
        logger.info("Successfully synced client %s", client_id, extra={"client_id": client_id})
        return record

    async def refresh_after_payment(self, client_id: int) -> None:
        """Opportunistic refresh after a forward. last_payment_at is stamped even if the fetch fails."""
        try:
            await self.sync_single_client(client_id)
        except Exception as e:
            logger.warning(
                "Failed to sync client %s after payment: %s", client_id, str(e),
                extra={"client_id": client_id},
            )
        await self.ledger.touch_client_last_payment(client_id)

    async def sync_source_customers(self) -> int:
        """Fetch every Splynx customer and bulk upsert the batch into the mirror."""
        if self.splynx is None:
            raise ValueError("Splynx client not available for customer sync")
        customers = await self.splynx.list_customers()
        transformed = [transform_customer(c) for c in customers if c.get("id") is not None]
        self.mirror.propagate_source_customers(transformed)
        return len(transformed)
