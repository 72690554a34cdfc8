"""
Ledger store - the only owner of durable state.

Every operation opens its own session and commits before returning, so a pending
payment is durable before the UISP call starts and retry bookkeeping survives a crash.

Idempotency is enforced by the unique constraint on payments.transaction_id:
the read-side check in the pipeline is an optimisation, the insert is the backstop.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paybridge.errors import DuplicateTransactionError, PaymentStateError
from paybridge.models import (
    Client,
    CustomerMapping,
    Payment,
    PaymentStatus,
    SyncLog,
    SyncStatus,
    WebhookLog,
)
from paybridge.utils.timezone import utc_now

logger = logging.getLogger(__name__)


class LedgerStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    async def get_payment(self, transaction_id: str) -> Optional[Payment]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Payment).where(Payment.transaction_id == transaction_id)
            )
            return result.scalar_one_or_none()

    async def insert_payment(
        self,
        transaction_id: str,
        client_id: int,
        amount: Decimal,
        currency_code: str,
        source_customer_id: Optional[str] = None,
        payment_type: Optional[str] = None,
        payment_method: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Payment:
        """
        Insert a payment in pending state.
        Raises DuplicateTransactionError when the transaction id already exists.
        """
        now = utc_now()
        payment = Payment(
            transaction_id=transaction_id,
            client_id=client_id,
            source_customer_id=source_customer_id,
            amount=amount,
            currency_code=currency_code,
            payment_type=payment_type,
            payment_method=payment_method,
            created_at=created_at or now,
            received_at=now,
            status=PaymentStatus.PENDING,
            retry_count=0,
        )

        async with self._session_factory() as db:
            db.add(payment)
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                if await self.get_payment(transaction_id) is not None:
                    raise DuplicateTransactionError(transaction_id)
                raise

        logger.info(
            "Payment %s stored as pending", transaction_id,
            extra={"transaction_id": transaction_id, "client_id": client_id},
        )
        return payment

    async def record_retry(self, transaction_id: str, attempt: int) -> bool:
        """Stamp retry bookkeeping. Only pending payments are touched."""
        async with self._session_factory() as db:
            result = await db.execute(
                update(Payment)
                .where(
                    Payment.transaction_id == transaction_id,
                    Payment.status == PaymentStatus.PENDING,
                )
                .values(retry_count=attempt, last_retry_at=utc_now())
            )
            await db.commit()
            return result.rowcount > 0

    async def mark_success(self, transaction_id: str, uisp_response: str) -> None:
        await self._transition(transaction_id, PaymentStatus.SUCCESS, uisp_response, None)

    async def mark_failed(self, transaction_id: str, error_message: str) -> None:
        await self._transition(transaction_id, PaymentStatus.FAILED, None, error_message)

    async def _transition(
        self,
        transaction_id: str,
        status: str,
        uisp_response: Optional[str],
        error_message: Optional[str],
    ) -> None:
        """Compare-and-set from pending; terminal payments are never rewritten."""
        async with self._session_factory() as db:
            result = await db.execute(
                update(Payment)
                .where(
                    Payment.transaction_id == transaction_id,
                    Payment.status == PaymentStatus.PENDING,
                )
                .values(status=status, uisp_response=uisp_response, error_message=error_message)
            )
            if result.rowcount == 0:
                await db.rollback()
                current = await self.get_payment(transaction_id)
                raise PaymentStateError(transaction_id, current.status if current else None)
            await db.commit()

        logger.info(
            "Payment %s -> %s", transaction_id, status,
            extra={"transaction_id": transaction_id},
        )

    # ------------------------------------------------------------------
    # Webhook audit trail
    # ------------------------------------------------------------------

    async def log_webhook(
        self,
        payload: dict,
        headers: dict,
        ip_address: Optional[str],
        validated: bool,
        payload_hash: str,
        correlation_id: Optional[str] = None,
    ) -> int:
        entry = WebhookLog(
            payload=payload,
            payload_hash=payload_hash,
            headers=headers,
            ip_address=ip_address,
            validated=validated,
            processed=False,
            correlation_id=correlation_id,
            received_at=utc_now(),
        )
        async with self._session_factory() as db:
            db.add(entry)
            await db.commit()
            return entry.id

    async def complete_webhook_log(
        self,
        log_id: int,
        processed: bool,
        error_message: Optional[str] = None,
    ) -> None:
        """Record the outcome. Intake columns stay untouched."""
        async with self._session_factory() as db:
            await db.execute(
                update(WebhookLog)
                .where(WebhookLog.id == log_id)
                .values(processed=processed, error_message=error_message)
            )
            await db.commit()

    # ------------------------------------------------------------------
    # Clients
    # ------------------------------------------------------------------

    async def get_client(self, uisp_id: int) -> Optional[Client]:
        async with self._session_factory() as db:
            result = await db.execute(select(Client).where(Client.uisp_id == uisp_id))
            return result.scalar_one_or_none()

    async def upsert_client(self, data: dict) -> Client:
        """Insert or update a client keyed by uisp_id; last_payment_at is preserved."""
        uisp_id = int(data["uisp_id"])
        values = {k: v for k, v in data.items() if hasattr(Client, k) and k not in ("id", "last_payment_at")}
        values["synced_at"] = utc_now()

        async with self._session_factory() as db:
            try:
                return await self._apply_client(db, uisp_id, values)
            except IntegrityError:
                # Lost an insert race with a concurrent sync; the row exists now.
                await db.rollback()
                return await self._apply_client(db, uisp_id, values)

    async def _apply_client(self, db: AsyncSession, uisp_id: int, values: dict) -> Client:
        result = await db.execute(select(Client).where(Client.uisp_id == uisp_id))
        client = result.scalar_one_or_none()
        if client is None:
            client = Client(**values)
            db.add(client)
        else:
            for key, value in values.items():
                setattr(client, key, value)
        await db.commit()
        return client

    async def touch_client_last_payment(self, uisp_id: int) -> bool:
        async with self._session_factory() as db:
            result = await db.execute(
                update(Client).where(Client.uisp_id == uisp_id).values(last_payment_at=utc_now())
            )
            await db.commit()
            return result.rowcount > 0

    # ------------------------------------------------------------------
    # Sync logs
    # ------------------------------------------------------------------

    async def create_sync_log(self, sync_type: str) -> int:
        log = SyncLog(sync_type=sync_type, status=SyncStatus.IN_PROGRESS, started_at=utc_now())
        async with self._session_factory() as db:
            db.add(log)
            await db.commit()
            return log.id

    async def finalize_sync_log(
        self,
        log_id: int,
        status: str,
        total: int,
        synced: int,
        failed: int,
        error_message: Optional[str] = None,
    ) -> bool:
        """Close an in-progress sync run. A finalized row is never changed again."""
        async with self._session_factory() as db:
            result = await db.execute(
                update(SyncLog)
                .where(SyncLog.id == log_id, SyncLog.status == SyncStatus.IN_PROGRESS)
                .values(
                    status=status,
                    total_records=total,
                    synced_records=synced,
                    failed_records=failed,
                    error_message=error_message,
                    completed_at=utc_now(),
                )
            )
            await db.commit()
            if result.rowcount == 0:
                logger.warning("Sync log %s was already finalized", log_id)
                return False
            return True

    async def recent_sync_logs(self, limit: int = 10) -> list[SyncLog]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(SyncLog).order_by(SyncLog.started_at.desc(), SyncLog.id.desc()).limit(limit)
            )
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Customer mappings
    # ------------------------------------------------------------------

    async def get_mapping(self, splynx_customer_id: str) -> Optional[CustomerMapping]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(CustomerMapping).where(
                    CustomerMapping.splynx_customer_id == str(splynx_customer_id)
                )
            )
            return result.scalar_one_or_none()

    async def get_mapped_client_id(self, splynx_customer_id: str) -> Optional[int]:
        mapping = await self.get_mapping(splynx_customer_id)
        return mapping.uisp_client_id if mapping else None

    async def list_mappings(self) -> list[CustomerMapping]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(CustomerMapping).order_by(CustomerMapping.created_at.desc())
            )
            return list(result.scalars().all())

    async def upsert_mapping(
        self,
        splynx_customer_id: str,
        uisp_client_id: int,
        notes: Optional[str] = None,
    ) -> CustomerMapping:
        key = str(splynx_customer_id)
        async with self._session_factory() as db:
            result = await db.execute(
                select(CustomerMapping).where(CustomerMapping.splynx_customer_id == key)
            )
            mapping = result.scalar_one_or_none()
            now = utc_now()
            if mapping is None:
                mapping = CustomerMapping(
                    splynx_customer_id=key,
                    uisp_client_id=uisp_client_id,
                    notes=notes,
                    created_at=now,
                    updated_at=now,
                )
                db.add(mapping)
            else:
                mapping.uisp_client_id = uisp_client_id
                mapping.notes = notes
                mapping.updated_at = now
            await db.commit()

        logger.info("Customer mapping saved: Splynx %s -> UISP %s", key, uisp_client_id)
        return mapping

    async def delete_mapping(self, splynx_customer_id: str) -> bool:
        async with self._session_factory() as db:
            mapping = (
                await db.execute(
                    select(CustomerMapping).where(
                        CustomerMapping.splynx_customer_id == str(splynx_customer_id)
                    )
                )
            ).scalar_one_or_none()
            if mapping is None:
                return False
            await db.delete(mapping)
            await db.commit()
            return True
