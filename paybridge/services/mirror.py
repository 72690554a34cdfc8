"""
Mirror propagator - best-effort replication to the Convex read store.

Every write is submitted to the BackgroundTaskRunner and never awaited by the
webhook path. At-most-once: failures are logged by the runner and not retried.
With no CONVEX_URL configured every method is a no-op.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from paybridge.integrations.convex import ConvexClient
from paybridge.models import Payment
from paybridge.services.background import BackgroundTaskRunner

logger = logging.getLogger(__name__)

CLIENT_OPTIONAL_FIELDS = ("custom_id", "first_name", "last_name", "email", "phone")
CUSTOMER_OPTIONAL_FIELDS = (
    "login", "name", "email", "phone", "status",
    "billing_type", "category", "street_1", "city", "zip_code",
)


def _epoch_ms(value: Optional[datetime]) -> Optional[int]:
    if value is None:
        return None
    if value.tzinfo is None:
        # SQLite hands back naive datetimes; they are stored as UTC
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def _compact(record: dict) -> dict:
    # Convex rejects null for optional fields; they must be absent
    return {k: v for k, v in record.items() if v is not None and v != ""}


def payment_to_mirror(payment: Payment) -> dict:
    return _compact({
        "transaction_id": payment.transaction_id,
        "client_id": str(payment.client_id),
        "splynx_customer_id": payment.source_customer_id,
        "amount": float(payment.amount),
        "currency_code": payment.currency_code,
        "payment_type": payment.payment_type,
        "payment_method": payment.payment_method,
        "created_at": _epoch_ms(payment.created_at),
        "received_at": _epoch_ms(payment.received_at),
        "status": payment.status,
        "retry_count": payment.retry_count or 0,
    })


def client_to_mirror(client: dict) -> dict:
    if client.get("is_active") is False:
        status = "inactive"
    elif client.get("is_suspended"):
        status = "suspended"
    else:
        status = "active"

    record = {
        "uisp_client_id": str(client["uisp_id"]),
        "status": status,
        "account_balance": float(client.get("account_balance") or 0),
        "invoice_balance": float(client.get("account_outstanding") or 0),
    }
    record.update(_compact({k: client.get(k) for k in CLIENT_OPTIONAL_FIELDS}))
    return record


def customer_to_mirror(customer: dict) -> dict:
    record = {"splynx_id": customer["splynx_id"]}
    record.update(_compact({k: customer.get(k) for k in CUSTOMER_OPTIONAL_FIELDS}))
    return record


class MirrorPropagator:
    def __init__(self, convex: ConvexClient, runner: BackgroundTaskRunner):
        self.convex = convex
        self.runner = runner
        # transaction_id -> in-flight insert, so a status update never overtakes it
        self._inserts: dict[str, asyncio.Task] = {}

    @property
    def enabled(self) -> bool:
        return self.convex.configured

    # ------------------------------------------------------------------
    # Fire-and-forget writes
    # ------------------------------------------------------------------

    def propagate_pending_payment(self, payment: Payment) -> None:
        if not self.enabled:
            return
        tid = payment.transaction_id
        task = self.runner.submit(f"mirror:insert_payment:{tid}", self._insert_payment(payment_to_mirror(payment)))
        self._inserts[tid] = task
        task.add_done_callback(lambda _t: self._inserts.pop(tid, None))

    def propagate_status(
        self,
        transaction_id: str,
        status: str,
        uisp_response: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None:
        if not self.enabled:
            return
        self.runner.submit(
            f"mirror:update_status:{transaction_id}",
            self._update_status(transaction_id, status, uisp_response, error_message),
        )

    def propagate_clients(self, clients: list[dict]) -> None:
        if not self.enabled or not clients:
            return
        records = [client_to_mirror(c) for c in clients]
        self.runner.submit("mirror:bulk_upsert_clients", self._bulk_upsert_clients(records))

    def propagate_source_customers(self, customers: list[dict]) -> None:
        if not self.enabled or not customers:
            return
        records = [customer_to_mirror(c) for c in customers]
        self.runner.submit("mirror:bulk_upsert_splynx_customers", self._bulk_upsert_customers(records))

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get_source_customer_login(self, splynx_customer_id: str) -> Optional[str]:
        """Login from the mirror's copy of Splynx customers. Transport errors propagate."""
        if not self.enabled:
            return None
        customer = await self.convex.query(
            "splynx_customers:getSplynxCustomerById", {"splynxId": str(splynx_customer_id)}
        )
        login = customer.get("login") if isinstance(customer, dict) else None
        if login:
            logger.info("Found customer login in Convex: %s", login)
            return str(login)
        logger.warning("Splynx customer %s not found in Convex", splynx_customer_id)
        return None

    # ------------------------------------------------------------------
    # Task bodies
    # ------------------------------------------------------------------

    async def _insert_payment(self, record: dict) -> None:
        await self.convex.mutation("payments:insertPayment", record)
        logger.info(
            "Payment %s synced to Convex", record["transaction_id"],
            extra={"transaction_id": record["transaction_id"]},
        )

    async def _update_status(
        self,
        transaction_id: str,
        status: str,
        uisp_response: Optional[str],
        error_message: Optional[str],
    ) -> None:
        pending_insert = self._inserts.get(transaction_id)
        if pending_insert is not None:
            await asyncio.wait([pending_insert])

        payment = await self.convex.query(
            "payments:getPaymentByTransactionId", {"transaction_id": transaction_id}
        )
        if not payment:
            logger.warning("Payment %s not found in Convex for status update", transaction_id)
            return

        args = {"paymentId": payment["_id"], "status": status}
        if uisp_response:
            args["uisp_response"] = uisp_response
        if error_message:
            args["error_message"] = error_message

        await self.convex.mutation("payments:updatePaymentStatus", args)
        logger.info("Payment %s status updated in Convex: %s", transaction_id, status)

    async def _bulk_upsert_clients(self, records: list[dict]) -> None:
        await self.convex.mutation("clients:bulkUpsertClients", {"clients": records})
        logger.info("%d clients synced to Convex", len(records))

    async def _bulk_upsert_customers(self, records: list[dict]) -> None:
        await self.convex.mutation("splynx_customers:bulkUpsertSplynxCustomers", {"customers": records})
        logger.info("%d Splynx customers synced to Convex", len(records))
