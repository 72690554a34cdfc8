"""
Simulate a Splynx payment webhook against a running bridge.

Usage:
    python scripts/simulate_payment.py
    python scripts/simulate_payment.py --customer W2123 --amount 500
    python scripts/simulate_payment.py --shape payment --secret "$SPLYNX_WEBHOOK_SECRET"
    python scripts/simulate_payment.py --ping
"""
import argparse
import asyncio
import hashlib
import hmac
import json
import logging
import time

import httpx

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

BASE_URL = "http://localhost:8000"


def build_payload(shape: str, customer: str, amount: float, transaction_id: str | None) -> dict:
    payment = {
        "amount": amount,
        "currency_code": "KES",
        "payment_type": "mpesa",
        "comment": "Simulated payment",
        "real_create_datetime": time.strftime("%Y-%m-%d %H:%M:%S", time.gmtime()),
    }
    if transaction_id:
        payment["transaction_id"] = transaction_id

    if shape == "json_api":
        return {"data": {"customer_id": customer, "attributes": payment}}
    if shape == "payment":
        return {"payment": {**payment, "customer_id": customer}}
    return {**payment, "customer_id": customer}


async def send(body: bytes, secret: str, base_url: str) -> httpx.Response:
    headers = {"Content-Type": "application/json"}
    if secret:
        signature = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
        headers["X-Splynx-Signature"] = signature

    async with httpx.AsyncClient(timeout=120) as client:
        resp = await client.post(f"{base_url}/webhook/payment", content=body, headers=headers)
        logger.info("Webhook response: %s %s", resp.status_code, resp.text)
        return resp


async def main():
    parser = argparse.ArgumentParser(description="Simulate a Splynx payment webhook")
    parser.add_argument("--customer", default="W2123")
    parser.add_argument("--amount", type=float, default=500.0)
    parser.add_argument("--transaction-id", default=None)
    parser.add_argument("--shape", default="json_api", choices=["json_api", "payment", "bare"])
    parser.add_argument("--secret", default="", help="Sign the body with this webhook secret")
    parser.add_argument("--ping", action="store_true", help="Send an empty connectivity probe")
    parser.add_argument("--base-url", default=BASE_URL)
    args = parser.parse_args()

    if args.ping:
        body = b"{}"
    else:
        payload = build_payload(args.shape, args.customer, args.amount, args.transaction_id)
        body = json.dumps(payload).encode("utf-8")

    logger.info("Sending %s webhook for customer %s...", "ping" if args.ping else args.shape, args.customer)
    await send(body, args.secret, args.base_url)


if __name__ == "__main__":
    asyncio.run(main())
