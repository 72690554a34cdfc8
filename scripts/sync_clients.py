"""
Run a full UISP client sync from the command line.

Usage:
    python -m scripts.sync_clients                # full sync
    python -m scripts.sync_clients --client 1211  # refresh one client
    python -m scripts.sync_clients --splynx       # push Splynx customers to Convex
"""
import argparse
import asyncio
import json
import logging

from paybridge.config import get_settings
from paybridge.database import create_engine_from_settings, create_session_factory, dispose_engine
from paybridge.services.container import build_services

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


async def main():
    parser = argparse.ArgumentParser(description="Sync UISP clients into the ledger")
    parser.add_argument("--client", type=int, default=None, help="Only refresh this UISP client id")
    parser.add_argument("--splynx", action="store_true", help="Sync Splynx customers to the Convex mirror")
    args = parser.parse_args()

    settings = get_settings()
    engine = create_engine_from_settings(settings)
    services = build_services(settings, create_session_factory(engine))

    try:
        if args.splynx:
            count = await services.client_sync.sync_source_customers()
            logger.info("Submitted %d Splynx customers to Convex", count)
        elif args.client is not None:
            record = await services.client_sync.sync_single_client(args.client)
            logger.info("Client %s synced (balance %s)", args.client, record.get("account_balance"))
        else:
            result = await services.client_sync.sync_all_clients()
            logger.info("Sync finished: %s", json.dumps(result.to_dict()))
        # Mirror writes are detached; let them finish before exiting
        await services.runner.drain()
    finally:
        await dispose_engine(engine)


if __name__ == "__main__":
    asyncio.run(main())
