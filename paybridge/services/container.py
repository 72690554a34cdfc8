"""
Builds the service graph once from Settings. Shared by the app lifespan and the CLI scripts.
"""
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paybridge.config import Settings
from paybridge.integrations.convex import ConvexClient
from paybridge.integrations.splynx import SplynxClient
from paybridge.integrations.uisp import UispClient
from paybridge.services.background import BackgroundTaskRunner
from paybridge.services.client_sync import ClientSync
from paybridge.services.forwarder import PaymentForwarder
from paybridge.services.identity import IdentityResolver
from paybridge.services.ledger import LedgerStore
from paybridge.services.mirror import MirrorPropagator
from paybridge.services.reconciliation import ReconciliationPipeline
from paybridge.utils.retry import RetryPolicy


@dataclass
class Services:
    settings: Settings
    runner: BackgroundTaskRunner
    ledger: LedgerStore
    splynx: SplynxClient
    uisp: UispClient
    convex: ConvexClient
    mirror: MirrorPropagator
    resolver: IdentityResolver
    forwarder: PaymentForwarder
    client_sync: ClientSync
    pipeline: ReconciliationPipeline


def build_services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    retry_policy: RetryPolicy | None = None,
) -> Services:
    runner = BackgroundTaskRunner()
    ledger = LedgerStore(session_factory)
    splynx = SplynxClient.from_settings(settings)
    uisp = UispClient.from_settings(settings)
    convex = ConvexClient.from_settings(settings)
    mirror = MirrorPropagator(convex, runner)

    resolver = IdentityResolver(
        splynx=splynx,
        uisp=uisp,
        ledger=ledger,
        mirror=mirror,
        direct_match_prefixes=settings.direct_match_prefix_list,
        persist_resolved_mappings=settings.persist_resolved_mappings,
    )
    forwarder = PaymentForwarder(
        uisp=uisp,
        policy=retry_policy or RetryPolicy.from_settings(settings),
        payment_method_id=settings.uisp_default_payment_method_id,
        provider_name=settings.uisp_provider_name,
        default_currency=settings.default_currency,
        utc_offset_hours=settings.uisp_utc_offset_hours,
    )
    client_sync = ClientSync(
        uisp=uisp,
        ledger=ledger,
        mirror=mirror,
        splynx=splynx,
        page_size=settings.uisp_sync_page_size,
        default_currency=settings.default_currency,
        alert_webhook_url=settings.alert_webhook_url,
    )
    pipeline = ReconciliationPipeline(
        ledger=ledger,
        resolver=resolver,
        forwarder=forwarder,
        mirror=mirror,
        client_sync=client_sync,
        runner=runner,
        webhook_secret=settings.splynx_webhook_secret,
        require_valid_signature=settings.require_valid_signature,
        default_currency=settings.default_currency,
        alert_webhook_url=settings.alert_webhook_url,
    )

    return Services(
        settings=settings,
        runner=runner,
        ledger=ledger,
        splynx=splynx,
        uisp=uisp,
        convex=convex,
        mirror=mirror,
        resolver=resolver,
        forwarder=forwarder,
        client_sync=client_sync,
        pipeline=pipeline,
    )
