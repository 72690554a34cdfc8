"""
Identity resolver - maps a Splynx customer id to a UISP client id.

Strategies, in order, each tried only when the previous found nothing:
1. Directory lookup: Splynx login (falling back to the Convex copy) -> UISP userIdent
2. Direct match: ids with a known prefix (e.g. W2123) are themselves the UISP userIdent
3. Mapping table: customer_mappings row in the ledger

Transport failures inside a strategy are logged and treated as "no result" so the
next strategy still runs. Ledger errors in strategy 3 propagate.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

import httpx

from paybridge.errors import (
    CustomerNotFoundError,
    IntegrationError,
    IntegrationNotConfiguredError,
)
from paybridge.integrations.splynx import SplynxClient
from paybridge.integrations.uisp import UispClient
from paybridge.services.ledger import LedgerStore
from paybridge.services.mirror import MirrorPropagator

logger = logging.getLogger(__name__)

# ValueError covers undecodable JSON bodies
STRATEGY_ERRORS = (httpx.HTTPError, IntegrationNotConfiguredError, IntegrationError, ValueError)


class ResolutionMethod:
    DIRECTORY_LOOKUP = "directory_lookup"
    DIRECT_MATCH = "direct_match"
    MAPPING_TABLE = "mapping_table"


@dataclass(frozen=True)
class Resolution:
    client_id: int
    method: str
    customer_login: Optional[str] = None


class IdentityResolver:
    def __init__(
        self,
        splynx: SplynxClient,
        uisp: UispClient,
        ledger: LedgerStore,
        mirror: Optional[MirrorPropagator] = None,
        direct_match_prefixes: Iterable[str] = ("W",),
        persist_resolved_mappings: bool = False,
    ):
        self.splynx = splynx
        self.uisp = uisp
        self.ledger = ledger
        self.mirror = mirror
        self.direct_match_prefixes = tuple(p.upper() for p in direct_match_prefixes)
        self.persist_resolved_mappings = persist_resolved_mappings

    async def resolve(self, source_customer_id: str) -> Resolution:
        """
        Resolve or raise CustomerNotFoundError carrying the raw id and any login found.
        """
        source_customer_id = str(source_customer_id)
        searched: set[str] = set()
        login: Optional[str] = None

        # Strategy 1
        try:
            login = await self._lookup_login(source_customer_id)
            if login:
                searched.add(login)
                client_id = await self._search_directory(login)
                if client_id is not None:
                    return await self._resolved(
                        source_customer_id, client_id, ResolutionMethod.DIRECTORY_LOOKUP, login
                    )
        except STRATEGY_ERRORS as e:
            logger.warning(
                "Directory lookup failed for Splynx customer %s: %s", source_customer_id, str(e),
                extra={"customer_id": source_customer_id},
            )

        # Strategy 2
        if self.is_direct_match(source_customer_id) and source_customer_id not in searched:
            try:
                client_id = await self._search_directory(source_customer_id)
                if client_id is not None:
                    return await self._resolved(
                        source_customer_id, client_id, ResolutionMethod.DIRECT_MATCH, login
                    )
            except STRATEGY_ERRORS as e:
                logger.warning(
                    "Direct userIdent match failed for %s: %s", source_customer_id, str(e),
                    extra={"customer_id": source_customer_id},
                )

        # Strategy 3
        client_id = await self.ledger.get_mapped_client_id(source_customer_id)
        if client_id is not None:
            return await self._resolved(
                source_customer_id, client_id, ResolutionMethod.MAPPING_TABLE, login
            )

        logger.error(
            "Could not map Splynx customer %s (login: %s) to a UISP client",
            source_customer_id, login or source_customer_id,
            extra={"customer_id": source_customer_id},
        )
        raise CustomerNotFoundError(source_customer_id, login)

    def is_direct_match(self, source_customer_id: str) -> bool:
        candidate = source_customer_id.upper()
        return any(candidate.startswith(prefix) for prefix in self.direct_match_prefixes)

    async def _lookup_login(self, source_customer_id: str) -> Optional[str]:
        try:
            login = await self.splynx.get_customer_login(source_customer_id)
            if login:
                return login
        except STRATEGY_ERRORS as e:
            if self.mirror is None:
                raise
            logger.warning(
                "Splynx lookup failed for %s, trying Convex: %s", source_customer_id, str(e)
            )

        if self.mirror is None:
            return None
        return await self.mirror.get_source_customer_login(source_customer_id)

    async def _search_directory(self, user_ident: str) -> Optional[int]:
        client = await self.uisp.find_client_by_user_ident(user_ident)
        if not client or client.get("id") is None:
            return None
        return int(client["id"])

    async def _resolved(
        self,
        source_customer_id: str,
        client_id: int,
        method: str,
        login: Optional[str],
    ) -> Resolution:
        logger.info(
            "Mapped Splynx customer %s -> UISP client %s via %s",
            source_customer_id, client_id, method,
            extra={"customer_id": source_customer_id, "client_id": client_id},
        )
        if self.persist_resolved_mappings and method != ResolutionMethod.MAPPING_TABLE:
            try:
                await self.ledger.upsert_mapping(
                    source_customer_id, client_id, notes=f"Resolved via {method}"
                )
            except Exception as e:
                logger.warning(
                    "Failed to persist mapping %s -> %s: %s", source_customer_id, client_id, str(e)
                )
        return Resolution(client_id=client_id, method=method, customer_login=login)
