from __future__ import annotations

import asyncio
import logging
from typing import List, Sequence

from ..known_tokens import KNOWN_TOKENS
from ..matcher import matches
from ..models import KnownToken, Source, TokenRecord
from .base import SearchContext

logger = logging.getLogger(__name__)


class KnownRegistrySource:
    """Match the query against the static registry and resolve the hits.

    Registry entries keep their registry name when the ledger cannot be
    reached, so this source never fails a search on its own.
    """

    name = "known"
    remote = False

    def __init__(self, registry: Sequence[KnownToken] = KNOWN_TOKENS) -> None:
        self.registry = tuple(registry)

    def candidates(self, query: str) -> List[KnownToken]:
        return [entry for entry in self.registry if matches(query, entry.name, entry.symbol, entry.address)]

    async def _resolve(self, ctx: SearchContext, entry: KnownToken) -> TokenRecord | None:
        try:
            record = await ctx.resolver.resolve(entry.address, source=Source.KNOWN, fallback=entry)
        except Exception as exc:
            logger.warning(
                "Known token %s could not be resolved on-chain: %s",
                entry.symbol,
                exc,
                extra={"source": self.name, "mint": entry.address},
            )
            record = None
        if record is None:
            record = TokenRecord(
                address=entry.address,
                name=entry.name,
                symbol=entry.symbol,
                source=Source.KNOWN,
                freshness_window=ctx.resolver.freshness_window,
            )
        return record

    async def collect(self, ctx: SearchContext) -> List[TokenRecord]:
        hits = self.candidates(ctx.query)
        if not hits:
            return []
        records = await asyncio.gather(*(self._resolve(ctx, entry) for entry in hits))
        return [record for record in records if record is not None]


__all__ = ["KnownRegistrySource"]
