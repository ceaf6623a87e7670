"""Discover mints by walking recent token-program activity.

This is the only source that can find tokens no index knows about yet. The
most recent signatures on the token program are processed in small batches
with a pause between batches; each transaction's post-execution token
balances name the mints it touched, and every mint not seen earlier in the
scan is resolved and matched against the query.

Individual transaction or mint failures are logged and skipped. The source
only fails when the signature listing fails or every transaction fetch did.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Set

from ..logging_utils import warn_throttled
from ..matcher import matches
from ..models import Source, TokenRecord
from ..rpc import TOKEN_PROGRAM_ID, RpcGateway
from ..rpc_helpers import extract_block_time, extract_post_token_mints
from ..tx_cache import CachedTransaction, TransactionCache
from .base import SearchContext

logger = logging.getLogger(__name__)

SIGNATURE_LIMITS: Dict[str, int] = {"24h": 200, "7d": 500, "30d": 1000, "all": 1000}


class LedgerScanSource:
    name = Source.ON_CHAIN
    remote = True

    def __init__(
        self,
        gateway: RpcGateway,
        cache: TransactionCache,
        *,
        batch_size: int = 8,
        batch_delay: float = 0.3,
        deadline: float = 45.0,
        signature_limits: Mapping[str, int] | None = None,
        program_id: str = TOKEN_PROGRAM_ID,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.gateway = gateway
        self.cache = cache
        self.batch_size = max(1, batch_size)
        self.batch_delay = max(0.0, batch_delay)
        self.deadline = deadline
        self.signature_limits = dict(signature_limits or SIGNATURE_LIMITS)
        self.program_id = program_id
        self._sleep = sleep
        self._clock = clock

    async def load_transaction(self, signature: str, block_time: Optional[int] = None) -> Optional[CachedTransaction]:
        """Return the decoded transaction, from the cache when possible."""

        cached = self.cache.get(signature)
        if cached is not None:
            return cached
        tx = await self.gateway.get_transaction(signature)
        if tx is None:
            return None
        cached = CachedTransaction(
            mints=extract_post_token_mints(tx),
            block_time=extract_block_time(tx) or block_time,
        )
        self.cache.put(signature, cached)
        return cached

    async def _process(
        self,
        ctx: SearchContext,
        entry: Mapping[str, Any],
        seen: Set[str],
        found: List[TokenRecord],
    ) -> None:
        cached = await self.load_transaction(entry["signature"], entry.get("blockTime"))
        if cached is None or not cached.mints:
            return
        for mint in cached.mints:
            if mint in seen:
                continue
            # claim before awaiting so concurrent tasks in the batch skip it
            seen.add(mint)
            try:
                record = await ctx.resolver.resolve(mint, cached.block_time, source=Source.ON_CHAIN)
            except Exception as exc:
                logger.debug("Skipping mint %s: %s", mint, exc)
                continue
            if record is not None and matches(ctx.query, record.name, record.symbol, record.address):
                found.append(record)

    def _in_range(self, ctx: SearchContext, entry: Mapping[str, Any]) -> bool:
        if entry.get("err") is not None:
            return False
        cutoff = ctx.cutoff
        block_time = entry.get("blockTime")
        return cutoff is None or block_time is None or block_time >= cutoff

    async def collect(self, ctx: SearchContext) -> List[TokenRecord]:
        limit = self.signature_limits.get(ctx.time_range, self.signature_limits.get("all", 1000))
        entries = await self.gateway.get_signatures_for_address(self.program_id, limit=limit)
        pending = [entry for entry in entries if self._in_range(ctx, entry)]
        logger.debug(
            "Ledger scan over %d of %d signatures",
            len(pending),
            len(entries),
            extra={"source": self.name, "batch_size": self.batch_size},
        )

        seen: Set[str] = set()
        found: List[TokenRecord] = []
        attempted = failed = 0
        last_error: BaseException | None = None
        stop_at = self._clock() + self.deadline

        for start in range(0, len(pending), self.batch_size):
            if self._clock() >= stop_at:
                logger.warning(
                    "Ledger scan deadline reached after %d of %d signatures",
                    start,
                    len(pending),
                    extra={"source": self.name},
                )
                break
            batch = pending[start : start + self.batch_size]
            outcomes = await asyncio.gather(
                *(self._process(ctx, entry, seen, found) for entry in batch),
                return_exceptions=True,
            )
            for entry, outcome in zip(batch, outcomes):
                attempted += 1
                if isinstance(outcome, BaseException):
                    failed += 1
                    last_error = outcome
                    logger.debug("Transaction %s failed: %s", entry["signature"], outcome)
            if start + self.batch_size < len(pending) and self.batch_delay:
                await self._sleep(self.batch_delay)

        if failed:
            warn_throttled(
                logger,
                "ledger-scan-failures",
                "Ledger scan skipped %d of %d transactions",
                failed,
                attempted,
            )
        if attempted and failed == attempted and last_error is not None:
            raise last_error
        return found


__all__ = ["LedgerScanSource", "SIGNATURE_LIMITS"]
