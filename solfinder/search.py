"""Search orchestration: fan out to sources, merge, filter, sort, truncate.

``search_tokens`` and ``get_token_details`` are the public entry points. They
use a process-wide :class:`TokenSearch` built from the environment on first
use; embedders and tests construct their own engine instead.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Dict, List, Optional, Sequence, Tuple

from .config import Settings, get_settings
from .errors import ConfigError, SearchFailedError
from .known_tokens import KNOWN_TOKENS
from .matcher import matches
from .models import DEFAULT_FRESHNESS_WINDOW, KnownToken, Source, TokenRecord, merge_all
from .mints import looks_like_address, normalize_mint_or_none, normalize_text
from .resolver import TokenResolver
from .rpc import RpcGateway
from .sources import (
    TIME_RANGES,
    KnownRegistrySource,
    LedgerScanSource,
    SearchContext,
    TokenListSource,
    TokenSource,
)
from .tx_cache import DEFAULT_CAPACITY, TransactionCache

logger = logging.getLogger(__name__)

DEFAULT_RESULT_CAP = 50
ADDRESS_STAGE = "address"


def in_time_range(record: TokenRecord, cutoff: Optional[float]) -> bool:
    """Records without a mint date are kept whatever the range."""

    if cutoff is None or record.mint_date is None:
        return True
    return record.mint_date.timestamp() >= cutoff


def sort_key(record: TokenRecord) -> Tuple[int, int, float]:
    """Known tokens first, then newest first; undated records last."""

    known = 0 if record.source == Source.KNOWN else 1
    if record.mint_date is None:
        return (known, 1, 0.0)
    return (known, 0, -record.mint_date.timestamp())


class TokenSearch:
    """Token discovery engine.

    The transaction cache is owned by the engine and shared by every search
    it runs; the merge map is private to each call.
    """

    def __init__(
        self,
        gateway: RpcGateway,
        *,
        cache: TransactionCache | None = None,
        registry: Sequence[KnownToken] = KNOWN_TOKENS,
        sources: Sequence[TokenSource] | None = None,
        token_list: TokenListSource | None = None,
        result_cap: int = DEFAULT_RESULT_CAP,
        freshness_window: float = DEFAULT_FRESHNESS_WINDOW,
        batch_size: int = 8,
        batch_delay: float = 0.3,
        scan_deadline: float = 45.0,
    ) -> None:
        self.gateway = gateway
        self.cache = cache if cache is not None else TransactionCache(DEFAULT_CAPACITY)
        self.registry = tuple(registry)
        self.result_cap = max(1, result_cap)
        self.freshness_window = freshness_window
        if sources is None:
            sources = (
                KnownRegistrySource(self.registry),
                token_list or TokenListSource(),
                LedgerScanSource(
                    gateway,
                    self.cache,
                    batch_size=batch_size,
                    batch_delay=batch_delay,
                    deadline=scan_deadline,
                ),
            )
        self.sources: Tuple[TokenSource, ...] = tuple(sources)

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenSearch":
        return cls(
            RpcGateway.from_settings(settings),
            cache=TransactionCache(settings.tx_cache_size),
            token_list=TokenListSource(
                settings.token_list_url,
                enrich_limit=settings.token_list_enrich_limit,
            ),
            result_cap=settings.result_cap,
            freshness_window=settings.freshness_window,
            batch_size=settings.scan_batch_size,
            batch_delay=settings.scan_batch_delay,
            scan_deadline=settings.scan_deadline,
        )

    def _resolver(self, freshness_window: float | None) -> TokenResolver:
        window = self.freshness_window if freshness_window is None else freshness_window
        return TokenResolver(self.gateway, freshness_window=window)

    def _tag_known(self, record: TokenRecord) -> TokenRecord:
        if any(entry.address == record.address for entry in self.registry):
            return record.with_source(Source.KNOWN)
        return record

    async def _run_source(
        self, source: TokenSource, ctx: SearchContext
    ) -> Tuple[str, List[TokenRecord] | BaseException]:
        started = time.monotonic()
        try:
            records = await source.collect(ctx)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(
                "Token source %s failed: %s",
                source.name,
                exc,
                extra={"source": source.name, "elapsed": round(time.monotonic() - started, 3)},
            )
            return source.name, exc
        logger.debug(
            "Token source %s produced %d records",
            source.name,
            len(records),
            extra={"source": source.name, "elapsed": round(time.monotonic() - started, 3)},
        )
        return source.name, records

    async def search(
        self,
        query: str,
        *,
        time_range: str = "all",
        result_cap: int | None = None,
        freshness_window: float | None = None,
    ) -> List[TokenRecord]:
        """Return tokens matching ``query``, best first.

        An empty list means nothing matched. :class:`SearchFailedError` is
        raised only when every remote source (and the direct address lookup,
        when attempted) failed.
        """

        if time_range not in TIME_RANGES:
            raise ValueError(f"unknown time range {time_range!r}; expected one of {sorted(TIME_RANGES)}")
        q = normalize_text(query)
        if not q:
            return []
        cap = self.result_cap if result_cap is None else max(1, int(result_cap))
        resolver = self._resolver(freshness_window)
        ctx = SearchContext(query=q, time_range=time_range, now=time.time(), resolver=resolver)
        failures: Dict[str, BaseException] = {}

        address = normalize_mint_or_none(q) if looks_like_address(q) else None
        if address is not None:
            try:
                record = await resolver.details(address)
            except Exception as exc:
                logger.warning("Direct lookup of %s failed: %s", address, exc)
                failures[ADDRESS_STAGE] = exc
            else:
                if record is not None:
                    return [self._tag_known(record)]

        merged: Dict[str, TokenRecord] = {}
        outcomes = await asyncio.gather(*(self._run_source(source, ctx) for source in self.sources))
        for name, outcome in outcomes:
            if isinstance(outcome, BaseException):
                failures[name] = outcome
            else:
                merge_all(merged, outcome)

        remote = [source.name for source in self.sources if getattr(source, "remote", True)]
        if not merged and failures and all(name in failures for name in remote):
            raise SearchFailedError(failures)

        cutoff = ctx.cutoff
        results = [
            record
            for record in merged.values()
            if matches(q, record.name, record.symbol, record.address) and in_time_range(record, cutoff)
        ]
        if address is not None:
            results = [record for record in results if record.address == address]
        results.sort(key=sort_key)
        logger.info(
            "Search finished",
            extra={
                "query": q,
                "time_range": time_range,
                "results": len(results),
                "failed_sources": sorted(failures),
            },
        )
        return results[:cap]

    async def details(self, address: str) -> Optional[TokenRecord]:
        record = await self._resolver(None).details(normalize_text(address))
        return self._tag_known(record) if record is not None else None

    async def aclose(self) -> None:
        await self.gateway.close()


_DEFAULT_ENGINE: TokenSearch | None = None
_INIT_ERROR: ConfigError | None = None


def init_engine(settings: Settings | None = None) -> TokenSearch:
    """Build the process-wide engine; call once at startup.

    A missing credential raises :class:`ConfigError` here. The failure is
    remembered, so later searches re-raise it without reading the
    environment again. Passing ``settings`` explicitly retries.
    """

    global _DEFAULT_ENGINE, _INIT_ERROR
    try:
        engine = TokenSearch.from_settings(settings if settings is not None else get_settings())
    except ConfigError as exc:
        _INIT_ERROR = exc
        raise
    _DEFAULT_ENGINE, _INIT_ERROR = engine, None
    return engine


def get_engine() -> TokenSearch:
    """Return the process-wide engine.

    Without a prior :func:`init_engine` the first call performs it.
    """

    if _DEFAULT_ENGINE is not None:
        return _DEFAULT_ENGINE
    if _INIT_ERROR is not None:
        raise _INIT_ERROR
    return init_engine()


def set_engine(engine: TokenSearch | None) -> None:
    global _DEFAULT_ENGINE, _INIT_ERROR
    _DEFAULT_ENGINE, _INIT_ERROR = engine, None


async def search_tokens(
    query: str,
    *,
    time_range: str = "all",
    result_cap: int | None = None,
    freshness_window: float | None = None,
) -> List[TokenRecord]:
    return await get_engine().search(
        query,
        time_range=time_range,
        result_cap=result_cap,
        freshness_window=freshness_window,
    )


async def get_token_details(address: str) -> Optional[TokenRecord]:
    return await get_engine().details(address)


__all__ = [
    "TokenSearch",
    "get_engine",
    "get_token_details",
    "in_time_range",
    "init_engine",
    "search_tokens",
    "set_engine",
    "sort_key",
]
