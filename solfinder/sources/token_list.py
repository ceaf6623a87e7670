from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from .. import http
from ..config import DEFAULT_TOKEN_LIST_URL
from ..matcher import matches
from ..models import UNKNOWN, Source, TokenRecord, timestamp_to_datetime
from .base import SearchContext

logger = logging.getLogger(__name__)

Fetcher = Callable[..., Awaitable[Any]]


def _extract_entries(payload: Any) -> Sequence[Mapping[str, Any]]:
    if isinstance(payload, Mapping):
        for key in ("tokens", "data", "results"):
            items = payload.get(key)
            if isinstance(items, list):
                return [item for item in items if isinstance(item, Mapping)]
        return []
    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, Mapping)]
    return []


def _entry_address(entry: Mapping[str, Any]) -> str:
    value = entry.get("address") or entry.get("mint") or entry.get("id")
    return value.strip() if isinstance(value, str) else ""


def _parse_created(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return timestamp_to_datetime(value)
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def substring_hit(query: str, entry: Mapping[str, Any]) -> bool:
    q = query.strip().lower()
    if not q:
        return False
    for key in ("symbol", "name"):
        value = entry.get(key)
        if isinstance(value, str) and q in value.lower():
            return True
    return q in _entry_address(entry).lower()


class TokenListSource:
    """Filter a third-party token list client-side.

    The list is fetched once per search without the retry wrapper: it is
    idempotent and a failed fetch simply makes this source contribute nothing.
    Up to ``enrich_limit`` hits without a creation date get one from the
    ledger (earliest recent transaction on the mint), in parallel.
    """

    name = Source.AGGREGATOR
    remote = True

    def __init__(
        self,
        url: str = DEFAULT_TOKEN_LIST_URL,
        *,
        enrich_limit: int = 10,
        timeout: float = 15.0,
        fetch: Fetcher = http.fetch_json,
    ) -> None:
        self.url = url
        self.enrich_limit = max(0, enrich_limit)
        self.timeout = timeout
        self._fetch = fetch

    async def _mint_date(self, ctx: SearchContext, address: str) -> Optional[datetime]:
        try:
            block_time = await ctx.resolver.earliest_block_time(address)
        except Exception as exc:
            logger.debug("Mint date lookup failed for %s: %s", address, exc)
            return None
        return timestamp_to_datetime(block_time)

    async def collect(self, ctx: SearchContext) -> List[TokenRecord]:
        payload = await self._fetch(self.url, timeout=self.timeout)
        entries = _extract_entries(payload)
        hits: Dict[str, Mapping[str, Any]] = {}
        for entry in entries:
            address = _entry_address(entry)
            if not address or address in hits or not substring_hit(ctx.query, entry):
                continue
            if not matches(ctx.query, entry.get("name"), entry.get("symbol"), address):
                continue
            hits[address] = entry
        logger.debug(
            "Token list matched %d of %d entries",
            len(hits),
            len(entries),
            extra={"source": self.name},
        )

        dates: Dict[str, Optional[datetime]] = {
            address: _parse_created(entry.get("created_at") or entry.get("createdAt"))
            for address, entry in hits.items()
        }
        undated = [address for address, date in dates.items() if date is None][: self.enrich_limit]
        if undated:
            found = await asyncio.gather(*(self._mint_date(ctx, address) for address in undated))
            dates.update(zip(undated, found))

        records: List[TokenRecord] = []
        for address, entry in hits.items():
            record = TokenRecord(
                address=address,
                name=entry.get("name"),
                symbol=entry.get("symbol"),
                source=Source.AGGREGATOR,
                mint_date=dates.get(address),
                freshness_window=ctx.resolver.freshness_window,
            )
            if record.name == UNKNOWN and record.symbol == UNKNOWN:
                continue
            records.append(record)
        return records


__all__ = ["TokenListSource", "substring_hit"]
