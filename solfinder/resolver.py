from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Optional

from .metadata import decode_metadata, derive_metadata_address
from .mints import normalize_mint_or_none
from .models import (
    DEFAULT_FRESHNESS_WINDOW,
    UNKNOWN,
    KnownToken,
    Source,
    TokenMetadata,
    TokenRecord,
    first_present,
    known_label,
    timestamp_to_datetime,
)
from .rpc import RpcGateway
from .rpc_helpers import decode_account_data, extract_block_time, parse_mint_account

logger = logging.getLogger(__name__)

MINT_DATE_SIGNATURE_LIMIT = 10


class TokenResolver:
    """Turn a mint address into a :class:`TokenRecord`."""

    def __init__(
        self,
        gateway: RpcGateway,
        *,
        freshness_window: float = DEFAULT_FRESHNESS_WINDOW,
    ) -> None:
        self.gateway = gateway
        self.freshness_window = freshness_window

    async def fetch_metadata(self, mint: str) -> Optional[TokenMetadata]:
        """Fetch and decode the mint's metadata account; failures mean ``None``."""

        try:
            address = str(derive_metadata_address(mint))
            value = await self.gateway.get_account_info(address, encoding="base64")
        except Exception as exc:
            logger.debug("Metadata lookup failed for %s: %s", mint, exc)
            return None
        if value is None:
            return None
        return decode_metadata(decode_account_data(value))

    async def resolve(
        self,
        mint: str,
        known_block_time: int | float | datetime | None = None,
        *,
        source: str = Source.ON_CHAIN,
        fallback: KnownToken | None = None,
        require_label: bool = True,
    ) -> Optional[TokenRecord]:
        """Resolve ``mint`` or return ``None`` when it is not a usable mint.

        Name and symbol come from the first source that has a real value:
        metadata account, then the mint state, then ``fallback``. With
        ``require_label`` a mint whose name and symbol both end up
        ``"Unknown"`` is rejected. Errors fetching the mint account
        propagate; metadata errors do not.
        """

        address = normalize_mint_or_none(mint)
        if address is None:
            return None
        account, metadata = await asyncio.gather(
            self.gateway.get_account_info(address),
            self.fetch_metadata(address),
        )
        state = parse_mint_account(account)
        if state is None:
            logger.debug("Account %s is not a mint", address)
            return None

        name = first_present(
            lambda: known_label(metadata.name) if metadata else None,
            lambda: known_label(state.get("name")),
            lambda: known_label(fallback.name) if fallback else None,
        ) or UNKNOWN
        symbol = first_present(
            lambda: known_label(metadata.symbol) if metadata else None,
            lambda: known_label(state.get("symbol")),
            lambda: known_label(fallback.symbol) if fallback else None,
        ) or UNKNOWN
        if require_label and name == UNKNOWN and symbol == UNKNOWN:
            logger.debug("Mint %s carries no name or symbol; skipping", address)
            return None
        if metadata is None and state.get("uri"):
            metadata = TokenMetadata(name=name, symbol=symbol, uri=str(state["uri"]))

        return TokenRecord(
            address=address,
            name=name,
            symbol=symbol,
            source=source,
            mint_date=known_block_time,
            supply=state.get("supply"),
            decimals=state.get("decimals"),
            metadata=metadata,
            freshness_window=self.freshness_window,
        )

    async def earliest_block_time(self, address: str, *, limit: int = MINT_DATE_SIGNATURE_LIMIT) -> Optional[int]:
        """Block time of the earliest of the latest ``limit`` transactions on ``address``.

        For busy, older mints this is a lower bound on recency rather than
        the true creation time.
        """

        entries = await self.gateway.get_signatures_for_address(address, limit=limit)
        if not entries:
            return None
        dated = [entry for entry in entries if entry.get("blockTime")]
        if dated:
            return min(int(entry["blockTime"]) for entry in dated)
        # no block times reported; ask for the oldest transaction directly
        tx = await self.gateway.get_transaction(entries[-1]["signature"])
        return extract_block_time(tx)

    async def details(self, address: str) -> Optional[TokenRecord]:
        """Single-token lookup with its mint date; ``None`` when not a mint."""

        if normalize_mint_or_none(address) is None:
            return None
        mint_date: Optional[datetime] = None
        try:
            block_time = await self.earliest_block_time(address)
        except Exception as exc:
            logger.warning("Could not determine mint date for %s: %s", address, exc)
        else:
            mint_date = timestamp_to_datetime(block_time)
        return await self.resolve(address, mint_date, require_label=False)


__all__ = ["MINT_DATE_SIGNATURE_LIMIT", "TokenResolver"]
