from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Protocol

from ..models import TokenRecord
from ..resolver import TokenResolver

TIME_RANGES = {
    "24h": 24 * 3600.0,
    "7d": 7 * 24 * 3600.0,
    "30d": 30 * 24 * 3600.0,
    "all": None,
}


@dataclass(frozen=True, slots=True)
class SearchContext:
    """Per-call inputs shared by every source."""

    query: str
    time_range: str
    now: float
    resolver: TokenResolver

    @property
    def cutoff(self) -> Optional[float]:
        """Oldest acceptable mint timestamp, or ``None`` for no limit."""

        span = TIME_RANGES.get(self.time_range)
        return None if span is None else self.now - span


class TokenSource(Protocol):
    name: str

    async def collect(self, ctx: SearchContext) -> List[TokenRecord]:
        ...
