from __future__ import annotations

import re
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional

UNKNOWN = "Unknown"
DEFAULT_FRESHNESS_WINDOW = 24 * 60 * 60.0

_DISALLOWED = re.compile(r"[^A-Za-z0-9 _-]")
_MIN_LABEL_LENGTH = 2


class Source:
    """Provenance tags; higher priority wins when sources disagree."""

    KNOWN = "known"
    AGGREGATOR = "aggregator"
    ON_CHAIN = "on-chain"

    PRIORITY: Dict[str, int] = {KNOWN: 3, AGGREGATOR: 2, "jupiter": 2, ON_CHAIN: 1}

    @classmethod
    def priority(cls, source: str) -> int:
        return cls.PRIORITY.get(source, 0)


def sanitize_label(value: Any) -> str:
    """Reduce ``value`` to printable ASCII in ``[A-Za-z0-9 _-]``.

    Returns :data:`UNKNOWN` for missing values or anything shorter than two
    characters after cleaning.
    """

    if value is None:
        return UNKNOWN
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    text = str(value).replace("\x00", "")
    text = "".join(ch for ch in text if 32 <= ord(ch) < 127)
    text = _DISALLOWED.sub("", text).strip()
    if len(text) < _MIN_LABEL_LENGTH:
        return UNKNOWN
    return text


def first_present(*steps: Callable[[], Optional[str]]) -> Optional[str]:
    """Evaluate ``steps`` in order and return the first non-``None`` result."""

    for step in steps:
        value = step()
        if value is not None:
            return value
    return None


def known_label(value: Any) -> Optional[str]:
    """Sanitised ``value`` or ``None`` when it collapses to the sentinel."""

    label = sanitize_label(value)
    return None if label == UNKNOWN else label


@dataclass(frozen=True, slots=True)
class TokenMetadata:
    name: str
    symbol: str
    uri: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "symbol": self.symbol, "uri": self.uri}


@dataclass(frozen=True, slots=True)
class KnownToken:
    address: str
    symbol: str
    name: str


def timestamp_to_datetime(value: float | int | None) -> Optional[datetime]:
    """UTC datetime for a unix timestamp in seconds or milliseconds.

    Returns ``None`` for missing, non-positive or unrepresentable values.
    """

    if value is None:
        return None
    try:
        ts = float(value)
        if ts <= 0:
            return None
        if ts > 1e12:  # milliseconds
            ts /= 1000.0
        return datetime.fromtimestamp(ts, tz=timezone.utc)
    except (OverflowError, OSError, ValueError, TypeError):
        return None


def _to_datetime(value: datetime | float | int | None) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return timestamp_to_datetime(value)


@dataclass(frozen=True, slots=True)
class TokenRecord:
    """A discovered token as returned to callers.

    ``is_new_token`` is derived from ``mint_date`` and ``freshness_window``
    each time it is read; use :meth:`with_window` to look at the same record
    under another window.
    """

    address: str
    name: str = UNKNOWN
    symbol: str = UNKNOWN
    source: str = Source.ON_CHAIN
    mint_date: Optional[datetime] = None
    supply: Optional[str] = None
    decimals: Optional[int] = None
    metadata: Optional[TokenMetadata] = None
    freshness_window: float = field(default=DEFAULT_FRESHNESS_WINDOW, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", sanitize_label(self.name))
        object.__setattr__(self, "symbol", sanitize_label(self.symbol))
        object.__setattr__(self, "mint_date", _to_datetime(self.mint_date))

    @property
    def is_new_token(self) -> bool:
        return self.is_new()

    def is_new(self, window: float | None = None, now: float | None = None) -> bool:
        if self.mint_date is None:
            return False
        window = self.freshness_window if window is None else window
        now = time.time() if now is None else now
        return now - self.mint_date.timestamp() <= window

    def age_seconds(self, now: float | None = None) -> Optional[float]:
        if self.mint_date is None:
            return None
        now = time.time() if now is None else now
        return now - self.mint_date.timestamp()

    def with_window(self, window: float) -> "TokenRecord":
        return replace(self, freshness_window=float(window))

    def with_source(self, source: str) -> "TokenRecord":
        return replace(self, source=source)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "name": self.name,
            "symbol": self.symbol,
            "source": self.source,
            "mintDate": self.mint_date.isoformat() if self.mint_date else None,
            "isNewToken": self.is_new_token,
            "supply": self.supply,
            "metadata": self.metadata.to_dict() if self.metadata else None,
        }


def merge_record(results: Dict[str, TokenRecord], record: TokenRecord) -> bool:
    """Keyed upsert preferring the higher-priority source.

    Equal priority keeps the record that arrived first. Returns ``True`` when
    ``record`` was stored.
    """

    current = results.get(record.address)
    if current is not None and Source.priority(current.source) >= Source.priority(record.source):
        return False
    results[record.address] = record
    return True


def merge_all(results: Dict[str, TokenRecord], records: Iterable[TokenRecord]) -> int:
    return sum(1 for record in records if merge_record(results, record))


__all__ = [
    "DEFAULT_FRESHNESS_WINDOW",
    "KnownToken",
    "Source",
    "TokenMetadata",
    "TokenRecord",
    "UNKNOWN",
    "first_present",
    "known_label",
    "merge_all",
    "merge_record",
    "sanitize_label",
    "timestamp_to_datetime",
]
