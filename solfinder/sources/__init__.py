"""Candidate producers feeding the search merge map."""

from .base import TIME_RANGES, SearchContext, TokenSource
from .known import KnownRegistrySource
from .ledger_scan import LedgerScanSource
from .token_list import TokenListSource

__all__ = [
    "KnownRegistrySource",
    "LedgerScanSource",
    "SearchContext",
    "TIME_RANGES",
    "TokenListSource",
    "TokenSource",
]
