"""Free-text query matching against token name, symbol and address.

This is a recall-oriented filter, not a relevance ranking: token names on a
permissionless ledger are chosen by whoever mints them, so copycat spellings
("bonk2", "bonkinu", "solbonk") are accepted on purpose. False positives are
expected.
"""

from __future__ import annotations

import re
from typing import FrozenSet, Iterable, List, Tuple

from .models import UNKNOWN

_SPLIT = re.compile(r"[\s_-]+")
_MIN_WORD = 2
_ADDRESS_QUERY_MIN = 11

SUFFIXES: Tuple[str, ...] = ("s", "2", "3", "inu", "sol", "coin", "token")
PREFIXES: Tuple[str, ...] = ("sol",)

_SENTINEL = UNKNOWN.lower()


def _norm(value: object) -> str:
    return str(value or "").strip().lower()


def _words(value: str) -> FrozenSet[str]:
    return frozenset(word for word in _SPLIT.split(value) if word)


def query_variants(word: str) -> List[str]:
    """Spellings a copycat token might use for ``word``."""

    word = _norm(word)
    if not word:
        return []
    variants = [word + suffix for suffix in SUFFIXES]
    variants.extend(prefix + word for prefix in PREFIXES)
    if word.endswith("s") and len(word) > 3:
        variants.append(word[:-1])
    return variants


def _contains_either(a: str, b: str) -> bool:
    if not a or not b:
        return False
    return a in b or (len(b) >= _MIN_WORD and b in a)


def _word_match(query_words: Iterable[str], targets: Iterable[FrozenSet[str]]) -> bool:
    for q in query_words:
        if len(q) < _MIN_WORD:
            continue
        for words in targets:
            if any(_contains_either(q, word) for word in words):
                return True
    return False


def _variant_match(candidates: Iterable[str], fields: Tuple[str, ...]) -> bool:
    for variant in candidates:
        if any(variant in value for value in fields if value):
            return True
    return False


def matches(query: str, name: str | None, symbol: str | None, address: str | None) -> bool:
    """Return ``True`` when ``query`` plausibly refers to the token.

    Checks run cheapest first and stop at the first hit: exact equality,
    word overlap, copycat variants per word, variants of the whole query, and
    finally plain substring containment (address containment only for queries
    longer than ten characters).
    """

    q = _norm(query)
    if not q:
        return False
    n = _norm(name)
    s = _norm(symbol)
    a = _norm(address)
    # sentinel labels carry no information
    if n == _SENTINEL:
        n = ""
    if s == _SENTINEL:
        s = ""

    if q in {s, n, a}:
        return True

    query_words = _words(q)
    if _word_match(query_words, (_words(n), _words(s))):
        return True

    fields = (n, s)
    for word in query_words:
        if len(word) >= _MIN_WORD and _variant_match(query_variants(word), fields):
            return True

    compact = _SPLIT.sub("", q)
    if _variant_match(query_variants(compact), fields):
        return True

    if _contains_either(q, s) or _contains_either(q, n):
        return True
    if len(q) >= _ADDRESS_QUERY_MIN and a and q in a:
        return True
    return False


__all__ = ["PREFIXES", "SUFFIXES", "matches", "query_variants"]
