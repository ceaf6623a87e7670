"""Normalisers for raw JSON-RPC payloads.

Nodes and proxies disagree on small details (camelCase vs snake_case keys,
numbers rendered as strings, ``value`` wrappers). These helpers coerce the
shapes this package reads into plain dictionaries and tuples.
"""

from __future__ import annotations

import base64
from typing import Any, Dict, Iterable, List, Optional, Tuple


def _extract_path(obj: Any, path: Iterable[str]) -> Any:
    cur = obj
    for key in path:
        if isinstance(cur, dict):
            cur = cur.get(key)
        else:
            return None
    return cur


def _as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text, 0)
        except ValueError:
            try:
                return int(float(text))
            except ValueError:
                return None
    return None


def extract_value_list(resp: Any) -> List[Dict[str, Any]]:
    """Return the list of dictionaries carried by ``resp``."""

    candidates: Any = []
    if isinstance(resp, list):
        candidates = resp
    elif isinstance(resp, dict):
        for path in (("result", "value"), ("result",), ("value",)):
            extracted = _extract_path(resp, path)
            if isinstance(extracted, list):
                candidates = extracted
                break
    return [item for item in candidates or [] if isinstance(item, dict)]


def extract_signature_entries(resp: Any) -> List[Dict[str, Any]]:
    """Normalise ``getSignaturesForAddress`` responses into dict entries."""

    normalised: List[Dict[str, Any]] = []
    for raw in extract_value_list(resp):
        signature = raw.get("signature")
        if not isinstance(signature, str) or not signature:
            continue
        entry: Dict[str, Any] = {"signature": signature}
        if "slot" in raw:
            entry["slot"] = _as_int(raw.get("slot"))
        if raw.get("err") is not None:
            entry["err"] = raw.get("err")
        if "blockTime" in raw:
            entry["blockTime"] = _as_int(raw.get("blockTime"))
        elif "block_time" in raw:
            entry["blockTime"] = _as_int(raw.get("block_time"))
        normalised.append(entry)
    return normalised


def extract_post_token_mints(tx: Any) -> Tuple[str, ...]:
    """Distinct mints referenced by a transaction's post token balances, in order."""

    balances = _extract_path(tx, ("meta", "postTokenBalances"))
    if not isinstance(balances, list):
        return ()
    seen: Dict[str, None] = {}
    for balance in balances:
        if not isinstance(balance, dict):
            continue
        mint = balance.get("mint")
        if isinstance(mint, str) and mint:
            seen.setdefault(mint, None)
    return tuple(seen)


def extract_block_time(tx: Any) -> Optional[int]:
    if not isinstance(tx, dict):
        return None
    return _as_int(tx.get("blockTime"))


def parse_mint_account(value: Any) -> Optional[Dict[str, Any]]:
    """Return mint state from a ``jsonParsed`` account, or ``None`` if it isn't a mint.

    The result holds ``decimals``, ``supply`` (raw integer string) and the
    ``name``/``symbol`` found in the mint itself, either as direct fields or
    in a token-metadata extension.
    """

    parsed = _extract_path(value, ("data", "parsed"))
    if not isinstance(parsed, dict) or parsed.get("type") != "mint":
        return None
    info = parsed.get("info")
    if not isinstance(info, dict):
        return None
    state: Dict[str, Any] = {
        "decimals": _as_int(info.get("decimals")),
        "supply": str(info["supply"]) if info.get("supply") is not None else None,
        "name": info.get("name"),
        "symbol": info.get("symbol"),
        "uri": info.get("uri"),
    }
    for extension in info.get("extensions") or []:
        if not isinstance(extension, dict) or extension.get("extension") != "tokenMetadata":
            continue
        ext_state = extension.get("state")
        if isinstance(ext_state, dict):
            for key in ("name", "symbol", "uri"):
                if not state.get(key) and ext_state.get(key):
                    state[key] = ext_state.get(key)
    return state


def decode_account_data(value: Any) -> Optional[bytes]:
    """Raw bytes of a ``base64``-encoded account, or ``None``."""

    data = value.get("data") if isinstance(value, dict) else None
    if isinstance(data, list) and data and isinstance(data[0], str):
        encoding = data[1] if len(data) > 1 else "base64"
        if encoding != "base64":
            return None
        try:
            return base64.b64decode(data[0], validate=False)
        except (ValueError, TypeError):
            return None
    return None


__all__ = [
    "decode_account_data",
    "extract_block_time",
    "extract_post_token_mints",
    "extract_signature_entries",
    "extract_value_list",
    "parse_mint_account",
]
