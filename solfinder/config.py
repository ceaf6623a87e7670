"""Runtime settings populated once from the environment."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Mapping
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_RPC_BASE = "https://mainnet.helius-rpc.com"
DEFAULT_TOKEN_LIST_URL = "https://tokens.jup.ag/tokens?tags=verified"

_PLACEHOLDER_MARKERS = ("YOUR_KEY", "YOUR_HELIUS_KEY", "CHANGE_ME", "EXAMPLE", "REDACTED")
_SECRET_QUERY_KEYS = {"api-key", "api_key", "apikey", "token", "secret"}


def _env_float(env: Mapping[str, str], name: str, default: float, *, minimum: float = 0.0) -> float:
    raw = env.get(name)
    try:
        value = float(raw) if raw not in {None, ""} else float(default)
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid %s=%r; using %s", name, raw, default)
        value = float(default)
    return max(minimum, value)


def _env_int(env: Mapping[str, str], name: str, default: int, *, minimum: int = 1) -> int:
    raw = env.get(name)
    try:
        value = int(raw) if raw not in {None, ""} else int(default)
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid %s=%r; using %s", name, raw, default)
        value = int(default)
    return max(minimum, value)


def _is_placeholder(value: str) -> bool:
    lowered = value.lower()
    return any(marker.lower() in lowered for marker in _PLACEHOLDER_MARKERS)


def _resolve_env(env: Mapping[str, str], names: Iterable[str]) -> str:
    for name in names:
        candidate = (env.get(name) or "").strip()
        if not candidate or _is_placeholder(candidate):
            continue
        return candidate
    return ""


def _extract_api_key_from_url(url: str) -> str | None:
    if not url:
        return None
    query = dict(parse_qsl(urlsplit(url).query, keep_blank_values=True))
    key = query.get("api-key")
    if isinstance(key, str) and key.strip() and not _is_placeholder(key):
        return key.strip()
    return None


def rpc_url_for(base: str, key: str) -> str:
    """Return ``base`` with ``api-key`` set to ``key``."""

    parts = urlsplit(base)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    query["api-key"] = key
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def redact_url(url: str) -> str:
    """Strip secret query values from ``url`` so it can be logged."""

    parts = urlsplit(url)
    if not parts.query:
        return url
    pairs = [
        (key, "REDACTED" if key.lower() in _SECRET_QUERY_KEYS else value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(pairs), parts.fragment))


@dataclass(frozen=True, slots=True)
class Settings:
    """Configuration consumed by the search engine."""

    api_key: str
    rpc_base_url: str = DEFAULT_RPC_BASE
    token_list_url: str = DEFAULT_TOKEN_LIST_URL
    rpc_timeout: float = 10.0
    retry_max: int = 3
    retry_base_delay: float = 0.5
    retry_delay_cap: float = 10.0
    retry_growth: float = 2.0
    retry_jitter: float = 0.5
    tx_cache_size: int = 1000
    scan_batch_size: int = 8
    scan_batch_delay: float = 0.3
    scan_deadline: float = 45.0
    result_cap: int = 50
    freshness_window_hours: float = 24.0
    token_list_enrich_limit: int = 10

    @property
    def rpc_url(self) -> str:
        return rpc_url_for(self.rpc_base_url, self.api_key)

    @property
    def freshness_window(self) -> float:
        """Freshness window in seconds."""
        return self.freshness_window_hours * 3600.0

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from ``env`` (``os.environ`` by default).

        Raises :class:`ConfigError` when no API credential can be found.
        """

        env = os.environ if env is None else env
        base = _resolve_env(env, ("SOLANA_RPC_URL", "HELIUS_RPC_URL")) or DEFAULT_RPC_BASE
        api_key = _resolve_env(env, ("HELIUS_API_KEY", "HELIUS_API_TOKEN"))
        if not api_key:
            api_key = _extract_api_key_from_url(base) or ""
        if not api_key:
            raise ConfigError(
                "HELIUS_API_KEY must be set (or SOLANA_RPC_URL must include ?api-key=...)"
            )
        retry_base = _env_float(env, "RETRY_BASE_DELAY", 0.5)
        settings = cls(
            api_key=api_key,
            rpc_base_url=base.rstrip("/"),
            token_list_url=(env.get("TOKEN_LIST_URL") or DEFAULT_TOKEN_LIST_URL).strip(),
            rpc_timeout=_env_float(env, "RPC_TIMEOUT", 10.0, minimum=0.5),
            retry_max=_env_int(env, "RETRY_MAX", 3, minimum=0),
            retry_base_delay=retry_base,
            retry_delay_cap=_env_float(env, "RETRY_DELAY_CAP", 10.0, minimum=retry_base),
            retry_growth=_env_float(env, "RETRY_GROWTH", 2.0, minimum=1.0),
            retry_jitter=_env_float(env, "RETRY_JITTER", 0.5),
            tx_cache_size=_env_int(env, "TX_CACHE_SIZE", 1000),
            scan_batch_size=_env_int(env, "SCAN_BATCH_SIZE", 8),
            scan_batch_delay=_env_float(env, "SCAN_BATCH_DELAY", 0.3),
            scan_deadline=_env_float(env, "SCAN_DEADLINE", 45.0, minimum=1.0),
            result_cap=_env_int(env, "RESULT_CAP", 50),
            freshness_window_hours=_env_float(env, "FRESHNESS_WINDOW_HOURS", 24.0),
            token_list_enrich_limit=_env_int(env, "TOKEN_LIST_ENRICH_LIMIT", 10, minimum=0),
        )
        logger.info(
            "Settings loaded",
            extra={
                "rpc_url": redact_url(settings.rpc_url),
                "token_list_url": settings.token_list_url,
                "scan_batch_size": settings.scan_batch_size,
                "tx_cache_size": settings.tx_cache_size,
            },
        )
        return settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, reading the environment once."""

    return Settings.from_env()


def reset_settings() -> None:
    get_settings.cache_clear()


__all__ = ["Settings", "get_settings", "reset_settings", "redact_url", "rpc_url_for"]
