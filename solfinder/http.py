"""Shared HTTP plumbing: one aiohttp session per event loop, per-host
concurrency slots, and JSON fetching that raises typed errors."""

from __future__ import annotations

import asyncio
import logging
import os
import weakref
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Mapping
from urllib.parse import urlparse

import aiohttp
import orjson

from .errors import RemoteCallError, RemoteErrorKind, kind_for_status

logger = logging.getLogger(__name__)

USER_AGENT = os.getenv("HTTP_USER_AGENT", "solfinder/0.3")

# sessions cannot be shared across loops; tests and embedders may run several
_SESSIONS: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, aiohttp.ClientSession]" = (
    weakref.WeakKeyDictionary()
)

# in-flight request ceilings for hosts we talk to a lot; suffix matched
HOST_LIMITS: Mapping[str, int] = {
    "helius-rpc.com": 8,
    "api.mainnet-beta.solana.com": 4,
    "jup.ag": 2,
}
DEFAULT_HOST_LIMIT = max(1, int(os.getenv("HTTP_CONNECTOR_LIMIT_PER_HOST", "4") or 4))

# semaphores bind to the loop they first wait on, so slots are kept per loop
_SLOTS: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Dict[str, asyncio.Semaphore]]" = (
    weakref.WeakKeyDictionary()
)


def dumps(obj: object) -> bytes:
    return orjson.dumps(obj)


def loads(data: str | bytes) -> Any:
    """Deserialize JSON *data*; raises ``RemoteCallError(MALFORMED)`` on garbage."""

    try:
        return orjson.loads(data)
    except orjson.JSONDecodeError as exc:
        raise RemoteCallError(RemoteErrorKind.MALFORMED, f"invalid JSON body: {exc}") from exc


async def get_session() -> aiohttp.ClientSession:
    loop = asyncio.get_running_loop()
    session = _SESSIONS.get(loop)
    if session is None or session.closed:
        session = aiohttp.ClientSession(
            headers={"User-Agent": USER_AGENT},
            timeout=aiohttp.ClientTimeout(total=float(os.getenv("HTTP_TIMEOUT_SEC", "15") or 15)),
        )
        _SESSIONS[loop] = session
    return session


async def close_session() -> None:
    sessions = list(_SESSIONS.values())
    _SESSIONS.clear()
    for session in sessions:
        if not session.closed:
            await session.close()


def host_limit(host: str) -> int:
    host = host.lower()
    for suffix, limit in HOST_LIMITS.items():
        if host == suffix or host.endswith("." + suffix):
            return limit
    return DEFAULT_HOST_LIMIT


@asynccontextmanager
async def host_slot(url: str) -> AsyncIterator[str]:
    """Hold one of the in-flight slots for *url*'s host."""

    host = (urlparse(url).hostname or "unknown").lower()
    loop = asyncio.get_running_loop()
    if loop not in _SLOTS:
        # a contended semaphore references its loop, which pins the weak key
        for stale in [old for old in _SLOTS.keys() if old.is_closed()]:
            del _SLOTS[stale]
    slots = _SLOTS.setdefault(loop, {})
    semaphore = slots.get(host)
    if semaphore is None:
        semaphore = slots[host] = asyncio.Semaphore(host_limit(host))
    async with semaphore:
        yield host


async def fetch_json(
    url: str,
    method: str = "GET",
    *,
    session: aiohttp.ClientSession | None = None,
    timeout: float | None = None,
    **kwargs: Any,
) -> Any:
    """Fetch *url* and return the parsed JSON body.

    Error statuses and transport failures surface as :class:`RemoteCallError`
    with a classified kind. Messages name only the host, never the query
    string, so API keys stay out of logs.
    """

    session = session or await get_session()
    if timeout is not None:
        kwargs.setdefault("timeout", aiohttp.ClientTimeout(total=timeout))
    host = urlparse(url).netloc
    try:
        async with host_slot(url):
            async with session.request(method, url, **kwargs) as response:
                if response.status >= 400:
                    text = await response.text()
                    logger.debug("%s %s returned %s", method, host, response.status)
                    raise RemoteCallError(
                        kind_for_status(response.status),
                        f"{method} {host} -> {response.status}: {text[:200]}",
                        status=response.status,
                    )
                raw = await response.read()
    except RemoteCallError:
        raise
    except asyncio.TimeoutError as exc:
        raise RemoteCallError(RemoteErrorKind.TIMEOUT, f"{method} {host} timed out") from exc
    except aiohttp.ClientError as exc:
        raise RemoteCallError(RemoteErrorKind.TIMEOUT, f"{method} {host} failed: {exc}") from exc
    return loads(raw)


__all__ = [
    "close_session",
    "dumps",
    "fetch_json",
    "get_session",
    "host_limit",
    "host_slot",
    "loads",
]
