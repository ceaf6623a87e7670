"""Typed error taxonomy shared by the gateway, retry policy and search."""

from __future__ import annotations

import asyncio
import enum
from typing import Any, Mapping

import aiohttp


class RemoteErrorKind(str, enum.Enum):
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    NOT_FOUND = "not_found"
    MALFORMED = "malformed"
    UNKNOWN = "unknown"


class ConfigError(RuntimeError):
    """Raised at startup when required configuration is missing."""


class RemoteCallError(Exception):
    """A failed call to the ledger node or an HTTP service."""

    def __init__(
        self,
        kind: RemoteErrorKind,
        message: str,
        *,
        status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status = status

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"RemoteCallError({self.kind.value}, {str(self)!r}, status={self.status})"


class SearchFailedError(RuntimeError):
    """Raised when every data source of a search failed.

    ``errors`` maps the source name to the exception it raised so callers can
    tell an outage apart from a search that simply found nothing.
    """

    def __init__(self, errors: Mapping[str, BaseException]) -> None:
        self.errors = dict(errors)
        summary = ", ".join(f"{name}: {exc}" for name, exc in self.errors.items())
        super().__init__(f"all token sources failed ({summary})")


# JSON-RPC error codes emitted by Solana nodes and Helius.
_RPC_RATE_LIMIT_CODES = {429, -32429}
_RPC_NOT_FOUND_CODES = {-32004, -32007, -32009}
_RPC_MALFORMED_CODES = {-32600, -32602, -32700}


def kind_for_status(status: int) -> RemoteErrorKind:
    if status == 429:
        return RemoteErrorKind.RATE_LIMITED
    if status in {408, 504}:
        return RemoteErrorKind.TIMEOUT
    if status == 404:
        return RemoteErrorKind.NOT_FOUND
    if status in {400, 422}:
        return RemoteErrorKind.MALFORMED
    return RemoteErrorKind.UNKNOWN


def kind_for_rpc_error(error: Any) -> RemoteErrorKind:
    """Map a JSON-RPC ``error`` object onto a :class:`RemoteErrorKind`."""

    code = None
    message = ""
    if isinstance(error, Mapping):
        code = error.get("code")
        message = str(error.get("message") or "")
    else:
        message = str(error)
    if code in _RPC_RATE_LIMIT_CODES:
        return RemoteErrorKind.RATE_LIMITED
    if code in _RPC_NOT_FOUND_CODES:
        return RemoteErrorKind.NOT_FOUND
    if code in _RPC_MALFORMED_CODES:
        return RemoteErrorKind.MALFORMED
    return _kind_from_message(message)


def _kind_from_message(message: str) -> RemoteErrorKind:
    lowered = message.lower()
    if "rate limit" in lowered or "too many requests" in lowered or "429" in lowered:
        return RemoteErrorKind.RATE_LIMITED
    if "timeout" in lowered or "timed out" in lowered or "failed to fetch" in lowered:
        return RemoteErrorKind.TIMEOUT
    return RemoteErrorKind.UNKNOWN


def classify_exception(exc: BaseException) -> RemoteErrorKind:
    """Return the error kind for ``exc``.

    Typed gateway errors carry their kind; transport exceptions are mapped by
    type. Message inspection is only the last resort for foreign errors.
    """

    if isinstance(exc, RemoteCallError):
        return exc.kind
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, aiohttp.ServerTimeoutError)):
        return RemoteErrorKind.TIMEOUT
    if isinstance(exc, aiohttp.ClientResponseError):
        return kind_for_status(exc.status)
    if isinstance(exc, aiohttp.ClientConnectionError):
        return RemoteErrorKind.TIMEOUT
    if isinstance(exc, (ValueError, KeyError, TypeError)):
        return RemoteErrorKind.MALFORMED
    return _kind_from_message(str(exc))


__all__ = [
    "ConfigError",
    "RemoteCallError",
    "RemoteErrorKind",
    "SearchFailedError",
    "classify_exception",
    "kind_for_rpc_error",
    "kind_for_status",
]
