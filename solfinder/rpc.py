"""JSON-RPC gateway to the Solana ledger node.

The gateway knows nothing about tokens. It turns HTTP, transport and
JSON-RPC failures into :class:`~solfinder.errors.RemoteCallError` values and
sends every call through the retry policy.
"""

from __future__ import annotations

import asyncio
import dataclasses
import itertools
import logging
from typing import Any, Dict, FrozenSet, List, Optional

import aiohttp

from . import http
from .errors import RemoteCallError, RemoteErrorKind, kind_for_rpc_error
from .retry import RetryPolicy, retry_async
from .rpc_helpers import extract_signature_entries

logger = logging.getLogger(__name__)

TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
DEFAULT_COMMITMENT = "confirmed"

# a rejected request or a missing method fails the same way every time
RPC_PERMANENT_KINDS: FrozenSet[RemoteErrorKind] = frozenset(
    {RemoteErrorKind.NOT_FOUND, RemoteErrorKind.MALFORMED}
)


class RpcGateway:
    def __init__(
        self,
        rpc_url: str,
        *,
        timeout: float = 10.0,
        policy: RetryPolicy | None = None,
        session: aiohttp.ClientSession | None = None,
        commitment: str = DEFAULT_COMMITMENT,
        permanent: FrozenSet[RemoteErrorKind] = RPC_PERMANENT_KINDS,
    ) -> None:
        self.rpc_url = rpc_url
        self.timeout = timeout
        policy = policy or RetryPolicy()
        self.policy = dataclasses.replace(policy, permanent=policy.permanent | permanent)
        self.commitment = commitment
        self._session = session
        self._owns_session = session is None
        self._session_loop: asyncio.AbstractEventLoop | None = None
        self._ids = itertools.count(1)

    @classmethod
    def from_settings(cls, settings) -> "RpcGateway":
        return cls(
            settings.rpc_url,
            timeout=settings.rpc_timeout,
            policy=RetryPolicy.from_settings(settings),
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        if not self._owns_session and self._session is not None:
            return self._session
        loop = asyncio.get_running_loop()
        if self._session is None or self._session.closed or self._session_loop is not loop:
            # a session is tied to the loop that created it
            stale = self._session
            if stale is not None and not stale.closed:
                # the old loop cannot run close(); detach so the session counts as closed
                stale.detach()
                logger.debug("dropped RPC session bound to a previous event loop")
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": http.USER_AGENT, "Content-Type": "application/json"},
            )
            self._session_loop = loop
        return self._session

    async def _post(self, method: str, params: List[Any]) -> Any:
        session = await self._get_session()
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        body = await http.fetch_json(
            self.rpc_url,
            "POST",
            session=session,
            timeout=self.timeout,
            data=http.dumps(payload),
            headers={"Content-Type": "application/json"},
        )
        if not isinstance(body, dict):
            raise RemoteCallError(RemoteErrorKind.MALFORMED, f"{method}: unexpected response type")
        error = body.get("error")
        if error:
            raise RemoteCallError(kind_for_rpc_error(error), f"{method}: {error}")
        if "result" not in body:
            raise RemoteCallError(RemoteErrorKind.MALFORMED, f"{method}: response without result")
        return body["result"]

    async def call(
        self,
        method: str,
        params: Optional[List[Any]] = None,
        *,
        retry_on_empty: bool = False,
    ) -> Any:
        """Issue ``method`` with retries; returns the JSON-RPC ``result``."""

        return await retry_async(
            lambda: self._post(method, list(params or [])),
            policy=self.policy,
            retry_on_empty=retry_on_empty,
            label=method,
        )

    async def get_account_info(self, address: str, *, encoding: str = "jsonParsed") -> Optional[Dict[str, Any]]:
        """Return the account ``value`` or ``None`` when it does not exist."""

        result = await self.call(
            "getAccountInfo",
            [address, {"encoding": encoding, "commitment": self.commitment}],
        )
        if isinstance(result, dict):
            value = result.get("value")
            return value if isinstance(value, dict) else None
        return None

    async def get_signatures_for_address(
        self,
        address: str,
        *,
        limit: int = 1000,
        before: str | None = None,
    ) -> List[Dict[str, Any]]:
        config: Dict[str, Any] = {"limit": max(1, min(int(limit), 1000)), "commitment": self.commitment}
        if before:
            config["before"] = before
        result = await self.call("getSignaturesForAddress", [address, config])
        return extract_signature_entries(result)

    async def get_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        """Fetch a parsed transaction.

        Nodes answer ``null`` for signatures that have not propagated yet, so
        an empty answer is retried before being accepted.
        """

        result = await self.call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "commitment": self.commitment,
                    "maxSupportedTransactionVersion": 0,
                },
            ],
            retry_on_empty=True,
        )
        return result if isinstance(result, dict) else None

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "RpcGateway":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


__all__ = ["RpcGateway", "TOKEN_PROGRAM_ID"]
