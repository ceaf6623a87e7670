"""Bounded retry with backoff for remote calls.

Every call to the ledger node goes through :func:`retry_async`. Failures are
classified into :class:`~solfinder.errors.RemoteErrorKind` values and the
delay before the next attempt depends on the kind:

* ``RATE_LIMITED``: exponential growth plus uniform jitter, capped.
* ``TIMEOUT``: a fixed medium delay.
* anything else: a fixed short delay.

Every kind is retried by default. Callers that know some kinds cannot
change between attempts list them in ``RetryPolicy.permanent``; those raise
at once.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, FrozenSet, TypeVar

from .errors import RemoteErrorKind, classify_exception

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 0.5
    growth: float = 2.0
    jitter: float = 0.5
    delay_cap: float = 10.0
    timeout_delay: float = 1.0
    other_delay: float = 0.25
    permanent: FrozenSet[RemoteErrorKind] = field(default=frozenset())

    def delay_for(self, kind: RemoteErrorKind, attempt: int, *, rng: random.Random | None = None) -> float:
        """Return the sleep before retrying after failed ``attempt`` (0-based)."""

        if kind is RemoteErrorKind.RATE_LIMITED:
            draw = (rng or random).uniform(0.0, self.jitter) if self.jitter > 0 else 0.0
            return min(self.base_delay * (self.growth ** attempt) + draw, self.delay_cap)
        if kind is RemoteErrorKind.TIMEOUT:
            return self.timeout_delay
        return self.other_delay

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.retry_max,
            base_delay=settings.retry_base_delay,
            growth=settings.retry_growth,
            jitter=settings.retry_jitter,
            delay_cap=settings.retry_delay_cap,
        )


def _is_empty(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, (list, tuple, dict, str, bytes)):
        return len(value) == 0
    return False


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy | None = None,
    retry_on_empty: bool = False,
    label: str = "remote call",
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or ``max_retries + 1`` attempts fail.

    The last error is re-raised once the budget is spent. With
    ``retry_on_empty`` a ``None``/empty result counts as a transient failure;
    if every attempt comes back empty the empty value is returned.
    """

    policy = policy or RetryPolicy()
    attempts = max(0, policy.max_retries) + 1
    result: T | None = None
    for attempt in range(attempts):
        last = attempt == attempts - 1
        try:
            result = await operation()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            kind = classify_exception(exc)
            if last or kind in policy.permanent:
                if last and attempts > 1:
                    logger.warning(
                        "%s failed after %d attempts: %s",
                        label,
                        attempts,
                        exc,
                        extra={"error_kind": kind.value},
                    )
                raise
            delay = policy.delay_for(kind, attempt)
            logger.debug(
                "%s attempt %d failed (%s); retrying in %.2fs",
                label,
                attempt + 1,
                kind.value,
                delay,
            )
            await sleep(delay)
            continue
        if retry_on_empty and _is_empty(result) and not last:
            delay = policy.delay_for(RemoteErrorKind.UNKNOWN, attempt)
            logger.debug("%s returned empty; retrying in %.2fs", label, delay)
            await sleep(delay)
            continue
        return result
    return result  # type: ignore[return-value]


__all__ = ["RetryPolicy", "retry_async"]
