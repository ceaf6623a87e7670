"""Logging setup for the command line and embedders.

Library modules only ever call ``logging.getLogger(__name__)`` and pass
structured context through ``extra``. :func:`configure_logging` decides how
that ends up on screen: a readable UTC line format, or one JSON object per
line for log shippers.
"""

from __future__ import annotations

import logging
import sys
import threading
import time
from datetime import datetime, timezone
from typing import IO, Any, Dict, Iterable, Optional

import orjson

HANDLER_NAME = "solfinder"
LINE_FORMAT = "%(asctime)sZ %(levelname)-7s %(name)s | %(message)s"
LINE_DATEFMT = "%Y-%m-%dT%H:%M:%S"

THIRD_PARTY_LOGGERS = ("asyncio", "aiohttp", "aiohttp.client", "aiohttp.internal")

# attributes every LogRecord carries; anything else came in through ``extra``
_STANDARD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


class UTCLineFormatter(logging.Formatter):
    converter = time.gmtime


class JsonFormatter(logging.Formatter):
    """Render a record and its ``extra`` context as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: Dict[str, Any] = {
            "time": stamp.strftime("%Y-%m-%dT%H:%M:%S.") + f"{stamp.microsecond // 1000:03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = {
            key: value
            for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        }
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return orjson.dumps(entry, default=str).decode()


def configure_logging(
    level: int = logging.INFO,
    *,
    json_format: bool = False,
    stream: Optional[IO[str]] = None,
    quiet: Iterable[str] = THIRD_PARTY_LOGGERS,
) -> logging.Handler:
    """Attach (or reconfigure) the package's handler on the root logger.

    Calling it again replaces the formatter and level of the same handler
    instead of stacking a second one. Output defaults to stderr so stdout
    stays free for command results.
    """

    root = logging.getLogger()
    handler = next((h for h in root.handlers if h.get_name() == HANDLER_NAME), None)
    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.set_name(HANDLER_NAME)
        root.addHandler(handler)
    elif stream is not None and isinstance(handler, logging.StreamHandler):
        handler.setStream(stream)

    handler.setFormatter(JsonFormatter() if json_format else UTCLineFormatter(LINE_FORMAT, LINE_DATEFMT))
    handler.setLevel(level)
    root.setLevel(level)
    for name in quiet:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
    return handler


class _Throttle:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last: Dict[str, float] = {}

    def allow(self, key: str, interval: float) -> bool:
        now = time.monotonic()
        with self._lock:
            last = self._last.get(key)
            if last is not None and now - last < interval:
                return False
            self._last[key] = now
            return True

    def reset(self) -> None:
        with self._lock:
            self._last.clear()


_THROTTLE = _Throttle()


def warn_throttled(
    logger: logging.Logger,
    key: str,
    message: str,
    *args: Any,
    interval: float = 60.0,
    **kwargs: Any,
) -> bool:
    """``logger.warning`` at most once per ``interval`` seconds for ``key``."""

    if not _THROTTLE.allow(key, max(0.0, interval)):
        return False
    logger.warning(message, *args, **kwargs)
    return True


def reset_throttle() -> None:
    _THROTTLE.reset()


__all__ = [
    "JsonFormatter",
    "UTCLineFormatter",
    "configure_logging",
    "reset_throttle",
    "warn_throttled",
]
