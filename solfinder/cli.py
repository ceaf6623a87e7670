"""Command-line front end: ``solfinder QUERY``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Sequence

import orjson

from .errors import ConfigError, SearchFailedError
from .http import close_session
from .logging_utils import configure_logging
from .models import TokenRecord
from .search import TokenSearch, init_engine, set_engine
from .sources import TIME_RANGES


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="solfinder",
        description="Find Solana tokens by name, ticker or mint address.",
    )
    parser.add_argument("query", help="search text or mint address")
    parser.add_argument("--range", dest="time_range", choices=sorted(TIME_RANGES), default="all")
    parser.add_argument("--limit", type=int, default=None, help="maximum number of results")
    parser.add_argument(
        "--window-hours",
        type=float,
        default=None,
        help="age in hours under which a token counts as new",
    )
    parser.add_argument("--details", action="store_true", help="look up QUERY as a mint address")
    parser.add_argument("--json", action="store_true", help="print results as JSON")
    parser.add_argument("--json-logs", action="store_true", help="emit structured JSON logs")
    parser.add_argument("--log-level", default="WARNING")
    return parser


def format_record(record: TokenRecord) -> str:
    date = record.mint_date.strftime("%Y-%m-%d %H:%M") if record.mint_date else "-"
    flag = " NEW" if record.is_new_token else ""
    return f"{record.symbol:<12} {record.name:<32} {record.address}  {date}  [{record.source}]{flag}"


async def _run(args: argparse.Namespace, engine: TokenSearch) -> List[TokenRecord]:
    try:
        if args.details:
            record = await engine.details(args.query)
            return [record] if record is not None else []
        window = args.window_hours * 3600.0 if args.window_hours is not None else None
        return await engine.search(
            args.query,
            time_range=args.time_range,
            result_cap=args.limit,
            freshness_window=window,
        )
    finally:
        await engine.aclose()
        await close_session()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)
    level = getattr(logging, str(args.log_level).upper(), logging.WARNING)
    configure_logging(level, json_format=args.json_logs)

    try:
        engine = init_engine()
    except ConfigError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return 2

    try:
        records = asyncio.run(_run(args, engine))
    except SearchFailedError as exc:
        print(f"search failed: {exc}", file=sys.stderr)
        return 1
    finally:
        set_engine(None)

    if args.json:
        sys.stdout.write(orjson.dumps([record.to_dict() for record in records]).decode() + "\n")
    elif not records:
        print("no tokens found")
    else:
        for record in records:
            print(format_record(record))
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
