#!/usr/bin/env python3

# ruff: noqa: T201

from __future__ import annotations

import argparse
import logging
import sys
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from replaceable.app import audit_duplicates
from replaceable.config import configure_logging

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType


def _split_fields(value: str) -> list[str]:
    fields = [part.strip() for part in value.split(",") if part.strip()]
    if not fields:
        raise argparse.ArgumentTypeError("expected a comma separated list of column names")
    return fields


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Inspect replaceable record tables")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    dup = subparsers.add_parser("duplicates", help="List rows sharing a match identity")
    dup.add_argument("--table", required=True, help="Table to audit")
    dup.add_argument(
        "--match",
        type=_split_fields,
        default=[],
        help="Comma separated columns compared exactly",
    )
    dup.add_argument(
        "--insensitive-match",
        type=_split_fields,
        default=[],
        help="Comma separated columns compared case-insensitively",
    )
    dup.add_argument(
        "--order-by",
        type=_split_fields,
        default=[],
        help="Comma separated columns to order the output by (default: primary key)",
    )
    dup.add_argument(
        "--database-uri",
        type=str,
        help="SQLAlchemy database URI (defaults to DATABASE_URI or the data directory)",
    )

    args = parser.parse_args(list(argv))
    if not args.match and not args.insensitive_match:
        parser.error("duplicates needs at least one of --match or --insensitive-match")
    return args


def _format_row(row: dict[str, object]) -> str:
    return " ".join(f"{name}={value!r}" for name, value in row.items())


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    configure_logging(level=logging.DEBUG if args.verbose else None, default=logging.WARNING)

    try:
        rows = audit_duplicates(
            args.table,
            match=args.match,
            insensitive_match=args.insensitive_match,
            order_by=args.order_by,
            database_uri=args.database_uri,
        )
    except Exception as e:  # noqa: BLE001
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    for row in rows:
        print(_format_row(row.as_dict()))
    print(f"{len(rows)} duplicate row(s)", file=sys.stderr)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    print("\nClosed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
