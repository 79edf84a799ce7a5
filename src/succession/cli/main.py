#!/usr/bin/env python3
"""
Succession CLI - Identity migration mapping for a local device.

Commands:
  succession verify <file>        Verify migration events (optionally record them)
  succession resolve <identity>   Print the current identity
  succession history <identity>   Show the migration chain
  succession show                 List recorded migrations
  succession fetch <identity>     Fetch migrations from relays
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence

from ..core.logging import configure_logging
from .commands import fetch, mapping

logger = logging.getLogger(__name__)


def app() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="succession",
        description="Identity migration mapping and resolution",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  succession verify events.json --record     Verify and record migrations
  succession resolve <hex>                   Resolve to the current identity
  succession history <hex>                   Show every hop
  succession show --json                     Dump the mapping
  succession fetch <hex> --scope <group> -r wss://relay.example.com
        """,
    )
    parser.add_argument(
        "--store",
        help="Mapping file (default: SUCCESSION_MAPPING_PATH; in-memory if unset)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)
    mapping.register(subparsers)
    fetch.register(subparsers)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    parser = app()
    args = parser.parse_args(argv)

    configure_logging(level="DEBUG" if args.verbose else None)

    handler = getattr(args, "func", None)
    if handler is None:
        parser.print_help()
        return 1
    return handler(args)


if __name__ == "__main__":
    sys.exit(main())
