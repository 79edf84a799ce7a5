"""Fetch migration evidence from relays."""

from __future__ import annotations

import argparse
import asyncio

from ...core.exceptions import InvalidIdentityError, MigrationFetchError
from ...identity.events import normalize_identity
from ...transport.relay import RelayTransport
from ..utils import open_service, settings_for, short


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the fetch command on the CLI parser."""
    fetch_parser = subparsers.add_parser(
        "fetch",
        help="Fetch migrations for an identity (or a scope) from relays",
    )
    fetch_parser.add_argument("identity", nargs="?", help="64-character hex public key")
    fetch_parser.add_argument("--scope", "-s", help="Group/community scope to restrict the query to")
    fetch_parser.add_argument(
        "--relay",
        "-r",
        action="append",
        dest="relays",
        help="Relay websocket URL (repeatable, default: SUCCESSION_RELAY_URLS)",
    )
    fetch_parser.set_defaults(func=cmd_fetch)


def cmd_fetch(args: argparse.Namespace) -> int:
    """Fetch, verify and record migrations, then print the resolution."""
    if not args.identity and not args.scope:
        print("❌ Provide an identity, --scope, or both")
        return 1

    identity = None
    if args.identity:
        try:
            identity = normalize_identity(args.identity)
        except InvalidIdentityError as e:
            print(f"❌ {e.message}")
            return 1

    settings = settings_for(args)
    relays = args.relays or settings.relay_urls
    if not relays:
        print("❌ No relays configured")
        print("\n💡 Pass --relay wss://… or set SUCCESSION_RELAY_URLS")
        return 1

    transport = RelayTransport(relays, timeout=settings.fetch_timeout_seconds)
    service = open_service(args, transport)

    async def run() -> dict[str, str]:
        if identity is None:
            return await service.resolver.prefetch_scope(args.scope)
        current = await service.resolver.resolve_lazy(identity, scope=args.scope)
        return {identity: current}

    try:
        resolved = asyncio.run(run())
    except MigrationFetchError as e:
        print(f"❌ Fetch failed: {e.message}")
        return 1

    if identity is not None:
        current = resolved[identity]
        if current == identity:
            print(f"📭 No migration found for {short(identity)}")
        else:
            print(f"✅ {short(identity)} → {current}")
        return 0

    print(f"🔀 {len(resolved)} migrated identit{'y' if len(resolved) == 1 else 'ies'} in scope {args.scope}\n")
    for old, new in sorted(resolved.items()):
        print(f"  {short(old)} → {short(new)}")
    return 0
