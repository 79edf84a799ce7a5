"""Commands that read or update the local migration mapping."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any

from ...core.exceptions import InvalidIdentityError
from ...identity.events import normalize_identity
from ...identity.verifier import MigrationEventVerifier
from ..utils import open_service, short


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the verify, resolve, history and show commands."""
    # verify
    verify_parser = subparsers.add_parser("verify", help="Verify migration events from a JSON file")
    verify_parser.add_argument("file", help="JSON file holding one event or a list of events")
    verify_parser.add_argument(
        "--record",
        action="store_true",
        help="Record accepted migrations in the mapping file",
    )
    verify_parser.set_defaults(func=cmd_verify)

    # resolve
    resolve_parser = subparsers.add_parser("resolve", help="Resolve an identity to its current identity")
    resolve_parser.add_argument("identity", help="64-character hex public key")
    resolve_parser.set_defaults(func=cmd_resolve)

    # history
    history_parser = subparsers.add_parser("history", help="Show the migration chain of an identity")
    history_parser.add_argument("identity", help="64-character hex public key")
    history_parser.set_defaults(func=cmd_history)

    # show
    show_parser = subparsers.add_parser("show", help="List every recorded migration")
    show_parser.add_argument("--json", "-j", action="store_true", help="Output as JSON")
    show_parser.set_defaults(func=cmd_show)


def _load_events(path: str) -> list[Any]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return data if isinstance(data, list) else [data]


def cmd_verify(args: argparse.Namespace) -> int:
    """Verify events and optionally record the accepted ones."""
    try:
        events = _load_events(args.file)
    except OSError as e:
        print(f"❌ Cannot read {args.file}: {e}")
        return 1
    except json.JSONDecodeError as e:
        print(f"❌ {args.file} is not valid JSON: {e.msg}")
        return 1

    if args.record:
        service = open_service(args)
        results = [(r.result, r.applied) for r in service.ingest_many(events)]
    else:
        verifier = MigrationEventVerifier()
        results = [(verifier.verify(e), False) for e in events]

    rejected = 0
    for result, applied in results:
        if result.record is not None:
            record = result.record
            status = "recorded" if applied else ("superseded" if args.record else "valid")
            print(f"✅ {short(record.from_identity)} → {short(record.to_identity)} ({status})")
        else:
            rejected += 1
            print(f"❌ {result.rejection}")

    print(f"\n{len(results) - rejected}/{len(results)} event(s) valid")
    return 0 if rejected == 0 else 1


def cmd_resolve(args: argparse.Namespace) -> int:
    """Print the current identity for an identity."""
    try:
        identity = normalize_identity(args.identity)
    except InvalidIdentityError as e:
        print(f"❌ {e.message}")
        return 1

    service = open_service(args)
    print(service.resolver.resolve_identity(identity))
    return 0


def cmd_history(args: argparse.Namespace) -> int:
    """Print every hop from an identity to its current identity."""
    try:
        identity = normalize_identity(args.identity)
    except InvalidIdentityError as e:
        print(f"❌ {e.message}")
        return 1

    service = open_service(args)
    chain = service.resolver.get_migration_history(identity)
    if len(chain) == 1:
        print(f"📭 {short(identity)} has not migrated")
        return 0

    print(f"🔗 {len(chain) - 1} migration(s)\n")
    for hop, current in enumerate(chain):
        marker = "└─" if hop == len(chain) - 1 else "├─"
        print(f"  {marker} {current}")
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    """List every recorded migration edge."""
    service = open_service(args)
    snapshot = service.store.snapshot()

    if args.json:
        print(json.dumps(snapshot, indent=2, sort_keys=True))
        return 0

    if not snapshot:
        print("📭 No migrations recorded")
        return 0

    print(f"🔀 {len(snapshot)} migration(s)\n")
    for old, new in sorted(snapshot.items()):
        record = service.store.get_record(old)
        scopes = f"  [{', '.join(record.scopes)}]" if record and record.scopes else ""
        print(f"  {short(old)} → {short(new)}{scopes}")
    return 0
