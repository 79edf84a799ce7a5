# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Succession Contributors

"""Succession - Identity migration and resolution for signed-event networks.

A user who rotates their keypair publishes a migration event: a statement
signed by the old key that embeds a proof signed by the new key. Each device
independently verifies these events, keeps a local ``old -> new`` mapping,
and rewrites historical identities to their current one.

Architecture:
  Raw events (untrusted, from any relay)
    → Verifier (structure, both signatures, bidirectional binding)
    → Store (one successor per identity, persisted mapping)
    → Resolver (chain walk with cycle and hop guards, memoised)
    → Lazy fetch (one deduplicated query per unknown identity)

CLI entry point: ``succession``
"""

__version__ = "0.1.0"

from . import (
    core as core,
)
