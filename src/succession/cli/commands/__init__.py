"""CLI command modules for Succession.

Each module exposes a ``register(subparsers)`` function that wires up
its argparse sub-commands and sets ``parser.set_defaults(func=handler)``.
"""

from . import fetch, mapping
from .fetch import cmd_fetch
from .mapping import cmd_history, cmd_resolve, cmd_show, cmd_verify

__all__ = [
    "fetch",
    "mapping",
    "cmd_fetch",
    "cmd_history",
    "cmd_resolve",
    "cmd_show",
    "cmd_verify",
]
