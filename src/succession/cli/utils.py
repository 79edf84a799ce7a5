"""Utility functions for the Succession CLI."""

from __future__ import annotations

import argparse
import logging

from ..core.config import SuccessionSettings, get_config
from ..identity.service import MigrationService
from ..transport.base import EventTransport

logger = logging.getLogger(__name__)


def settings_for(args: argparse.Namespace) -> SuccessionSettings:
    """Settings with ``--store`` applied over the configured mapping path."""
    config = get_config()
    store_path = getattr(args, "store", None)
    if store_path:
        return config.model_copy(update={"mapping_path": store_path})
    return config


def open_service(args: argparse.Namespace, transport: EventTransport | None = None) -> MigrationService:
    """Build a service over the mapping file selected by ``args``."""
    return MigrationService.from_settings(settings_for(args), transport)


def short(identity: str, width: int = 16) -> str:
    """Abbreviate a hex identity for display."""
    if len(identity) <= width:
        return identity
    return f"{identity[:width]}…"
