# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Succession Contributors

"""Succession CLI - Inspect and maintain the local identity migration mapping."""

from .main import app, main

__all__ = ["main", "app"]
