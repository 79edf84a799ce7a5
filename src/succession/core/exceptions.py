# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Succession Contributors

"""Exception hierarchy for Succession.

Verification of untrusted events never raises: rejections are returned as
values. The exceptions here cover programming errors at the store boundary,
invalid identity input, and failures of the external transport.
"""

from __future__ import annotations

from typing import Any


class SuccessionException(Exception):  # noqa: N818
    """Base exception for all Succession errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationException(SuccessionException):
    """Exception for input validation errors.

    Raised when:
    - A value is not a well-formed identity
    - An event does not have the required shape
    """

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details)
        self.field = field
        self.value = value


class InvalidIdentityError(ValidationException):
    """Raised when a value is not a 32-byte hex public key."""

    def __init__(self, value: Any):
        super().__init__(f"Not a valid identity: {value!r}", field="identity", value=value)


class MalformedEventError(ValidationException):
    """Raised when a raw event does not have the shape of a signed event."""


class StoreIntegrityError(SuccessionException):
    """Raised when a write would break a mapping invariant (e.g. a self-loop)."""

    def __init__(self, message: str, identity: str | None = None):
        details = {}
        if identity:
            details["identity"] = identity
        super().__init__(message, details)
        self.identity = identity


class TransportError(SuccessionException):
    """Exception for failures of the event transport.

    Raised when:
    - No relay could be reached
    - A relay rejected a published event
    - A relay sent an unparseable response
    """

    def __init__(self, message: str, url: str | None = None):
        details = {}
        if url:
            details["url"] = url
        super().__init__(message, details)
        self.url = url


class MigrationFetchError(SuccessionException):
    """Raised to callers of a lazy resolution when the evidence fetch failed.

    The store is left unchanged; callers may retry.
    """

    def __init__(self, identity: str, scope: str | None, cause: BaseException | None = None):
        message = f"Failed to fetch migrations for {identity[:16]}…"
        details: dict[str, Any] = {"identity": identity}
        if scope:
            details["scope"] = scope
        if cause is not None:
            details["cause"] = str(cause) or cause.__class__.__name__
        super().__init__(message, details)
        self.identity = identity
        self.scope = scope


class ConfigException(SuccessionException):
    """Exception for configuration errors."""

    def __init__(self, message: str, setting: str | None = None):
        details = {}
        if setting:
            details["setting"] = setting
        super().__init__(message, details)
        self.setting = setting
