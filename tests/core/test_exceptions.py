"""Tests for succession.core.exceptions module."""

from __future__ import annotations

import pytest

from succession.core.exceptions import (
    ConfigException,
    InvalidIdentityError,
    MalformedEventError,
    MigrationFetchError,
    StoreIntegrityError,
    SuccessionException,
    TransportError,
    ValidationException,
)

# ============================================================================
# SuccessionException Tests
# ============================================================================


class TestSuccessionException:
    """Tests for base SuccessionException."""

    def test_create_with_message(self):
        exc = SuccessionException("Something went wrong")
        assert str(exc) == "Something went wrong"
        assert exc.message == "Something went wrong"
        assert exc.details == {}

    def test_to_dict(self):
        exc = SuccessionException("Test error", details={"info": "extra"})
        assert exc.to_dict() == {
            "error": "SuccessionException",
            "message": "Test error",
            "details": {"info": "extra"},
        }

    def test_to_dict_uses_subclass_name(self):
        exc = TransportError("down")
        assert exc.to_dict()["error"] == "TransportError"

    @pytest.mark.parametrize(
        "exc_class",
        [ValidationException, StoreIntegrityError, TransportError, ConfigException],
    )
    def test_subclasses_are_catchable_as_base(self, exc_class):
        with pytest.raises(SuccessionException):
            raise exc_class("boom")


# ============================================================================
# Validation errors
# ============================================================================


class TestValidationErrors:
    def test_validation_exception_details(self):
        exc = ValidationException("bad", field="kind", value=7)
        assert exc.field == "kind"
        assert exc.value == 7
        assert exc.details == {"field": "kind", "value": "7"}

    def test_invalid_identity_error(self):
        exc = InvalidIdentityError("not-hex")
        assert isinstance(exc, ValidationException)
        assert "not-hex" in exc.message
        assert exc.details["field"] == "identity"

    def test_malformed_event_error_is_validation(self):
        exc = MalformedEventError("missing sig", field="sig")
        assert isinstance(exc, ValidationException)
        assert exc.details == {"field": "sig"}


# ============================================================================
# Infrastructure errors
# ============================================================================


class TestInfrastructureErrors:
    def test_store_integrity_error_identity(self):
        exc = StoreIntegrityError("self loop", identity="ab" * 32)
        assert exc.identity == "ab" * 32
        assert exc.details == {"identity": "ab" * 32}

    def test_transport_error_url(self):
        exc = TransportError("refused", url="wss://relay.example.com")
        assert exc.url == "wss://relay.example.com"
        assert exc.details == {"url": "wss://relay.example.com"}

    def test_transport_error_without_url(self):
        assert TransportError("refused").details == {}

    def test_migration_fetch_error_details(self):
        cause = TransportError("refused")
        exc = MigrationFetchError("cd" * 32, "group-1", cause)
        assert exc.identity == "cd" * 32
        assert exc.scope == "group-1"
        assert exc.details == {"identity": "cd" * 32, "scope": "group-1", "cause": "refused"}

    def test_migration_fetch_error_timeout_cause_named(self):
        exc = MigrationFetchError("cd" * 32, None, TimeoutError())
        assert exc.details["cause"] == "TimeoutError"
        assert "scope" not in exc.details

    def test_config_exception_setting(self):
        exc = ConfigException("missing", setting="relay_urls")
        assert exc.setting == "relay_urls"
        assert exc.details == {"setting": "relay_urls"}
