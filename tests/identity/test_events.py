"""Tests for signed event primitives.

Tests cover:
- Identity normalization
- Canonical id serialization
- Shape validation of untrusted event dicts
- Signature verification and tamper detection
- Signing via Ed25519Signer and finalize_event
"""

from __future__ import annotations

import hashlib
import json

import pytest

from succession.core.exceptions import InvalidIdentityError, MalformedEventError
from succession.identity.events import (
    MIGRATION_KIND,
    Ed25519Signer,
    EventTemplate,
    SignedEvent,
    compute_event_id,
    finalize_event,
    is_identity,
    normalize_identity,
    serialize_for_id,
    verify_event_signature,
)

PUBKEY = "ab" * 32


def _signed(signer: Ed25519Signer, content: str = "hi", tags=None) -> SignedEvent:
    return finalize_event(
        EventTemplate(kind=MIGRATION_KIND, content=content, tags=tags or [], created_at=1_700_000_000),
        signer,
    )


# ---------------------------------------------------------------------------
# Identities
# ---------------------------------------------------------------------------


class TestNormalizeIdentity:
    def test_lowercases(self):
        assert normalize_identity("AB" * 32) == PUBKEY

    def test_strips_whitespace(self):
        assert normalize_identity(f"  {PUBKEY}\n") == PUBKEY

    @pytest.mark.parametrize(
        "value",
        ["", "ab" * 31, "ab" * 33, "zz" * 32, None, 42, b"ab" * 32, f"0x{'ab' * 31}"],
    )
    def test_rejects_invalid(self, value):
        with pytest.raises(InvalidIdentityError):
            normalize_identity(value)

    def test_is_identity(self):
        assert is_identity(PUBKEY)
        assert not is_identity("npub1xyz")


# ---------------------------------------------------------------------------
# Event id
# ---------------------------------------------------------------------------


class TestEventId:
    def test_serialization_is_compact(self):
        data = serialize_for_id(PUBKEY, 1, MIGRATION_KIND, [["p", "x"]], "a b")

        assert data == f'[0,"{PUBKEY}",1,1776,[["p","x"]],"a b"]'.encode()

    def test_serialization_keeps_unicode(self):
        data = serialize_for_id(PUBKEY, 1, MIGRATION_KIND, [], "héllo")

        assert "héllo".encode() in data

    def test_id_is_sha256_of_serialization(self):
        expected = hashlib.sha256(serialize_for_id(PUBKEY, 5, 1, [], "")).hexdigest()

        assert compute_event_id(PUBKEY, 5, 1, [], "") == expected

    def test_id_commits_to_tags(self):
        assert compute_event_id(PUBKEY, 5, 1, [["p", "a"]], "") != compute_event_id(PUBKEY, 5, 1, [["p", "b"]], "")


# ---------------------------------------------------------------------------
# SignedEvent parsing
# ---------------------------------------------------------------------------


class TestSignedEventFromDict:
    @pytest.fixture()
    def raw(self, alice) -> dict:
        return _signed(alice, tags=[["p", PUBKEY], ["h", "group-1"]]).to_dict()

    def test_round_trips_dict(self, raw):
        event = SignedEvent.from_dict(raw)

        assert event.to_dict() == raw
        assert event.tags == (("p", PUBKEY), ("h", "group-1"))

    def test_from_json(self, raw):
        assert SignedEvent.from_json(json.dumps(raw)).id == raw["id"]

    def test_from_json_invalid(self):
        with pytest.raises(MalformedEventError):
            SignedEvent.from_json("{not json")

    def test_from_json_too_deep(self):
        with pytest.raises(MalformedEventError):
            SignedEvent.from_json("[" * 100_000)

    def test_rejects_non_object(self):
        with pytest.raises(MalformedEventError):
            SignedEvent.from_dict(["EVENT"])

    @pytest.mark.parametrize("field", ["id", "pubkey", "content", "sig", "created_at", "kind", "tags"])
    def test_rejects_missing_field(self, raw, field):
        del raw[field]
        with pytest.raises(MalformedEventError):
            SignedEvent.from_dict(raw)

    def test_rejects_bool_kind(self, raw):
        raw["kind"] = True
        with pytest.raises(MalformedEventError):
            SignedEvent.from_dict(raw)

    def test_rejects_string_created_at(self, raw):
        raw["created_at"] = "1700000000"
        with pytest.raises(MalformedEventError):
            SignedEvent.from_dict(raw)

    @pytest.mark.parametrize("tags", [[["p", 1]], ["p"], [{"p": "x"}]])
    def test_rejects_bad_tags(self, raw, tags):
        raw["tags"] = tags
        with pytest.raises(MalformedEventError):
            SignedEvent.from_dict(raw)

    def test_tag_helpers(self, raw):
        event = SignedEvent.from_dict({**raw, "tags": [["p", "a"], ["e"], ["p", "b"], ["h", "g"]]})

        assert event.tag_values("p") == ["a", "b"]
        assert event.first_tag_value("p") == "a"
        assert event.first_tag_value("x") is None


# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------


class TestVerifyEventSignature:
    def test_valid_event(self, alice):
        assert verify_event_signature(_signed(alice))

    def test_tampered_content(self, alice):
        event = _signed(alice)
        forged = SignedEvent.from_dict({**event.to_dict(), "content": "bye"})

        assert not verify_event_signature(forged)

    def test_recomputed_id_without_resigning(self, alice):
        event = _signed(alice)
        new_id = compute_event_id(event.pubkey, event.created_at, event.kind, event.tags, "bye")
        forged = SignedEvent.from_dict({**event.to_dict(), "content": "bye", "id": new_id})

        assert not verify_event_signature(forged)

    def test_lone_surrogate_fails_without_raising(self, alice):
        event = _signed(alice)
        forged = SignedEvent.from_dict({**event.to_dict(), "content": "\ud800"})

        assert not verify_event_signature(forged)

    def test_signature_by_other_key(self, alice, mallory):
        event = _signed(alice)
        other = _signed(mallory)
        forged = SignedEvent.from_dict({**event.to_dict(), "sig": other.sig})

        assert not verify_event_signature(forged)

    def test_uppercase_id_is_not_accepted(self, alice):
        event = _signed(alice)
        forged = SignedEvent.from_dict({**event.to_dict(), "id": event.id.upper()})

        assert not verify_event_signature(forged)

    @pytest.mark.parametrize("sig", ["", "zz" * 64, "00" * 10])
    def test_garbage_signature(self, alice, sig):
        forged = SignedEvent.from_dict({**_signed(alice).to_dict(), "sig": sig})

        assert not verify_event_signature(forged)

    def test_garbage_pubkey(self, alice):
        event = _signed(alice)
        forged = SignedEvent.from_dict({**event.to_dict(), "pubkey": "not-a-key"})

        assert not verify_event_signature(forged)


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------


class TestSigning:
    def test_signer_public_key_is_identity(self, alice):
        assert is_identity(alice.public_key_hex)

    def test_from_private_bytes_is_deterministic(self):
        seed = bytes(range(32))

        assert Ed25519Signer.from_private_bytes(seed).public_key_hex == Ed25519Signer.from_private_bytes(seed).public_key_hex

    def test_finalize_event_fields(self, alice):
        event = _signed(alice, content="x", tags=[["h", "g"]])

        assert event.pubkey == alice.public_key_hex
        assert event.kind == MIGRATION_KIND
        assert event.created_at == 1_700_000_000
        assert event.id == compute_event_id(event.pubkey, 1_700_000_000, MIGRATION_KIND, [["h", "g"]], "x")
        assert len(event.sig) == 128

    def test_template_defaults_to_now(self):
        assert EventTemplate(kind=1).created_at > 1_700_000_000
