"""Signed event primitives.

An event is a JSON object ``{id, pubkey, created_at, kind, tags, content,
sig}``. The ``id`` is the SHA-256 of the compact serialization
``[0, pubkey, created_at, kind, tags, content]`` and ``sig`` is an Ed25519
signature by ``pubkey`` over the raw id bytes. Identities are 32-byte
public keys in lowercase hex.
"""

from __future__ import annotations

import hashlib
import json
import re
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from ..core.exceptions import InvalidIdentityError, MalformedEventError

MIGRATION_KIND = 1776

_IDENTITY_RE = re.compile(r"^[0-9a-f]{64}$")


def normalize_identity(value: Any) -> str:
    """Return the canonical lowercase-hex form of an identity.

    Raises:
        InvalidIdentityError: If ``value`` is not 64 hex characters.
    """
    if not isinstance(value, str):
        raise InvalidIdentityError(value)
    normalized = value.strip().lower()
    if not _IDENTITY_RE.match(normalized):
        raise InvalidIdentityError(value)
    return normalized


def is_identity(value: Any) -> bool:
    try:
        normalize_identity(value)
    except InvalidIdentityError:
        return False
    return True


def serialize_for_id(
    pubkey: str,
    created_at: int,
    kind: int,
    tags: Sequence[Sequence[str]],
    content: str,
) -> bytes:
    """Compact, whitespace-free serialization that the event id commits to."""
    return json.dumps(
        [0, pubkey, created_at, kind, [list(t) for t in tags], content],
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def compute_event_id(
    pubkey: str,
    created_at: int,
    kind: int,
    tags: Sequence[Sequence[str]],
    content: str,
) -> str:
    return hashlib.sha256(serialize_for_id(pubkey, created_at, kind, tags, content)).hexdigest()


# ---------------------------------------------------------------------------
# SignedEvent
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SignedEvent:
    """An immutable signed event as seen on the wire."""

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: tuple[tuple[str, ...], ...]
    content: str
    sig: str

    # -- tag helpers --

    def tag_values(self, name: str) -> list[str]:
        """Return the first value of every tag called ``name``, in order."""
        return [t[1] for t in self.tags if len(t) >= 2 and t[0] == name]

    def first_tag_value(self, name: str) -> str | None:
        values = self.tag_values(name)
        return values[0] if values else None

    # -- serialisation --

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(t) for t in self.tags],
            "content": self.content,
            "sig": self.sig,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Any) -> SignedEvent:
        """Build an event from untrusted input.

        Only the shape is checked here; signatures are checked by
        :func:`verify_event_signature`.

        Raises:
            MalformedEventError: If a field is missing or has the wrong type.
        """
        if not isinstance(data, dict):
            raise MalformedEventError(f"Event must be an object, got {type(data).__name__}")

        for name in ("id", "pubkey", "content", "sig"):
            if not isinstance(data.get(name), str):
                raise MalformedEventError(f"Event field {name!r} must be a string", field=name)
        for name in ("created_at", "kind"):
            value = data.get(name)
            # bool is an int subclass; reject it explicitly
            if not isinstance(value, int) or isinstance(value, bool):
                raise MalformedEventError(f"Event field {name!r} must be an integer", field=name)

        raw_tags = data.get("tags")
        if not isinstance(raw_tags, list):
            raise MalformedEventError("Event field 'tags' must be a list", field="tags")
        tags: list[tuple[str, ...]] = []
        for tag in raw_tags:
            if not isinstance(tag, list) or not all(isinstance(v, str) for v in tag):
                raise MalformedEventError("Every tag must be a list of strings", field="tags")
            tags.append(tuple(tag))

        return cls(
            id=data["id"],
            pubkey=data["pubkey"],
            created_at=data["created_at"],
            kind=data["kind"],
            tags=tuple(tags),
            content=data["content"],
            sig=data["sig"],
        )

    @classmethod
    def from_json(cls, raw: str) -> SignedEvent:
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            raise MalformedEventError(f"Event is not valid JSON: {e}") from e
        except RecursionError as e:
            raise MalformedEventError("Event JSON is nested too deeply") from e
        return cls.from_dict(data)


def verify_event_signature(event: SignedEvent) -> bool:
    """Check that ``event.id`` matches its content and ``event.sig`` is valid.

    Returns:
        ``True`` if both hold, ``False`` otherwise. Never raises.
    """
    try:
        expected_id = compute_event_id(event.pubkey, event.created_at, event.kind, event.tags, event.content)
    except UnicodeEncodeError:
        # Lone surrogates decode from JSON but have no UTF-8 form to hash
        return False
    if expected_id != event.id:
        return False

    try:
        public_key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(event.pubkey))
        public_key.verify(bytes.fromhex(event.sig), bytes.fromhex(expected_id))
    except (InvalidSignature, ValueError):
        return False
    return True


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------


class Signer(Protocol):
    """Signing capability supplied by the caller.

    Key storage is the caller's concern; the engine only needs the public
    key and a way to sign a 32-byte event id.
    """

    @property
    def public_key_hex(self) -> str: ...

    def sign(self, message: bytes) -> bytes: ...


class Ed25519Signer:
    """:class:`Signer` backed by an in-process Ed25519 private key."""

    def __init__(self, private_key: Ed25519PrivateKey | None = None) -> None:
        self._private_key = private_key or Ed25519PrivateKey.generate()
        raw = self._private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        self._public_key_hex = raw.hex()

    @classmethod
    def generate(cls) -> Ed25519Signer:
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_private_bytes(cls, data: bytes) -> Ed25519Signer:
        return cls(Ed25519PrivateKey.from_private_bytes(data))

    @property
    def public_key_hex(self) -> str:
        return self._public_key_hex

    def sign(self, message: bytes) -> bytes:
        return self._private_key.sign(message)


@dataclass
class EventTemplate:
    """An unsigned event."""

    kind: int
    content: str = ""
    tags: list[list[str]] = field(default_factory=list)
    created_at: int = field(default_factory=lambda: int(time.time()))


def finalize_event(template: EventTemplate, signer: Signer) -> SignedEvent:
    """Compute the id of ``template`` and sign it with ``signer``."""
    pubkey = normalize_identity(signer.public_key_hex)
    event_id = compute_event_id(pubkey, template.created_at, template.kind, template.tags, template.content)
    sig = signer.sign(bytes.fromhex(event_id))
    return SignedEvent(
        id=event_id,
        pubkey=pubkey,
        created_at=template.created_at,
        kind=template.kind,
        tags=tuple(tuple(t) for t in template.tags),
        content=template.content,
        sig=sig.hex(),
    )
