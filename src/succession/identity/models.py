"""Migration data model.

A migration is two nested signed events of kind 1776:

- :class:`MigrationProof` — signed by the *new* identity, tagged
  ``["p", <old>]``. It acknowledges which old identity it succeeds.
- :class:`MigrationStatement` — signed by the *old* identity, tagged
  ``["p", <new>]``, with the complete proof JSON as its content.

Both signatures are required, so neither key holder can redirect an identity
alone. A statement that passes verification yields an immutable
:class:`MigrationRecord`.
"""

from __future__ import annotations

import enum
import time
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from .events import (
    MIGRATION_KIND,
    EventTemplate,
    SignedEvent,
    Signer,
    finalize_event,
    normalize_identity,
)

# Identities are lowercase-hex strings (see normalize_identity)
Identity = str

SCOPE_TAG = "h"
BINDING_TAG = "p"


# ---------------------------------------------------------------------------
# Typed views over the two nested events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MigrationProof:
    """The new identity's signed acknowledgment (the inner event)."""

    event: SignedEvent

    @property
    def new_identity(self) -> str:
        return self.event.pubkey

    @property
    def acknowledged_identities(self) -> list[str]:
        return self.event.tag_values(BINDING_TAG)


@dataclass(frozen=True)
class MigrationStatement:
    """The old identity's signed migration claim (the outer event)."""

    event: SignedEvent
    proof: MigrationProof

    @property
    def old_identity(self) -> str:
        return self.event.pubkey

    @property
    def claimed_identity(self) -> str | None:
        return self.event.first_tag_value(BINDING_TAG)

    @property
    def scopes(self) -> tuple[str, ...]:
        return tuple(self.event.tag_values(SCOPE_TAG))


# ---------------------------------------------------------------------------
# MigrationRecord
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MigrationRecord:
    """A verified ``from -> to`` migration.

    Attributes:
        from_identity: The old identity (outer event author).
        to_identity: The new identity (proof author).
        observed_at: UNIX timestamp when this process accepted the event.
        source_event_id: Id of the outer migration event.
        created_at: ``created_at`` of the outer event, used to order
            competing migrations of the same identity.
        scopes: Group/community scopes the migration was tagged with.
    """

    from_identity: Identity
    to_identity: Identity
    observed_at: float
    source_event_id: str
    created_at: int = 0
    scopes: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "from": self.from_identity,
            "to": self.to_identity,
            "observed_at": self.observed_at,
            "source_event_id": self.source_event_id,
            "created_at": self.created_at,
            "scopes": list(self.scopes),
        }


# ---------------------------------------------------------------------------
# Verification outcome
# ---------------------------------------------------------------------------


class RejectionCategory(enum.StrEnum):
    MALFORMED = "malformed"
    CRYPTOGRAPHIC = "cryptographic"
    BINDING = "binding"


class RejectionReason(enum.StrEnum):
    """Why a raw event was not accepted as a migration."""

    MALFORMED_EVENT = "malformed_event"
    WRONG_KIND = "wrong_kind"
    MALFORMED_PROOF = "malformed_proof"
    PROOF_WRONG_KIND = "proof_wrong_kind"
    INVALID_SIGNATURE = "invalid_signature"
    INVALID_PROOF_SIGNATURE = "invalid_proof_signature"
    TAG_MISMATCH = "tag_mismatch"
    PROOF_NOT_BOUND = "proof_not_bound"
    SELF_MIGRATION = "self_migration"

    @property
    def category(self) -> RejectionCategory:
        if self in (RejectionReason.INVALID_SIGNATURE, RejectionReason.INVALID_PROOF_SIGNATURE):
            return RejectionCategory.CRYPTOGRAPHIC
        if self in (
            RejectionReason.TAG_MISMATCH,
            RejectionReason.PROOF_NOT_BOUND,
            RejectionReason.SELF_MIGRATION,
        ):
            return RejectionCategory.BINDING
        return RejectionCategory.MALFORMED


@dataclass(frozen=True)
class Rejection:
    reason: RejectionReason
    detail: str = ""
    event_id: str | None = None

    @property
    def category(self) -> RejectionCategory:
        return self.reason.category

    def __str__(self) -> str:
        return f"{self.reason.value}: {self.detail}" if self.detail else self.reason.value


@dataclass(frozen=True)
class VerificationResult:
    """Either an accepted :class:`MigrationRecord` or a :class:`Rejection`."""

    record: MigrationRecord | None = None
    rejection: Rejection | None = None

    @property
    def accepted(self) -> bool:
        return self.record is not None

    @classmethod
    def accept(cls, record: MigrationRecord) -> VerificationResult:
        return cls(record=record)

    @classmethod
    def reject(
        cls,
        reason: RejectionReason,
        detail: str = "",
        event_id: str | None = None,
    ) -> VerificationResult:
        return cls(rejection=Rejection(reason=reason, detail=detail, event_id=event_id))


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def _scope_tags(scopes: Iterable[str]) -> list[list[str]]:
    return [[SCOPE_TAG, scope] for scope in scopes]


def build_proof_event(
    new_signer: Signer,
    old_identity: str,
    scopes: Iterable[str] = (),
    created_at: int | None = None,
) -> SignedEvent:
    """Create the proof signed by the new identity, pointing back at the old one."""
    template = EventTemplate(
        kind=MIGRATION_KIND,
        content="",
        tags=[[BINDING_TAG, normalize_identity(old_identity)], *_scope_tags(scopes)],
        created_at=created_at if created_at is not None else int(time.time()),
    )
    return finalize_event(template, new_signer)


def build_migration_event(
    old_signer: Signer,
    proof: SignedEvent,
    scopes: Iterable[str] = (),
    created_at: int | None = None,
) -> SignedEvent:
    """Wrap an already signed proof in a statement signed by the old identity.

    The proof may have been signed anywhere (another device, an external
    signer); only its public key is needed here.
    """
    template = EventTemplate(
        kind=MIGRATION_KIND,
        content=proof.to_json(),
        tags=[[BINDING_TAG, normalize_identity(proof.pubkey)], *_scope_tags(scopes)],
        created_at=created_at if created_at is not None else int(time.time()),
    )
    return finalize_event(template, old_signer)


def create_migration_event(
    old_signer: Signer,
    new_signer: Signer,
    scopes: Iterable[str] = (),
    created_at: int | None = None,
) -> SignedEvent:
    """Create a complete, doubly signed migration from ``old_signer`` to ``new_signer``."""
    scopes = list(scopes)
    proof = build_proof_event(new_signer, old_signer.public_key_hex, scopes, created_at=created_at)
    return build_migration_event(old_signer, proof, scopes, created_at=created_at)
