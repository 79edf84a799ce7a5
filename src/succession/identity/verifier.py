"""Migration event verification.

:class:`MigrationEventVerifier` decides whether a raw event is a legitimate,
bidirectionally bound migration. It is pure: no store access, no I/O, and no
exceptions for bad input. Every rejection is returned as a value and logged.

Checks, in order (first failure wins):

1. outer ``kind`` is 1776
2. outer ``content`` parses as an embedded event (the proof)
3. proof ``kind`` is 1776
4. outer signature verifies against the outer ``pubkey`` (old identity)
5. proof signature verifies against the proof ``pubkey`` (new identity)
6. the outer ``p`` tag names exactly the proof's signer
7. the proof has a ``p`` tag naming the outer event's signer
8. old and new identity differ

Checks 6 and 7 together form the bidirectional binding: a compromised old
key cannot point at a third identity without that identity's signature, and
a proof signed by a new key is useless without the old key's statement.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from typing import Any

from ..core.exceptions import InvalidIdentityError, MalformedEventError
from .events import MIGRATION_KIND, SignedEvent, normalize_identity, verify_event_signature
from .models import (
    MigrationProof,
    MigrationRecord,
    MigrationStatement,
    RejectionReason,
    VerificationResult,
)

logger = logging.getLogger(__name__)


def _short(value: str | None) -> str:
    return f"{value[:12]}…" if value else "<none>"


class MigrationEventVerifier:
    """Validates raw migration events and extracts :class:`MigrationRecord` objects.

    Args:
        clock: Returns the current UNIX time; stamped on accepted records as
            ``observed_at``. Defaults to :func:`time.time`.
    """

    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        self._clock = clock or time.time

    def verify(self, raw: dict[str, Any] | SignedEvent) -> VerificationResult:
        """Verify a raw event.

        Args:
            raw: The event as a JSON-decoded dict or a :class:`SignedEvent`.

        Returns:
            A :class:`VerificationResult` holding the record on success or the
            rejection reason on failure.
        """
        result = self._verify(raw)
        if result.record is not None:
            logger.debug(
                "Valid migration %s -> %s (event %s)",
                _short(result.record.from_identity),
                _short(result.record.to_identity),
                _short(result.record.source_event_id),
            )
        elif result.rejection is not None:
            logger.warning(
                "Rejected migration event %s: %s",
                _short(result.rejection.event_id),
                result.rejection,
            )
        return result

    def parse(self, raw: dict[str, Any] | SignedEvent) -> MigrationStatement | VerificationResult:
        """Structural checks only (steps 1-3).

        Returns the typed statement, or a rejecting result.
        """
        raw_id = raw.id if isinstance(raw, SignedEvent) else _raw_id(raw)

        kind = raw.kind if isinstance(raw, SignedEvent) else _raw_kind(raw)
        if kind != MIGRATION_KIND:
            return VerificationResult.reject(
                RejectionReason.WRONG_KIND, f"kind {kind!r} is not {MIGRATION_KIND}", raw_id
            )

        try:
            outer = raw if isinstance(raw, SignedEvent) else SignedEvent.from_dict(raw)
        except MalformedEventError as e:
            return VerificationResult.reject(RejectionReason.MALFORMED_EVENT, e.message, raw_id)

        try:
            proof_data = json.loads(outer.content)
        except json.JSONDecodeError as e:
            return VerificationResult.reject(RejectionReason.MALFORMED_PROOF, f"invalid proof JSON: {e.msg}", outer.id)
        except RecursionError:
            return VerificationResult.reject(RejectionReason.MALFORMED_PROOF, "proof JSON nested too deeply", outer.id)

        proof_kind = proof_data.get("kind") if isinstance(proof_data, dict) else None
        try:
            proof = SignedEvent.from_dict(proof_data)
        except MalformedEventError as e:
            if isinstance(proof_data, dict) and proof_kind != MIGRATION_KIND:
                return VerificationResult.reject(
                    RejectionReason.PROOF_WRONG_KIND, f"proof kind {proof_kind!r}", outer.id
                )
            return VerificationResult.reject(RejectionReason.MALFORMED_PROOF, e.message, outer.id)

        if proof.kind != MIGRATION_KIND:
            return VerificationResult.reject(
                RejectionReason.PROOF_WRONG_KIND, f"proof kind {proof.kind!r}", outer.id
            )

        return MigrationStatement(event=outer, proof=MigrationProof(event=proof))

    def _verify(self, raw: dict[str, Any] | SignedEvent) -> VerificationResult:
        parsed = self.parse(raw)
        if isinstance(parsed, VerificationResult):
            return parsed
        statement = parsed
        outer = statement.event
        proof = statement.proof.event

        if not verify_event_signature(outer):
            return VerificationResult.reject(
                RejectionReason.INVALID_SIGNATURE, "outer signature does not verify", outer.id
            )
        if not verify_event_signature(proof):
            return VerificationResult.reject(
                RejectionReason.INVALID_PROOF_SIGNATURE, "proof signature does not verify", outer.id
            )

        try:
            old_identity = normalize_identity(statement.old_identity)
            new_identity = normalize_identity(statement.proof.new_identity)
        except InvalidIdentityError as e:
            # bytes.fromhex tolerates whitespace that normalize_identity does not
            return VerificationResult.reject(RejectionReason.MALFORMED_EVENT, e.message, outer.id)

        claimed = statement.claimed_identity
        if claimed is None or _normalized_or_none(claimed) != new_identity:
            return VerificationResult.reject(
                RejectionReason.TAG_MISMATCH,
                f"claims {_short(claimed)} but proof signed by {_short(new_identity)}",
                outer.id,
            )

        acknowledged = {_normalized_or_none(v) for v in statement.proof.acknowledged_identities}
        if old_identity not in acknowledged:
            return VerificationResult.reject(
                RejectionReason.PROOF_NOT_BOUND,
                f"proof does not point back to {_short(old_identity)}",
                outer.id,
            )

        if old_identity == new_identity:
            return VerificationResult.reject(RejectionReason.SELF_MIGRATION, "identity migrates to itself", outer.id)

        return VerificationResult.accept(
            MigrationRecord(
                from_identity=old_identity,
                to_identity=new_identity,
                observed_at=self._clock(),
                source_event_id=outer.id,
                created_at=outer.created_at,
                scopes=statement.scopes,
            )
        )


def _normalized_or_none(value: str) -> str | None:
    try:
        return normalize_identity(value)
    except InvalidIdentityError:
        return None


def _raw_kind(raw: Any) -> Any:
    return raw.get("kind") if isinstance(raw, dict) else None


def _raw_id(raw: Any) -> str | None:
    value = raw.get("id") if isinstance(raw, dict) else None
    return value if isinstance(value, str) else None
