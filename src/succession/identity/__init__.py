"""Identity migration: events, verification, storage and resolution.

Example:
    >>> from succession.identity import Ed25519Signer, MigrationService
    >>> old, new = Ed25519Signer.generate(), Ed25519Signer.generate()
    >>> service = MigrationService()
    >>> event = service.create_migration_event(old, new, scopes=["group-1"])
    >>> service.ingest(event).applied
    True
    >>> service.resolver.resolve_identity(old.public_key_hex) == new.public_key_hex
    True
"""

from .events import (
    MIGRATION_KIND,
    Ed25519Signer,
    EventTemplate,
    SignedEvent,
    Signer,
    compute_event_id,
    finalize_event,
    is_identity,
    normalize_identity,
    verify_event_signature,
)
from .lazy_fetch import LazyFetchCoordinator
from .models import (
    BINDING_TAG,
    SCOPE_TAG,
    Identity,
    MigrationProof,
    MigrationRecord,
    MigrationStatement,
    Rejection,
    RejectionCategory,
    RejectionReason,
    VerificationResult,
    build_migration_event,
    build_proof_event,
    create_migration_event,
)
from .pending import PendingMigration, PendingMigrationTracker
from .resolver import IdentityResolver
from .service import IngestResult, MigrationService
from .store import (
    InMemoryMappingBackend,
    JSONFileMappingBackend,
    MappingBackend,
    MigrationStore,
)
from .verifier import MigrationEventVerifier

__all__ = [
    # Events
    "MIGRATION_KIND",
    "Ed25519Signer",
    "EventTemplate",
    "SignedEvent",
    "Signer",
    "compute_event_id",
    "finalize_event",
    "is_identity",
    "normalize_identity",
    "verify_event_signature",
    # Models
    "BINDING_TAG",
    "SCOPE_TAG",
    "Identity",
    "MigrationProof",
    "MigrationRecord",
    "MigrationStatement",
    "Rejection",
    "RejectionCategory",
    "RejectionReason",
    "VerificationResult",
    "build_migration_event",
    "build_proof_event",
    "create_migration_event",
    # Engine
    "IdentityResolver",
    "IngestResult",
    "InMemoryMappingBackend",
    "JSONFileMappingBackend",
    "LazyFetchCoordinator",
    "MappingBackend",
    "MigrationEventVerifier",
    "MigrationService",
    "MigrationStore",
    "PendingMigration",
    "PendingMigrationTracker",
]
