"""
Error taxonomy for the board mutation engine and the state codec.

    ValidationError      - invalid drop target or malformed intent; no state change
    ConcurrencyConflict  - entity already has an unresolved persistence call
    PersistenceFailure   - backend rejected or timed out after an optimistic commit
    SerializationError   - corrupt, wrong-format or incompatible persisted blob
"""
from typing import Optional


class BoardError(Exception):
    """Base class for every repoboard error."""
    pass


class ConfigError(BoardError):
    """Raised when configuration is invalid or incomplete."""
    pass


class ValidationError(BoardError):
    """Raised when a drop target or intent is invalid. Nothing was mutated."""
    pass


class ConcurrencyConflict(BoardError):
    """Raised under the reject policy when an entity has a write in flight."""

    def __init__(self, entity_kind: str, entity_id: str):
        super().__init__(
            f"{entity_kind} {entity_id} has an unresolved persistence call"
        )
        self.entity_kind = entity_kind
        self.entity_id = entity_id


class PersistenceFailure(BoardError):
    """
    Backend rejected (or timed out on) an optimistically committed change.

    Never raised into intent callers: the engine recovers and publishes
    this on its event channel. `recovered` is "rollback" or "resync".
    """

    def __init__(
        self,
        entity_kind: str,
        entity_id: str,
        reason: str = "",
        recovered: Optional[str] = None,
    ):
        super().__init__(
            f"Failed to persist {entity_kind} {entity_id}: {reason or 'rejected'}"
        )
        self.entity_kind = entity_kind
        self.entity_id = entity_id
        self.reason = reason
        self.recovered = recovered


class SerializationError(BoardError):
    """Raised when a state blob cannot be encoded or decoded."""
    pass


class BackendUnavailableError(SerializationError):
    """Raised when the compression backend module cannot be imported."""
    pass


class BackendNotLoadedError(SerializationError):
    """Raised when the codec is used before init() completed."""
    pass
