"""
Undo history: bounded, most-recent-first stack of MutationRecords.

Single direction: popping a record for undo never produces a redo entry.
When the stack is full the oldest record falls off the tail.
"""
from collections import deque
from typing import Iterable, List, Optional

from .schema import MutationRecord

DEFAULT_DEPTH = 10


class UndoHistory:
    """Stack of inverse operations owned by one BoardEngine."""

    def __init__(self, depth: int = DEFAULT_DEPTH):
        if depth < 1:
            raise ValueError(f"Undo depth must be >= 1, got {depth}")
        self.depth = depth
        # left end = most recent
        self._records: deque = deque(maxlen=depth)

    def push(self, record: MutationRecord) -> None:
        # appendleft on a full deque drops the rightmost (oldest) entry
        self._records.appendleft(record)

    def pop(self) -> Optional[MutationRecord]:
        """Most recent record, or None when there is nothing to undo."""
        if not self._records:
            return None
        return self._records.popleft()

    def peek(self) -> Optional[MutationRecord]:
        return self._records[0] if self._records else None

    def discard(self, seq: int) -> bool:
        """Drop the record with sequence number `seq` (e.g. after a rollback)."""
        for record in self._records:
            if record.seq == seq:
                self._records.remove(record)
                return True
        return False

    def discard_touching(self, entity_ids: Iterable[str]) -> int:
        """Drop every record that touches one of `entity_ids`. Returns how many."""
        ids = set(entity_ids)
        stale = [r for r in self._records if ids.intersection(r.entity_ids)]
        for record in stale:
            self._records.remove(record)
        return len(stale)

    def clear(self) -> None:
        self._records.clear()

    @property
    def can_undo(self) -> bool:
        return bool(self._records)

    def records(self) -> List[MutationRecord]:
        """Snapshot, most recent first."""
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)
