"""
BoardEngine: coordinates drags, optimistic commits and reconciliation.

Lifecycle of a drop:
  Idle → Dragging (preview only) → Committing (state already updated,
  writes in flight) → Reconciled | RolledBack

All state changes run synchronously inside the intent call. The only
asynchronous parts are the outbound writes, each an asyncio.Task with an
explicit continuation (_on_write_done) that either confirms the value into
the authoritative snapshot or recovers:

  rollback - the failed drop's inverse is applied as a fresh mutation when
             nothing later touched any of its entities
  resync   - otherwise the entity is restored from the authoritative
             snapshot; if that would break an invariant the whole board is
             restored and outstanding writes are abandoned

Writes are serialized per entity. Under the "collapse" policy a drop on an
entity with a write in flight is committed locally at once and its write
queued; a newer drop replaces the queued write. Under "reject" such a drop
raises ConcurrencyConflict before anything changes.

Intents must be called from inside a running asyncio event loop; outside
one they raise ValidationError before touching any state.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from . import grid, ordering, reducer
from .config import EngineConfig
from .errors import BoardError, ConcurrencyConflict, PersistenceFailure, ValidationError
from .history import UndoHistory
from .schema import (
    CARD_FIELDS,
    COLUMN_FIELDS,
    Card,
    DropDescriptor,
    GridTarget,
    MutationKind,
    MutationRecord,
    StatusColumn,
)
from .state import BoardState
from .store import BoardGateway
from .wip import wip_violations

logger = logging.getLogger(__name__)

EntityKey = Tuple[str, str]   # ("card" | "column", id)


class Phase(Enum):
    """Where the engine is in the drag/commit lifecycle."""
    IDLE = "idle"
    DRAGGING = "dragging"
    COMMITTING = "committing"
    RECONCILED = "reconciled"
    ROLLED_BACK = "rolled_back"


@dataclass
class MutationResult:
    """What an intent hands back, synchronously."""
    state: BoardState
    record: Optional[MutationRecord] = None
    wip_violations: List[str] = field(default_factory=list)
    message: str = ""

    @property
    def committed(self) -> bool:
        return self.record is not None


@dataclass
class PendingWrite:
    """One outbound positional write for one entity."""
    entity_kind: str
    entity_id: str
    values: Dict[str, Any]
    seq: int
    generation: int

    @property
    def key(self) -> EntityKey:
        return (self.entity_kind, self.entity_id)


@dataclass
class _Commit:
    record: MutationRecord
    origin: str                 # "drop" | "undo" | "rollback"
    outstanding: int = 0


class BoardEngine:
    """Owns the board state, undo history and authoritative snapshot."""

    def __init__(
        self,
        state: BoardState,
        gateway: BoardGateway,
        config: Optional[EngineConfig] = None,
    ):
        self.config = config or EngineConfig()
        self.config.validate()
        self.gateway = gateway
        self.state = state
        self.history = UndoHistory(self.config.undo_depth)
        self.phase = Phase.IDLE
        self.wip_warnings: Set[str] = set()
        self.last_error: Optional[BoardError] = None

        self._authoritative = state
        self._dragging: Optional[str] = None
        self._seq = 0
        self._generation = 0
        self._batch_failed = False
        self._commits: Dict[int, _Commit] = {}
        self._last_touch: Dict[EntityKey, int] = {}
        self._in_flight: Dict[EntityKey, asyncio.Task] = {}
        self._queued: Dict[EntityKey, PendingWrite] = {}
        self._tasks: Set[asyncio.Task] = set()
        self.subscribers: Dict[str, list] = {}

        self._refresh_wip(self.state.columns.keys())

    # ── event channel ───────────────────────────────────────

    def subscribe(self, event_type: str, callback: Callable) -> None:
        """Register a callback for an event type."""
        self.subscribers.setdefault(event_type, []).append(callback)

    def _emit(self, event_type: str, **kwargs) -> None:
        for callback in self.subscribers.get(event_type, []):
            try:
                callback(**kwargs)
            except Exception as e:
                logger.error(f"Error in {event_type} callback: {e}")

    # ── drag lifecycle ──────────────────────────────────────

    def begin_drag(self, entity_id: str) -> None:
        if entity_id not in self.state.cards and entity_id not in self.state.columns:
            raise ValidationError(f"Nothing to drag with id {entity_id}")
        self._dragging = entity_id
        self.phase = Phase.DRAGGING

    def drag_over_column(self, column_id: str, drop: DropDescriptor) -> Optional[GridTarget]:
        """Preview where a column would land. Never mutates state."""
        column = self.state.columns.get(column_id)
        if column is None:
            return None
        try:
            return grid.resolve_drop_target(
                self.state.columns_on_board(column.board_id), column_id, drop
            )
        except ValidationError:
            return None

    def drag_over_card(self, card_id: str, dest_status_id: str, dest_index: int) -> Optional[float]:
        """Preview the rank a card would get. Never mutates state."""
        if card_id not in self.state.cards or dest_status_id not in self.state.columns:
            return None
        siblings = [c for c in self.state.cards_in_column(dest_status_id) if c.card_id != card_id]
        try:
            rank, _ = ordering.rank_for_index(siblings, dest_index)
        except ValidationError:
            return None
        return rank

    def cancel_drag(self) -> MutationResult:
        """Drag ended outside any target: no change, no record, no write."""
        self._dragging = None
        self._settle_phase()
        return MutationResult(self.state, message="Drag cancelled")

    # ── intents ─────────────────────────────────────────────

    def move_card(self, card_id: str, dest_status_id: str, dest_index: int) -> MutationResult:
        """Drop a card at `dest_index` of `dest_status_id`."""
        self._require_loop()
        self._dragging = None
        next_state, record = reducer.move_card(
            self.state, card_id, dest_status_id, dest_index,
            self.config.compaction_threshold,
        )
        if record is None:
            self._settle_phase()
            return MutationResult(self.state, message="No change")
        self._check_conflicts(record)
        return self._commit(next_state, record, origin="drop")

    def reorder_column(self, column_id: str, drop: DropDescriptor) -> MutationResult:
        """Drop a column on a grid cell, an insert gap or the new-row zone."""
        self._require_loop()
        self._dragging = None
        next_state, record, target = reducer.reorder_column(self.state, column_id, drop)
        if record is None:
            self._settle_phase()
            return MutationResult(self.state, message="No change")
        self._check_conflicts(record)
        result = self._commit(next_state, record, origin="drop")
        result.message = f"Column {column_id}: {target.kind} -> ({target.grid_row}, {target.grid_col})"
        return result

    def undo(self) -> MutationResult:
        """Revert the most recent committed drop. Reports a no-op when empty."""
        self._require_loop()
        record = self.history.pop()
        if record is None:
            logger.info("Nothing to undo")
            return MutationResult(self.state, message="Nothing to undo")
        try:
            self._check_conflicts(record)
        except ConcurrencyConflict:
            self.history.push(record)
            raise
        next_state, reversal = reducer.apply_inverse(self.state, record)
        if reversal is None:
            return MutationResult(self.state, message="Nothing to undo")
        result = self._commit(next_state, reversal, origin="undo", push_history=False)
        result.message = "Operation undone"
        logger.info(f"Undid {record.kind.value} #{record.seq} ({len(reversal.entity_ids)} entities)")
        self._emit("undone", record=record, reversal=reversal)
        return result

    def set_cards(self, cards: List[Card]) -> MutationResult:
        """Replace all cards with an authoritative list."""
        self.state = self.state.clone()
        self.state.cards = {c.card_id: c for c in cards}
        return self._resynced("cards")

    def set_columns(self, columns: List[StatusColumn]) -> MutationResult:
        """Replace all columns with an authoritative list."""
        self.state = self.state.clone()
        self.state.columns = {c.column_id: c for c in columns}
        return self._resynced("columns")

    async def drain(self) -> None:
        """Wait until every outstanding write (including queued ones) resolved."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def authoritative(self) -> BoardState:
        return self._authoritative

    def has_pending_writes(self, entity_id: Optional[str] = None) -> bool:
        if entity_id is None:
            return bool(self._in_flight or self._queued)
        return any(k[1] == entity_id for k in list(self._in_flight) + list(self._queued))

    # ── commit ──────────────────────────────────────────────

    def _require_loop(self) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError as e:
            raise ValidationError("Intents must be called from inside a running event loop") from e

    def _check_conflicts(self, record: MutationRecord) -> None:
        if self.config.conflict_policy != "reject":
            return
        for eid in record.entity_ids:
            key = (record.entity_kind, eid)
            if key in self._in_flight or key in self._queued:
                logger.warning(f"Rejected drop: {record.entity_kind} {eid} has a write in flight")
                raise ConcurrencyConflict(record.entity_kind, eid)

    def _commit(
        self,
        next_state: BoardState,
        record: MutationRecord,
        origin: str,
        push_history: bool = True,
        skip_write: Optional[Set[str]] = None,
    ) -> MutationResult:
        self._seq += 1
        record.seq = self._seq
        self.state = next_state
        commit = _Commit(record, origin)
        self._commits[record.seq] = commit
        if push_history:
            self.history.push(record)

        for eid in record.entity_ids:
            self._last_touch[(record.entity_kind, eid)] = record.seq
            if skip_write and eid in skip_write:
                continue
            self._schedule(PendingWrite(
                record.entity_kind, eid, dict(record.after[eid]),
                record.seq, self._generation,
            ))
        if commit.outstanding == 0:
            del self._commits[record.seq]

        logger.info(
            f"Committed {record.kind.value} #{record.seq} ({origin}): "
            f"{record.entity_kind}s {record.entity_ids}"
        )
        self._emit("committed", record=record, origin=origin)
        flagged = self._refresh_wip(self._affected_columns(record))
        self._settle_phase()
        return MutationResult(self.state, record, flagged)

    def _affected_columns(self, record: MutationRecord) -> Set[str]:
        if record.entity_kind == "column":
            return set()
        affected = set()
        for values in list(record.before.values()) + list(record.after.values()):
            if "status_id" in values:
                affected.add(values["status_id"])
        return affected

    def _refresh_wip(self, column_ids) -> List[str]:
        column_ids = list(column_ids)
        flagged = wip_violations(self.state, column_ids)
        for column_id in column_ids:
            if column_id in flagged:
                if column_id not in self.wip_warnings:
                    column = self.state.columns[column_id]
                    count = self.state.card_count(column_id)
                    logger.warning(
                        f"WIP limit exceeded in {column.title}: {count}/{column.wip_limit}"
                    )
                    self._emit("wip_exceeded", column_id=column_id, count=count, limit=column.wip_limit)
                self.wip_warnings.add(column_id)
            else:
                self.wip_warnings.discard(column_id)
        return flagged

    # ── writes ──────────────────────────────────────────────

    def _schedule(self, write: PendingWrite) -> None:
        self._commits[write.seq].outstanding += 1
        if write.key in self._in_flight:
            replaced = self._queued.get(write.key)
            if replaced is not None:
                self._release(replaced.seq)
            self._queued[write.key] = write
            logger.info(f"Queued write for {write.entity_kind} {write.entity_id} (#{write.seq})")
            return
        self._start(write)

    def _start(self, write: PendingWrite) -> None:
        task = asyncio.get_running_loop().create_task(self._persist(write))
        self._in_flight[write.key] = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _persist(self, write: PendingWrite) -> None:
        reason = ""
        try:
            ok = await asyncio.wait_for(self._call(write), self.config.persist_timeout_secs)
            if not ok:
                reason = "rejected by backend"
        except asyncio.TimeoutError:
            ok = False
            reason = f"timed out after {self.config.persist_timeout_secs}s"
        except asyncio.CancelledError:
            raise
        except Exception as e:
            ok = False
            reason = str(e) or e.__class__.__name__
        self._on_write_done(write, bool(ok), reason)

    def _call(self, write: PendingWrite):
        v = write.values
        if write.entity_kind == "card":
            return self.gateway.persist_card_move(write.entity_id, v["status_id"], v["order"])
        return self.gateway.persist_column_grid(write.entity_id, v["grid_row"], v["grid_col"])

    def _on_write_done(self, write: PendingWrite, ok: bool, reason: str) -> None:
        if write.generation != self._generation:
            logger.info(f"Ignoring outcome of stale write for {write.entity_kind} {write.entity_id}")
            return
        if self._in_flight.get(write.key) is asyncio.current_task():
            del self._in_flight[write.key]

        if ok:
            self._confirm(write)
        else:
            self._recover(write, reason)
        self._release(write.seq)

        queued = self._queued.pop(write.key, None)
        if queued is not None and queued.generation == self._generation:
            self._start(queued)
        self._settle_phase()

    def _release(self, seq: int) -> None:
        commit = self._commits.get(seq)
        if commit is None:
            return
        commit.outstanding -= 1
        if commit.outstanding <= 0:
            del self._commits[seq]

    def _confirm(self, write: PendingWrite) -> None:
        snapshot = self._authoritative.clone()
        if write.entity_kind == "card" and write.entity_id in snapshot.cards:
            snapshot.with_card(write.entity_id, **write.values)
        elif write.entity_kind == "column" and write.entity_id in snapshot.columns:
            snapshot.with_column(write.entity_id, **write.values)
        self._authoritative = snapshot
        self._emit("persisted", entity_kind=write.entity_kind, entity_id=write.entity_id)

    # ── recovery ────────────────────────────────────────────

    def _recover(self, write: PendingWrite, reason: str) -> None:
        self._batch_failed = True
        logger.error(f"Failed to persist {write.entity_kind} {write.entity_id}: {reason}")

        discarded = self._queued.pop(write.key, None)
        if discarded is not None:
            self._release(discarded.seq)

        if discarded is None and self._try_rollback(write):
            recovered = "rollback"
        else:
            self._resync_entity(write)
            recovered = "resync"

        error = PersistenceFailure(write.entity_kind, write.entity_id, reason, recovered)
        self.last_error = error
        self._emit("persistence_failed", error=error)

    def _try_rollback(self, write: PendingWrite) -> bool:
        """Apply the failed drop's inverse when nothing touched its entities since."""
        commit = self._commits.get(write.seq)
        if commit is None or commit.origin == "rollback":
            return False
        record = commit.record
        for eid in record.entity_ids:
            if self._last_touch.get((record.entity_kind, eid)) != record.seq:
                return False
        try:
            next_state, reversal = reducer.apply_inverse(self.state, record)
        except ValidationError:
            return False

        self.history.discard(record.seq)
        if reversal is not None:
            skip = set()
            restored = reversal.after.get(write.entity_id)
            if restored == record.before.get(write.entity_id):
                # the backend never accepted the failed value, nothing to write back
                skip.add(write.entity_id)
            self._commit(next_state, reversal, origin="rollback", push_history=False, skip_write=skip)
        logger.warning(f"Rolled back {record.kind.value} #{record.seq}")
        self._emit("rolled_back", record=record)
        return True

    def _resync_entity(self, write: PendingWrite) -> None:
        """Restore one entity from the authoritative snapshot, or the whole board."""
        kind, eid = write.key
        pool = self._authoritative.cards if kind == "card" else self._authoritative.columns
        self.history.discard_touching([eid])
        entity = pool.get(eid)
        if entity is not None:
            fields = CARD_FIELDS if kind == "card" else COLUMN_FIELDS
            values = {eid: {f: getattr(entity, f) for f in fields}}
            try:
                next_state, record = reducer.apply_values(
                    self.state, kind, self._kind_for(write), values
                )
            except ValidationError:
                record, next_state = None, None
            else:
                if record is None or record.entity_ids == [eid]:
                    self.state = next_state
                    self._last_touch[write.key] = self._seq
                    self._refresh_wip(self.state.columns.keys())
                    logger.warning(f"Resynced {kind} {eid} from last authoritative snapshot")
                    self._emit("resynced", scope=kind, entity_id=eid, stale=False)
                    return
        self._resync_board()

    def _kind_for(self, write: PendingWrite):
        commit = self._commits.get(write.seq)
        if commit is not None:
            return commit.record.kind
        return MutationKind.MOVE_CARD if write.entity_kind == "card" else MutationKind.REORDER_COLUMN

    def _resync_board(self) -> None:
        """Discard all optimistic state. Outstanding writes are abandoned."""
        logger.warning("Restoring whole board from last authoritative snapshot")
        self.state = self._repaired(self._authoritative.clone())
        self._reset_tracking()
        self._emit("resynced", scope="board", entity_id=None, stale=True)

    def _repaired(self, state: BoardState) -> BoardState:
        """Settle rank ties and shared cells left behind by partly confirmed drops."""
        broken_columns = state.check_order_totality()
        if broken_columns:
            # an empty value set still compacts every column holding a tie
            state, _ = reducer.apply_values(state, "card", MutationKind.MOVE_CARD, {})
            logger.warning(f"Compacted {broken_columns} after restoring the board")
        if state.check_grid_uniqueness():
            moves: Dict[str, grid.Cell] = {}
            for board_id in {c.board_id for c in state.columns.values()}:
                moves.update(grid.spread_collisions(state.columns_on_board(board_id)))
            values = {cid: {"grid_row": r, "grid_col": c} for cid, (r, c) in moves.items()}
            state, _ = reducer.apply_values(state, "column", MutationKind.REORDER_COLUMN, values)
            logger.warning(f"Moved {sorted(moves)} off shared cells after restoring the board")
        return state

    def _resynced(self, scope: str) -> MutationResult:
        self._authoritative = self.state.clone()
        self._reset_tracking()
        self.phase = Phase.IDLE
        logger.info(
            f"Resynced {scope} from authoritative source "
            f"({len(self.state.columns)} columns, {len(self.state.cards)} cards)"
        )
        self._emit("resynced", scope=scope, entity_id=None, stale=False)
        return MutationResult(self.state, None, sorted(self.wip_warnings), message=f"Replaced {scope}")

    def _reset_tracking(self) -> None:
        self._generation += 1
        self.history.clear()
        self._commits.clear()
        self._last_touch.clear()
        self._in_flight.clear()
        self._queued.clear()
        self.wip_warnings.clear()
        self._refresh_wip(self.state.columns.keys())

    # ── phase ───────────────────────────────────────────────

    def _settle_phase(self) -> None:
        if self._dragging is not None:
            self.phase = Phase.DRAGGING
        elif self._in_flight or self._queued:
            if self.phase not in (Phase.COMMITTING,):
                self._batch_failed = False
            self.phase = Phase.COMMITTING
        elif self.phase == Phase.COMMITTING:
            self.phase = Phase.ROLLED_BACK if self._batch_failed else Phase.RECONCILED
        elif self.phase == Phase.DRAGGING:
            self.phase = Phase.IDLE
