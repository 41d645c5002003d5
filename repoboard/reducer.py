"""
Mutation reducer: drop descriptor + state -> (next state, inverse record).

Every function here is pure. The input BoardState is never modified; a
clone with replaced entities is returned together with the
MutationRecord describing exactly which positional fields changed. A drop
that changes nothing returns the input state and no record.
"""
import logging
from typing import Any, Dict, Optional, Tuple

from . import grid, ordering
from .errors import ValidationError
from .schema import (
    CARD_FIELDS,
    COLUMN_FIELDS,
    DropDescriptor,
    GridTarget,
    MutationKind,
    MutationRecord,
    utc_now,
)
from .state import BoardState

logger = logging.getLogger(__name__)

Values = Dict[str, Dict[str, Any]]


# ── cards ───────────────────────────────────────────────────


def move_card(
    state: BoardState,
    card_id: str,
    dest_status_id: str,
    dest_index: int,
    compaction_threshold: float = ordering.DEFAULT_COMPACTION_THRESHOLD,
) -> Tuple[BoardState, Optional[MutationRecord]]:
    """Move a card to `dest_index` of column `dest_status_id`."""
    card = state.cards.get(card_id)
    if card is None:
        raise ValidationError(f"Unknown card {card_id}")
    dest = state.columns.get(dest_status_id)
    if dest is None:
        raise ValidationError(f"Unknown status column {dest_status_id}")
    if dest.board_id != card.board_id:
        raise ValidationError(
            f"Card {card_id} belongs to board {card.board_id}, "
            f"column {dest_status_id} to board {dest.board_id}"
        )

    column_cards = state.cards_in_column(dest_status_id)
    siblings = [c for c in column_cards if c.card_id != card_id]
    if card.status_id == dest_status_id:
        if ordering.current_index(column_cards, card_id) == dest_index:
            return state, None

    orders = ordering.place(siblings, card_id, dest_index, compaction_threshold)
    if len(orders) > 1:
        logger.info(f"Compacting column {dest_status_id} ({len(orders)} cards)")

    after: Values = {}
    for cid, order in orders.items():
        status = dest_status_id
        current = state.cards[cid]
        if current.status_id != status or current.order != order:
            after[cid] = {"status_id": status, "order": order}
    return _commit(state, "card", MutationKind.MOVE_CARD, after)


# ── columns ─────────────────────────────────────────────────


def reorder_column(
    state: BoardState,
    column_id: str,
    drop: DropDescriptor,
) -> Tuple[BoardState, Optional[MutationRecord], GridTarget]:
    """Move a column on its board's grid per the drop descriptor."""
    column = state.columns.get(column_id)
    if column is None:
        raise ValidationError(f"Unknown status column {column_id}")

    columns = state.columns_on_board(column.board_id)
    target = grid.resolve_drop_target(columns, column_id, drop)
    moves = grid.plan_moves(columns, column_id, target)
    if not moves:
        return state, None, target

    kind = MutationKind.MOVE_COLUMN_TO_NEW_ROW if target.kind == "new_row" else MutationKind.REORDER_COLUMN
    after: Values = {
        cid: {"grid_row": row, "grid_col": col} for cid, (row, col) in moves.items()
    }
    next_state, record = _commit(state, "column", kind, after)
    return next_state, record, target


# ── inversion ───────────────────────────────────────────────


def apply_inverse(
    state: BoardState,
    record: MutationRecord,
) -> Tuple[BoardState, Optional[MutationRecord]]:
    """
    Restore every field `record` changed to its pre-mutation value.

    Returns the new state and the record of this reversal (which itself
    can be inverted, e.g. to roll back a failed undo). When restoring a
    card's rank would collide with a sibling that moved in since, the
    affected column is compacted as part of the same reversal. A column
    cell collision raises ValidationError with no state change.
    """
    return apply_values(state, record.entity_kind, record.kind, record.before)


def apply_values(
    state: BoardState,
    entity_kind: str,
    kind: MutationKind,
    values: Values,
) -> Tuple[BoardState, Optional[MutationRecord]]:
    """Set positional fields from `values`; entities that no longer exist are skipped."""
    pool = state.cards if entity_kind == "card" else state.columns
    present = {eid: dict(v) for eid, v in values.items() if eid in pool}
    missing = set(values) - set(present)
    if missing:
        logger.warning(f"Skipping vanished {entity_kind}s: {sorted(missing)}")

    if entity_kind == "card":
        present = _repair_card_collisions(state, present)
    next_state, record = _commit(state, entity_kind, kind, present)
    if entity_kind == "column" and next_state.check_grid_uniqueness():
        raise ValidationError("Restoring column cells would place two columns on one cell")
    return next_state, record


def _repair_card_collisions(state: BoardState, values: Values) -> Values:
    """Extend `values` with a compaction for any column that would hold duplicate ranks."""
    projected = {cid: (c.status_id, c.order) for cid, c in state.cards.items()}
    for cid, fields in values.items():
        status, order = projected[cid]
        projected[cid] = (fields.get("status_id", status), fields.get("order", order))

    by_column: Dict[str, list] = {}
    for cid, (status, order) in projected.items():
        by_column.setdefault(status, []).append((order, cid))

    repaired = dict(values)
    for status, entries in by_column.items():
        ranks = [order for order, _ in entries]
        if len(ranks) == len(set(ranks)):
            continue
        # restored cards win ties so they land where they used to be
        entries.sort(key=lambda e: (e[0], e[1] not in values, e[1]))
        for cid, order in ordering.compact_ids([cid for _, cid in entries]).items():
            repaired[cid] = {"status_id": status, "order": order}
        logger.info(f"Compacted column {status} while restoring ranks")
    return repaired


# ── shared ──────────────────────────────────────────────────


def _commit(
    state: BoardState,
    entity_kind: str,
    kind: MutationKind,
    after: Values,
) -> Tuple[BoardState, Optional[MutationRecord]]:
    fields = CARD_FIELDS if entity_kind == "card" else COLUMN_FIELDS
    pool = state.cards if entity_kind == "card" else state.columns

    before: Values = {}
    changed: Values = {}
    for eid, new_values in after.items():
        entity = pool[eid]
        old = {f: getattr(entity, f) for f in fields if f in new_values}
        new = {f: new_values[f] for f in old}
        if old != new:
            before[eid] = old
            changed[eid] = new
    if not changed:
        return state, None

    next_state = state.clone()
    now = utc_now()
    for eid, new in changed.items():
        if entity_kind == "card":
            next_state.with_card(eid, updated_at=now, **new)
        else:
            next_state.with_column(eid, updated_at=now, **new)

    record = MutationRecord(
        kind=kind,
        entity_kind=entity_kind,
        entity_ids=list(changed),
        before=before,
        after=changed,
    )
    return next_state, record
