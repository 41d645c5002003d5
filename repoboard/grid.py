"""
Grid position model: where a dragged status column lands.

Three outcomes:
  swap    - target cell holds another column; the two exchange cells
  insert  - target cell is empty, or the drop hit the gap before a column;
            columns at or right of the gap in that row shift one to the right
  new_row - the new-row zone; (max row on the board + 1, 0)

Dropping a column on its own cell resolves to "noop".
"""
from typing import Dict, List, Tuple

from .errors import ValidationError
from .schema import DropDescriptor, DropKind, GridTarget, StatusColumn

Cell = Tuple[int, int]


def resolve_drop_target(
    columns: List[StatusColumn],
    dragged_column_id: str,
    drop: DropDescriptor,
) -> GridTarget:
    """
    Resolve a drop against the columns of one board.

    `columns` must contain the dragged column. Raises ValidationError for
    negative coordinates or an unknown column.
    """
    dragged = _find(columns, dragged_column_id)
    others = [c for c in columns if c.column_id != dragged_column_id]

    if drop.kind == DropKind.NEW_ROW:
        row = max(c.grid_row for c in columns) + 1
        return GridTarget("new_row", row, 0)

    if drop.grid_row < 0 or drop.grid_col < 0:
        raise ValidationError(
            f"Invalid grid cell ({drop.grid_row}, {drop.grid_col}) for column {dragged_column_id}"
        )

    target = (drop.grid_row, drop.grid_col)
    if target == dragged.cell:
        return GridTarget("noop", *target)

    occupant = next((c for c in others if c.cell == target), None)
    if drop.kind == DropKind.CELL and occupant is not None:
        return GridTarget("swap", drop.grid_row, drop.grid_col, swap_with=occupant.column_id)
    return GridTarget("insert", drop.grid_row, drop.grid_col)


def plan_moves(
    columns: List[StatusColumn],
    dragged_column_id: str,
    target: GridTarget,
) -> Dict[str, Cell]:
    """
    New cells for every column the target moves, keyed by column id.

    Columns that keep their cell are not included. The result never puts
    two columns on one cell; a plan that would is rejected.
    """
    if target.kind == "noop":
        return {}

    dragged = _find(columns, dragged_column_id)
    moves: Dict[str, Cell] = {dragged_column_id: (target.grid_row, target.grid_col)}

    if target.kind == "swap":
        moves[target.swap_with] = dragged.cell
    elif target.kind == "insert":
        row_mates = [
            c for c in columns
            if c.column_id != dragged_column_id and c.grid_row == target.grid_row
        ]
        occupied = any(c.grid_col == target.grid_col for c in row_mates)
        if occupied:
            for col in row_mates:
                if col.grid_col >= target.grid_col:
                    moves[col.column_id] = (col.grid_row, col.grid_col + 1)

    _check_unique(columns, moves)
    return moves


def spread_collisions(columns: List[StatusColumn]) -> Dict[str, Cell]:
    """
    New cells for columns that share a cell with another column.

    The first column on a cell (by id) keeps it; each other one gets a
    fresh row below the board, at col 0.
    """
    moves: Dict[str, Cell] = {}
    if not columns:
        return moves
    next_row = max(c.grid_row for c in columns) + 1
    taken = set()
    for col in sorted(columns, key=lambda c: (c.grid_row, c.grid_col, c.column_id)):
        if col.cell in taken:
            moves[col.column_id] = (next_row, 0)
            next_row += 1
        else:
            taken.add(col.cell)
    return moves


def _find(columns: List[StatusColumn], column_id: str) -> StatusColumn:
    for col in columns:
        if col.column_id == column_id:
            return col
    raise ValidationError(f"Column {column_id} is not on this board")


def _check_unique(columns: List[StatusColumn], moves: Dict[str, Cell]) -> None:
    seen = set()
    for col in columns:
        cell = moves.get(col.column_id, col.cell)
        if cell in seen:
            raise ValidationError(f"Drop would place two columns at cell {cell}")
        seen.add(cell)
