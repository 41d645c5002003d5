"""WIP limit checks. Advisory only: nothing here blocks a drop."""
from typing import Iterable, List, Optional

from .schema import StatusColumn
from .state import BoardState


def violates_wip(column: Optional[StatusColumn], current_card_count: int) -> bool:
    """True when the column holds more cards than its limit. 0 or None = unlimited."""
    if column is None:
        return False
    limit = column.wip_limit or 0
    if limit <= 0:
        return False
    return current_card_count > limit


def wip_violations(state: BoardState, column_ids: Iterable[str]) -> List[str]:
    """Ids among `column_ids` currently over their limit."""
    flagged = []
    for column_id in column_ids:
        column = state.columns.get(column_id)
        if violates_wip(column, state.card_count(column_id)):
            flagged.append(column_id)
    return flagged


def wip_summary(state: BoardState, column: StatusColumn) -> str:
    """`3/5`-style occupancy label, or just the count when unlimited."""
    count = state.card_count(column.column_id)
    if column.wip_limit:
        return f"{count}/{column.wip_limit}"
    return str(count)
