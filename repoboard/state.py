"""
BoardState: the single state tree the engine owns.

Passed explicitly to the reducer and never shared as a global. The
reducer treats instances as immutable: it clones, then replaces the
entities it changes, so a previous BoardState stays valid as a snapshot.
"""
from dataclasses import replace
from typing import Optional, List, Dict, Any, Iterable

from .schema import Board, StatusColumn, Card


class BoardState:
    """Columns and cards of one board, keyed by id."""

    def __init__(
        self,
        board: Optional[Board] = None,
        columns: Optional[Iterable[StatusColumn]] = None,
        cards: Optional[Iterable[Card]] = None,
    ):
        self.board = board
        self.columns: Dict[str, StatusColumn] = {c.column_id: c for c in (columns or [])}
        self.cards: Dict[str, Card] = {c.card_id: c for c in (cards or [])}

    # ── copy-on-write ───────────────────────────────────────

    def clone(self) -> "BoardState":
        """Shallow copy: new dicts, same entity objects."""
        other = BoardState(self.board)
        other.columns = dict(self.columns)
        other.cards = dict(self.cards)
        return other

    def with_card(self, card_id: str, **changes) -> Card:
        """Replace a card with an updated copy. Call on a clone only."""
        card = replace(self.cards[card_id], **changes)
        self.cards[card_id] = card
        return card

    def with_column(self, column_id: str, **changes) -> StatusColumn:
        """Replace a column with an updated copy. Call on a clone only."""
        column = replace(self.columns[column_id], **changes)
        self.columns[column_id] = column
        return column

    # ── queries ─────────────────────────────────────────────

    def columns_on_board(self, board_id: Optional[str] = None) -> List[StatusColumn]:
        """Columns of a board in grid order (row, then col)."""
        if board_id is None and self.board is not None:
            board_id = self.board.board_id
        cols = [c for c in self.columns.values() if board_id is None or c.board_id == board_id]
        return sorted(cols, key=lambda c: (c.grid_row, c.grid_col, c.column_id))

    def cards_in_column(self, status_id: str) -> List[Card]:
        """Cards of a column in visual order."""
        cards = [c for c in self.cards.values() if c.status_id == status_id]
        return sorted(cards, key=lambda c: (c.order, c.card_id))

    def card_count(self, status_id: str) -> int:
        return sum(1 for c in self.cards.values() if c.status_id == status_id)

    def column_at(self, board_id: str, grid_row: int, grid_col: int) -> Optional[StatusColumn]:
        for col in self.columns.values():
            if col.board_id == board_id and col.grid_row == grid_row and col.grid_col == grid_col:
                return col
        return None

    # ── invariants ──────────────────────────────────────────

    def check_order_totality(self) -> List[str]:
        """Column ids holding two cards with the same order value."""
        seen: Dict[str, set] = {}
        broken = []
        for card in self.cards.values():
            orders = seen.setdefault(card.status_id, set())
            if card.order in orders and card.status_id not in broken:
                broken.append(card.status_id)
            orders.add(card.order)
        return broken

    def check_grid_uniqueness(self) -> List[tuple]:
        """(board_id, row, col) cells occupied by more than one column."""
        seen = set()
        broken = []
        for col in self.columns.values():
            key = (col.board_id, col.grid_row, col.grid_col)
            if key in seen and key not in broken:
                broken.append(key)
            seen.add(key)
        return broken

    def is_consistent(self) -> bool:
        return not self.check_order_totality() and not self.check_grid_uniqueness()

    # ── serialization ───────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "board": self.board.to_dict() if self.board else None,
            "columns": [
                c.to_dict() for c in sorted(
                    self.columns.values(),
                    key=lambda c: (c.board_id, c.grid_row, c.grid_col, c.column_id),
                )
            ],
            "cards": [c.to_dict() for c in sorted(self.cards.values(), key=lambda c: (c.status_id, c.order, c.card_id))],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BoardState":
        board = Board.from_dict(data["board"]) if data.get("board") else None
        return cls(
            board=board,
            columns=[StatusColumn.from_dict(c) for c in data.get("columns", [])],
            cards=[Card.from_dict(c) for c in data.get("cards", [])],
        )

    def __repr__(self) -> str:
        name = self.board.board_id if self.board else None
        return f"BoardState(board={name}, columns={len(self.columns)}, cards={len(self.cards)})"
