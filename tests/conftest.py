"""Shared fixtures and builders for repoboard tests."""

import asyncio
import sys
from pathlib import Path

import pytest

# Ensure the package is importable without installation
sys.path.insert(0, str(Path(__file__).parent.parent))

from repoboard.schema import Board, Card, StatusColumn
from repoboard.state import BoardState
from repoboard.store import BoardGateway


def make_column(column_id, row=0, col=0, wip_limit=0, board_id="b1", title=None):
    return StatusColumn(
        column_id=column_id,
        board_id=board_id,
        title=title or column_id.title(),
        wip_limit=wip_limit,
        grid_row=row,
        grid_col=col,
    )


def make_card(card_id, status_id, order, board_id="b1", owner="octo"):
    return Card(
        card_id=card_id,
        board_id=board_id,
        status_id=status_id,
        repo_owner=owner,
        repo_name=card_id,
        order=float(order),
    )


def make_state(columns, cards=()):
    return BoardState(Board(board_id="b1", name="Test board"), columns, cards)


def orders(state, status_id):
    """(card_id, order) pairs of a column in visual order."""
    return [(c.card_id, c.order) for c in state.cards_in_column(status_id)]


def ids(state, status_id):
    return [c.card_id for c in state.cards_in_column(status_id)]


class FakeGateway(BoardGateway):
    """
    Scriptable persistence collaborator.

    fail      - entity ids whose writes resolve False
    raise_for - entity ids whose writes raise
    hold      - asyncio.Event every write waits on (create it inside the loop)
    held      - entity id -> asyncio.Event that entity's writes wait on
    delay     - seconds each write sleeps
    """

    def __init__(self):
        self.calls = []
        self.fail = set()
        self.raise_for = set()
        self.hold = None
        self.held = {}
        self.delay = 0.0

    async def persist_card_move(self, card_id, status_id, order):
        return await self._write("card", card_id, {"status_id": status_id, "order": order})

    async def persist_column_grid(self, column_id, grid_row, grid_col):
        return await self._write("column", column_id, {"grid_row": grid_row, "grid_col": grid_col})

    async def _write(self, kind, entity_id, values):
        self.calls.append((kind, entity_id, values))
        if self.hold is not None:
            await self.hold.wait()
        if entity_id in self.held:
            await self.held[entity_id].wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if entity_id in self.raise_for:
            raise RuntimeError("backend down")
        return entity_id not in self.fail


@pytest.fixture
def board_state():
    """Three columns on row 0: todo (limit 2), doing (limit 3), done; three cards in todo."""
    return make_state(
        [
            make_column("todo", 0, 0, wip_limit=2),
            make_column("doing", 0, 1, wip_limit=3),
            make_column("done", 0, 2),
        ],
        [
            make_card("c1", "todo", 0),
            make_card("c2", "todo", 1),
            make_card("c3", "todo", 2),
        ],
    )


@pytest.fixture
def gateway():
    return FakeGateway()
