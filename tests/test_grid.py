"""Tests for the column grid position model."""
import pytest
from conftest import make_column

from repoboard.errors import ValidationError
from repoboard.grid import plan_moves, resolve_drop_target, spread_collisions
from repoboard.schema import DropDescriptor, DropKind


def _layout(columns, moves):
    return {c.column_id: moves.get(c.column_id, c.cell) for c in columns}


class TestResolveDropTarget:

    def setup_method(self):
        # row 0: a b c   row 1: d
        self.columns = [
            make_column("a", 0, 0),
            make_column("b", 0, 1),
            make_column("c", 0, 2),
            make_column("d", 1, 0),
        ]

    def test_occupied_cell_swaps(self):
        target = resolve_drop_target(self.columns, "a", DropDescriptor.cell(0, 2))
        assert target.kind == "swap"
        assert target.swap_with == "c"
        moves = plan_moves(self.columns, "a", target)
        assert moves == {"a": (0, 2), "c": (0, 0)}

    def test_empty_cell_is_taken_without_shifting(self):
        target = resolve_drop_target(self.columns, "a", DropDescriptor.cell(1, 1))
        assert target.kind == "insert"
        assert plan_moves(self.columns, "a", target) == {"a": (1, 1)}

    def test_insert_shifts_row_mates_right(self):
        target = resolve_drop_target(self.columns, "a", DropDescriptor.insert(0, 1))
        assert target.kind == "insert"
        moves = plan_moves(self.columns, "a", target)
        assert moves == {"a": (0, 1), "b": (0, 2), "c": (0, 3)}
        assert _layout(self.columns, moves)["d"] == (1, 0)

    def test_insert_from_another_row(self):
        target = resolve_drop_target(self.columns, "d", DropDescriptor.insert(0, 0))
        moves = plan_moves(self.columns, "d", target)
        assert moves == {"d": (0, 0), "a": (0, 1), "b": (0, 2), "c": (0, 3)}

    def test_new_row_goes_below_last_row(self):
        target = resolve_drop_target(self.columns, "a", DropDescriptor.new_row())
        assert (target.kind, target.grid_row, target.grid_col) == ("new_row", 2, 0)
        assert plan_moves(self.columns, "a", target) == {"a": (2, 0)}

    def test_new_row_for_only_column_of_last_row_opens_another_row(self):
        target = resolve_drop_target(self.columns, "d", DropDescriptor.new_row())
        assert (target.kind, target.grid_row, target.grid_col) == ("new_row", 2, 0)
        assert plan_moves(self.columns, "d", target) == {"d": (2, 0)}

    def test_own_cell_is_noop(self):
        for drop in (DropDescriptor.cell(0, 1), DropDescriptor.insert(0, 1)):
            target = resolve_drop_target(self.columns, "b", drop)
            assert target.kind == "noop"
            assert plan_moves(self.columns, "b", target) == {}

    def test_negative_cell_is_rejected(self):
        with pytest.raises(ValidationError):
            resolve_drop_target(self.columns, "a", DropDescriptor.cell(-1, 0))

    def test_unknown_column_is_rejected(self):
        with pytest.raises(ValidationError):
            resolve_drop_target(self.columns, "zzz", DropDescriptor.cell(0, 0))


def test_new_row_placement_leaves_other_columns_alone():
    # rows 0..2 in use; the dragged column lands on (3, 0)
    columns = [
        make_column("a", 0, 0),
        make_column("b", 0, 1),
        make_column("c", 1, 0),
        make_column("d", 2, 0),
        make_column("e", 2, 1),
    ]
    target = resolve_drop_target(columns, "b", DropDescriptor.new_row())
    moves = plan_moves(columns, "b", target)
    assert moves == {"b": (3, 0)}


def test_single_column_board_goes_below_itself():
    columns = [make_column("only", 2, 3)]
    target = resolve_drop_target(columns, "only", DropDescriptor.new_row())
    assert (target.kind, target.grid_row, target.grid_col) == ("new_row", 3, 0)


def test_new_row_uses_the_dragged_columns_row_too():
    # the dragged column alone holds the last row
    columns = [make_column("a", 0, 0), make_column("b", 1, 0), make_column("c", 2, 0)]
    target = resolve_drop_target(columns, "c", DropDescriptor.new_row())
    assert (target.kind, target.grid_row, target.grid_col) == ("new_row", 3, 0)
    assert plan_moves(columns, "c", target) == {"c": (3, 0)}


def test_any_drop_keeps_cells_unique():
    columns = [
        make_column("a", 0, 0),
        make_column("b", 0, 1),
        make_column("c", 0, 3),
        make_column("d", 1, 0),
        make_column("e", 2, 2),
    ]
    for dragged in [c.column_id for c in columns]:
        for kind in (DropKind.CELL, DropKind.INSERT):
            for row in range(4):
                for col in range(5):
                    target = resolve_drop_target(columns, dragged, DropDescriptor(kind, row, col))
                    layout = _layout(columns, plan_moves(columns, dragged, target))
                    assert len(set(layout.values())) == len(columns)


def test_spread_collisions_moves_extras_to_fresh_rows():
    columns = [
        make_column("a", 0, 0),
        make_column("b", 0, 0),
        make_column("c", 0, 0),
        make_column("d", 1, 1),
    ]
    moves = spread_collisions(columns)
    assert moves == {"b": (2, 0), "c": (3, 0)}
    layout = _layout(columns, moves)
    assert len(set(layout.values())) == len(columns)
    assert spread_collisions([make_column("x", 0, 0), make_column("y", 0, 1)]) == {}
