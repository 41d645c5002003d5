"""Tests for the repoboard command line."""
import pytest

from repoboard.cli import main
from repoboard.store import SqliteBoardStore


@pytest.fixture
def db(tmp_path, monkeypatch):
    monkeypatch.delenv("REPOBOARD_DB", raising=False)
    path = str(tmp_path / "cli.db")
    assert main(["--db", path, "new-board", "b1", "Reading list", "--theme", "ocean"]) == 0
    return path


def _run(db, *argv):
    return main(["--db", db, *argv])


def test_new_board_creates_default_columns(db):
    store = SqliteBoardStore(db)
    assert [c.column_id for c in store.list_columns("b1")] == [f"b1-col-{i}" for i in range(5)]


def test_add_card_and_show(db, capsys):
    assert _run(db, "add-card", "b1", "b1-col-1", "psf/requests", "--stars", "50000") == 0
    assert _run(db, "add-card", "b1", "b1-col-1", "pallets/flask") == 0
    capsys.readouterr()

    assert _run(db, "show", "b1") == 0
    out = capsys.readouterr().out
    assert "Reading list" in out
    assert "(dark)" in out
    assert out.index("psf/requests") < out.index("pallets/flask")
    assert "★50000" in out
    assert "2/5" in out


def test_add_card_validates_input(db, capsys):
    assert _run(db, "add-card", "b1", "b1-col-1", "no-slash") == 2
    assert _run(db, "add-card", "b1", "missing-col", "a/b") == 1


def test_show_cached_falls_back_to_database(db, capsys):
    assert _run(db, "show", "b1", "--cached") == 0
    assert "Backlog" in capsys.readouterr().out
    # the first show stored a snapshot; the second one reads it
    assert _run(db, "show", "b1", "--cached") == 0
    assert "Backlog" in capsys.readouterr().out


def test_show_unknown_board(db):
    assert _run(db, "show", "nope") == 1


def test_move_card(db, capsys):
    _run(db, "add-card", "b1", "b1-col-0", "a/one")
    _run(db, "add-card", "b1", "b1-col-0", "a/two")
    store = SqliteBoardStore(db)
    two = next(c for c in store.list_cards("b1") if c.repo_name == "two")

    assert _run(db, "move", two.card_id, "b1-col-2", "0") == 0
    assert store.get_card(two.card_id).status_id == "b1-col-2"
    assert _run(db, "move", "ghost", "b1-col-2", "0") == 1


def test_move_reports_wip_overflow(db, capsys):
    for i in range(4):
        _run(db, "add-card", "b1", "b1-col-0", f"a/r{i}")
    store = SqliteBoardStore(db)
    cards = store.list_cards("b1")
    # In Progress has a limit of 3
    for card in cards[:3]:
        _run(db, "move", card.card_id, "b1-col-2", "0")
    capsys.readouterr()
    assert _run(db, "move", cards[3].card_id, "b1-col-2", "0") == 0
    assert "over its WIP limit" in capsys.readouterr().out
    assert sum(1 for c in store.list_cards("b1") if c.status_id == "b1-col-2") == 4


def test_column_moves(db):
    store = SqliteBoardStore(db)
    assert _run(db, "column", "b1-col-4", "--new-row") == 0
    assert store.get_column("b1-col-4").cell == (1, 0)

    assert _run(db, "column", "b1-col-0", "--cell", "0", "3") == 0
    assert store.get_column("b1-col-0").cell == (0, 3)
    assert store.get_column("b1-col-3").cell == (0, 0)

    assert _run(db, "column", "b1-col-4", "--insert", "0", "1") == 0
    assert store.get_column("b1-col-4").cell == (0, 1)
    assert store.get_column("b1-col-1").cell == (0, 2)

    assert _run(db, "column", "ghost", "--new-row") == 1


def test_column_requires_a_target(db):
    with pytest.raises(SystemExit):
        _run(db, "column", "b1-col-0")


def test_add_card_and_show_flag_wip_overflow(db, capsys):
    # In Progress allows 3; Backlog is unlimited
    for i in range(4):
        assert _run(db, "add-card", "b1", "b1-col-2", f"a/r{i}") == 0
    assert _run(db, "add-card", "b1", "b1-col-0", "a/free") == 0
    out = capsys.readouterr().out
    assert out.count("over its WIP limit") == 1
    assert "In Progress is over its WIP limit (4/3)" in out

    assert _run(db, "show", "b1") == 0
    out = capsys.readouterr().out
    assert out.count("⚠ WIP limit exceeded") == 1
    assert "4/3  ⚠ WIP limit exceeded" in out
