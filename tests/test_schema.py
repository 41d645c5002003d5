"""Tests for the board schema and mutation records."""
from repoboard.schema import (
    Board,
    Card,
    DropDescriptor,
    DropKind,
    MutationKind,
    MutationRecord,
    RepoMeta,
    StatusColumn,
    Theme,
)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Themes
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_theme_from_str_is_tolerant():
    assert Theme.from_str("midnight") == Theme.MIDNIGHT
    assert Theme.from_str("OCEAN") == Theme.OCEAN
    assert Theme.from_str("neon") == Theme.SUNRISE
    assert Theme.from_str(None) == Theme.SUNRISE


def test_dark_themes():
    dark = {t for t in Theme if t.is_dark}
    assert dark == {Theme.MIDNIGHT, Theme.GRAPHITE, Theme.FOREST, Theme.OCEAN, Theme.PLUM, Theme.RUST}
    assert len(Theme) == 12


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Entities
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_board_serialization():
    board = Board(board_id="b1", name="Reading list", theme=Theme.PLUM, is_favorite=True)
    data = board.to_dict()
    assert data["theme"] == "plum"
    restored = Board.from_dict(data)
    assert restored.theme == Theme.PLUM
    assert restored.is_favorite is True
    assert restored.created_at == board.created_at


def test_column_defaults():
    col = StatusColumn(column_id="c", board_id="b1", title="Todo")
    assert col.wip_limit == 0
    assert col.cell == (0, 0)
    restored = StatusColumn.from_dict({"column_id": "c", "board_id": "b1", "wip_limit": None})
    assert restored.wip_limit == 0


def test_card_derived_names():
    card = Card(card_id="k1", board_id="b1", status_id="s", repo_owner="psf", repo_name="requests")
    assert card.title == "requests"
    assert card.full_name == "psf/requests"


def test_card_serialization_keeps_meta():
    card = Card(
        card_id="k1", board_id="b1", status_id="s",
        repo_owner="psf", repo_name="requests", order=2.5,
        meta=RepoMeta(stars=50000, language="Python", topics=["http"]),
    )
    restored = Card.from_dict(card.to_dict())
    assert restored.order == 2.5
    assert restored.meta.stars == 50000
    assert restored.meta.topics == ["http"]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# RepoMeta
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestRepoMeta:

    def test_unknown_keys_survive_round_trip(self):
        meta = RepoMeta.from_dict({"stars": 3, "license": "MIT", "forks": 7})
        assert meta.extra == {"license": "MIT", "forks": 7}
        data = meta.to_dict()
        assert data["license"] == "MIT"
        assert data["stars"] == 3

    def test_empty_meta_is_valid(self):
        assert RepoMeta().validate() == []
        assert RepoMeta.from_dict(None).to_dict() == {}

    def test_validate_reports_problems(self):
        meta = RepoMeta(stars=-1, visibility="internal", topics=["ok", 3])
        problems = meta.validate()
        assert len(problems) == 3
        assert any("stars" in p for p in problems)
        assert any("visibility" in p for p in problems)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Drops and records
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_drop_descriptor_builders():
    assert DropDescriptor.cell(1, 2) == DropDescriptor(DropKind.CELL, 1, 2)
    assert DropDescriptor.insert(0, 3).kind == DropKind.INSERT
    assert DropDescriptor.new_row().kind == DropKind.NEW_ROW


def test_mutation_record_inverse():
    record = MutationRecord(
        kind=MutationKind.MOVE_CARD,
        entity_kind="card",
        entity_ids=["k1"],
        before={"k1": {"status_id": "a", "order": 0.0}},
        after={"k1": {"status_id": "b", "order": -1.0}},
        seq=4,
    )
    inverse = record.inverse()
    assert inverse.before == record.after
    assert inverse.after == record.before
    assert inverse.kind == MutationKind.MOVE_CARD

    restored = MutationRecord.from_dict(record.to_dict())
    assert restored.kind == MutationKind.MOVE_CARD
    assert restored.seq == 4
    assert restored.after == record.after
