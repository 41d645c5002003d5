"""Tests for advisory WIP limit checks."""
from conftest import make_card, make_column, make_state

from repoboard.wip import violates_wip, wip_summary, wip_violations


def test_zero_limit_is_unlimited():
    col = make_column("a", wip_limit=0)
    assert not violates_wip(col, 1000)


def test_limit_is_exceeded_only_above_it():
    col = make_column("a", wip_limit=3)
    assert not violates_wip(col, 3)
    assert violates_wip(col, 4)


def test_missing_column_never_violates():
    assert not violates_wip(None, 10)


def test_violations_and_summary():
    state = make_state(
        [make_column("a", 0, 0, wip_limit=1), make_column("b", 0, 1, wip_limit=5), make_column("c", 0, 2)],
        [make_card("k1", "a", 0), make_card("k2", "a", 1), make_card("k3", "b", 0)],
    )
    assert wip_violations(state, ["a", "b", "c"]) == ["a"]
    assert wip_summary(state, state.columns["a"]) == "2/1"
    assert wip_summary(state, state.columns["b"]) == "1/5"
    assert wip_summary(state, state.columns["c"]) == "0"
