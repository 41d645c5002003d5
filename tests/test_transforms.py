"""Tests for JSON encoding with replacer/reviver transforms."""
from datetime import datetime, timezone

import pytest

from repoboard.errors import SerializationError
from repoboard.transforms import (
    OMIT,
    collection_replacer,
    collection_reviver,
    date_replacer,
    date_reviver,
    decode,
    encode,
)


class TestEncode:

    def test_plain_value_is_compact(self):
        assert encode({"a": 1, "b": [1, 2]}) == '{"a":1,"b":[1,2]}'

    def test_unicode_is_kept_verbatim(self):
        assert encode({"t": "żółw ✓"}) == '{"t":"żółw ✓"}'

    def test_replacer_sees_root_first(self):
        seen = []

        def replacer(key, value):
            seen.append(key)
            return value

        encode({"a": {"b": 1}}, replacer)
        assert seen == ["", "a", "b"]

    def test_replacer_can_omit(self):
        def drop_secret(key, value):
            return OMIT if key == "secret" else value

        text = encode({"keep": 1, "secret": "x", "list": ["secret", 2]}, drop_secret)
        assert decode(text) == {"keep": 1, "list": ["secret", 2]}

    def test_omitted_list_slot_becomes_null(self):
        def drop_first(key, value):
            return OMIT if key == "0" else value

        assert encode([1, 2], drop_first) == "[null,2]"

    def test_not_serializable(self):
        with pytest.raises(SerializationError):
            encode({"obj": object()})
        with pytest.raises(SerializationError):
            encode({"nan": float("nan")})


class TestDecode:

    def test_invalid_json(self):
        with pytest.raises(SerializationError):
            decode("{not json")

    def test_dangerous_keys_are_dropped(self):
        text = '{"__proto__": {"polluted": true}, "inner": {"constructor": 1, "prototype": 2, "ok": 3}}'
        assert decode(text) == {"inner": {"ok": 3}}

    def test_reviver_runs_bottom_up(self):
        seen = []

        def reviver(key, value):
            seen.append(key)
            return value

        decode('{"a": {"b": 1}, "c": [5]}', reviver)
        assert seen == ["b", "a", "0", "c", ""]

    def test_reviver_can_transform_and_omit(self):
        def reviver(key, value):
            if key == "drop":
                return OMIT
            if isinstance(value, int):
                return value * 10
            return value

        assert decode('{"n": 2, "drop": 1, "l": [1]}', reviver) == {"n": 20, "l": [10]}


def test_date_transforms_round_trip():
    when = datetime(2024, 5, 17, 12, 30, tzinfo=timezone.utc)
    text = encode({"updated": when}, date_replacer)
    assert '"__type":"Date"' in text
    assert decode(text, date_reviver) == {"updated": when}


def test_collection_transforms_round_trip():
    value = {
        "tags": {"cli", "http"},
        "by_id": {1: "one", 2: "two"},
        "plain": {"x": [1, 2]},
    }
    text = encode(value, collection_replacer)
    restored = decode(text, collection_reviver)
    assert restored == value
    assert isinstance(restored["tags"], set)
