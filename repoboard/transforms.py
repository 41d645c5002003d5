"""
JSON encoding with replacer/reviver transforms.

Semantics follow JavaScript's JSON.stringify / JSON.parse:
  - replacer(key, value) runs top-down, first with ("", root); the walk
    continues into whatever it returns
  - reviver(key, value) runs bottom-up, children before parents, root last
  - returning OMIT drops a mapping key; inside a list the slot becomes None
List indices are passed as strings, like JavaScript array keys.

Keys "__proto__", "prototype" and "constructor" are dropped on decode.
"""
import json
from datetime import datetime
from typing import Any, Callable, Optional

from .errors import SerializationError

Transform = Callable[[str, Any], Any]

DANGEROUS_KEYS = frozenset(("__proto__", "prototype", "constructor"))


class _Omit:
    def __repr__(self):
        return "OMIT"


OMIT = _Omit()


def encode(value: Any, replacer: Optional[Transform] = None, indent: Optional[int] = None) -> str:
    """Encode to JSON text, applying `replacer` first."""
    if replacer is not None:
        value = _replace("", value, replacer)
        if value is OMIT:
            raise SerializationError("Replacer omitted the root value")
    try:
        return json.dumps(
            value,
            ensure_ascii=False,
            allow_nan=False,
            indent=indent,
            separators=None if indent is not None else (",", ":"),
        )
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Value is not JSON-serializable: {e}") from e


def decode(text: str, reviver: Optional[Transform] = None) -> Any:
    """Decode JSON text, dropping dangerous keys, then applying `reviver`."""
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Invalid JSON: {e}") from e
    return _revive("", data, reviver)


def _replace(key: str, value: Any, replacer: Transform) -> Any:
    value = replacer(key, value)
    if value is OMIT:
        return OMIT
    if isinstance(value, dict):
        out = {}
        for k, v in value.items():
            replaced = _replace(str(k), v, replacer)
            if replaced is not OMIT:
                out[k] = replaced
        return out
    if isinstance(value, (list, tuple)):
        out = []
        for i, v in enumerate(value):
            replaced = _replace(str(i), v, replacer)
            out.append(None if replaced is OMIT else replaced)
        return out
    return value


def _revive(key: str, value: Any, reviver: Optional[Transform]) -> Any:
    if isinstance(value, dict):
        out = {}
        for k, v in value.items():
            if k in DANGEROUS_KEYS:
                continue
            revived = _revive(k, v, reviver)
            if revived is not OMIT:
                out[k] = revived
        value = out
    elif isinstance(value, list):
        items = []
        for i, v in enumerate(value):
            revived = _revive(str(i), v, reviver)
            items.append(None if revived is OMIT else revived)
        value = items
    if reviver is None:
        return value
    return reviver(key, value)


# ── stock transforms ────────────────────────────────────────


def date_replacer(key: str, value: Any) -> Any:
    """datetime -> {"__type": "Date", "value": iso}."""
    if isinstance(value, datetime):
        return {"__type": "Date", "value": value.isoformat()}
    return value


def date_reviver(key: str, value: Any) -> Any:
    if isinstance(value, dict) and value.get("__type") == "Date":
        return datetime.fromisoformat(value["value"])
    return value


def collection_replacer(key: str, value: Any) -> Any:
    """Sets, dicts with non-string keys, and datetimes as tagged objects."""
    if isinstance(value, (set, frozenset)):
        return {"__type": "Set", "value": list(value)}
    if isinstance(value, dict) and any(not isinstance(k, str) for k in value):
        return {"__type": "Map", "value": [[k, v] for k, v in value.items()]}
    return date_replacer(key, value)


def collection_reviver(key: str, value: Any) -> Any:
    if isinstance(value, dict):
        tag = value.get("__type")
        if tag == "Set":
            return set(_hashable(v) for v in value["value"])
        if tag == "Map":
            return {_hashable(k): v for k, v in value["value"]}
    return date_reviver(key, value)


def _hashable(value: Any) -> Any:
    # tuples come back from JSON as lists
    if isinstance(value, list):
        return tuple(_hashable(v) for v in value)
    return value
