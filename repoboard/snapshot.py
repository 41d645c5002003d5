"""
Versioned state snapshots in key/value storage.

The stored blob is the compressed form of {"version": n, "state": tree}.
A blob that fails to decode counts as "no usable cached state": load()
logs it, removes it and returns None so the caller refetches from the
authoritative source.
"""
import asyncio
import copy
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from .errors import SerializationError
from .serializer import CompressedSerializer
from .state import BoardState

logger = logging.getLogger(__name__)

Migrate = Callable[[Dict[str, Any], int], Dict[str, Any]]


class StateSnapshotter:
    """Saves and restores a state tree through a CompressedSerializer."""

    def __init__(
        self,
        storage,
        serializer: CompressedSerializer,
        key: str = "repoboard-state",
        version: int = 1,
        migrate: Optional[Migrate] = None,
        slices: Optional[Iterable[str]] = None,
        exclude: Iterable[str] = (),
        debounce_ms: int = 300,
    ):
        """`storage` needs get_item / set_item / remove_item."""
        self.storage = storage
        self.serializer = serializer
        self.key = key
        self.version = version
        self.migrate = migrate
        self.slices: Optional[List[str]] = list(slices) if slices is not None else None
        self.exclude = list(exclude)
        self.debounce_ms = debounce_ms
        self._pending: Optional[Dict[str, Any]] = None
        self._timer: Optional[asyncio.TimerHandle] = None

    def partialize(self, tree: Dict[str, Any]) -> Dict[str, Any]:
        """Keep the configured top-level slices, then drop excluded dotted paths."""
        if self.slices is not None:
            tree = {k: tree[k] for k in self.slices if k in tree}
        if self.exclude:
            tree = exclude_paths(tree, self.exclude)
        return tree

    def save(self, tree: Dict[str, Any]) -> bool:
        """Write a snapshot now. Returns False if it could not be encoded."""
        self._cancel_timer()
        self._pending = None
        payload = {"version": self.version, "state": self.partialize(tree)}
        try:
            blob = self.serializer.serialize(payload)
        except SerializationError as e:
            logger.error(f"Snapshot {self.key} not saved: {e}")
            return False
        self.storage.set_item(self.key, blob)
        return True

    def load(self) -> Optional[Dict[str, Any]]:
        """The stored (migrated) state, or None when there is nothing usable."""
        blob = self.storage.get_item(self.key)
        if blob is None:
            return None
        try:
            payload = self.serializer.deserialize(blob)
        except SerializationError as e:
            logger.warning(f"Discarding unreadable snapshot {self.key}: {e}")
            self.storage.remove_item(self.key)
            return None

        if not isinstance(payload, dict) or not isinstance(payload.get("state"), dict):
            logger.warning(f"Discarding snapshot {self.key}: unexpected shape")
            self.storage.remove_item(self.key)
            return None

        state = payload["state"]
        stored_version = payload.get("version", 0)
        if stored_version != self.version:
            if self.migrate is None:
                logger.warning(
                    f"Discarding snapshot {self.key}: version {stored_version}, "
                    f"expected {self.version}"
                )
                self.storage.remove_item(self.key)
                return None
            state = self.migrate(state, stored_version)
            logger.info(f"Migrated snapshot {self.key} from version {stored_version}")
        return state

    def hydrate(self, current: Dict[str, Any], deep: bool = False) -> Dict[str, Any]:
        """Merge the stored state over `current`."""
        stored = self.load()
        if stored is None:
            return current
        return deep_merge(stored, current) if deep else shallow_merge(stored, current)

    def schedule_save(self, tree: Dict[str, Any]) -> None:
        """Debounced save on the running loop; the latest tree wins."""
        self._pending = tree
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce_ms / 1000, self.flush)

    def flush(self) -> bool:
        """Write a pending debounced tree immediately."""
        if self._pending is None:
            return False
        return self.save(self._pending)

    def clear(self) -> None:
        self._cancel_timer()
        self._pending = None
        self.storage.remove_item(self.key)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


# ── board helpers ───────────────────────────────────────────


def board_tree(state: BoardState, **extra) -> Dict[str, Any]:
    """State tree for one board, ready for StateSnapshotter.save()."""
    tree = {"board": state.to_dict()}
    tree.update(extra)
    return tree


def state_from_tree(tree: Optional[Dict[str, Any]]) -> Optional[BoardState]:
    if not tree or not tree.get("board"):
        return None
    try:
        return BoardState.from_dict(tree["board"])
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Snapshot board state unusable: {e}")
        return None


# ── merge helpers ───────────────────────────────────────────


def shallow_merge(persisted: Dict[str, Any], current: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(current)
    merged.update(persisted)
    return merged


def deep_merge(persisted: Dict[str, Any], current: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(current)
    for key, value in persisted.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(value, merged[key])
        else:
            merged[key] = value
    return merged


def exclude_paths(tree: Dict[str, Any], paths: Iterable[str]) -> Dict[str, Any]:
    """Copy of `tree` without the given dotted paths (e.g. "board.cards")."""
    result = copy.deepcopy(tree)
    for path in paths:
        keys = path.split(".")
        node = result
        for key in keys[:-1]:
            node = node.get(key) if isinstance(node, dict) else None
            if node is None:
                break
        if isinstance(node, dict):
            node.pop(keys[-1], None)
    return result
