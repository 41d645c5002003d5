"""
Board, column and card schema plus the records the mutation engine produces.

Positional fields (Card.status_id, Card.order, StatusColumn.grid_row,
StatusColumn.grid_col) are only ever changed by the reducer.
"""
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any


def utc_now() -> str:
    """ISO-8601 UTC timestamp."""
    return datetime.now(timezone.utc).isoformat()


class Theme(Enum):
    """Visual themes a board can carry."""
    SUNRISE = "sunrise"
    SANDSTONE = "sandstone"
    MINT = "mint"
    SKY = "sky"
    LAVENDER = "lavender"
    ROSE = "rose"
    MIDNIGHT = "midnight"
    GRAPHITE = "graphite"
    FOREST = "forest"
    OCEAN = "ocean"
    PLUM = "plum"
    RUST = "rust"

    @classmethod
    def from_str(cls, value: Optional[str]) -> "Theme":
        try:
            return cls[(value or "").upper()]
        except KeyError:
            return cls.SUNRISE

    @property
    def is_dark(self) -> bool:
        return self in _DARK_THEMES


_DARK_THEMES = {
    Theme.MIDNIGHT, Theme.GRAPHITE, Theme.FOREST,
    Theme.OCEAN, Theme.PLUM, Theme.RUST,
}


class MutationKind(Enum):
    """Operation tag carried by every MutationRecord."""
    MOVE_CARD = "move_card"
    REORDER_COLUMN = "reorder_column"
    MOVE_COLUMN_TO_NEW_ROW = "move_column_to_new_row"


class DropKind(Enum):
    """Where a column drag ended."""
    CELL = "cell"          # an existing or empty grid cell
    INSERT = "insert"      # the gap before (grid_row, grid_col)
    NEW_ROW = "new_row"    # the new-row zone under the grid


@dataclass(frozen=True)
class DropDescriptor:
    """Resolved drop location for a column drag."""
    kind: DropKind
    grid_row: int = 0
    grid_col: int = 0

    @classmethod
    def cell(cls, grid_row: int, grid_col: int) -> "DropDescriptor":
        return cls(DropKind.CELL, grid_row, grid_col)

    @classmethod
    def insert(cls, grid_row: int, grid_col: int) -> "DropDescriptor":
        return cls(DropKind.INSERT, grid_row, grid_col)

    @classmethod
    def new_row(cls) -> "DropDescriptor":
        return cls(DropKind.NEW_ROW)


@dataclass(frozen=True)
class GridTarget:
    """Outcome of resolving a column drop against the current grid."""
    kind: str                       # "swap" | "insert" | "new_row" | "noop"
    grid_row: int
    grid_col: int
    swap_with: Optional[str] = None  # column currently at the target cell


@dataclass
class RepoMeta:
    """
    Repository metadata snapshot shown on a card.

    Every field is optional. Keys this class does not know about are kept
    in `extra` so newer payloads survive a round trip.
    """
    stars: Optional[int] = None
    language: Optional[str] = None
    topics: List[str] = field(default_factory=list)
    visibility: Optional[str] = None   # "public" | "private"
    updated_at: Optional[str] = None
    description: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    _KNOWN = ("stars", "language", "topics", "visibility", "updated_at", "description")

    def validate(self) -> List[str]:
        """Return a list of problems; empty when the snapshot is well-formed."""
        problems = []
        if self.stars is not None and (not isinstance(self.stars, int) or self.stars < 0):
            problems.append(f"stars must be a non-negative integer, got {self.stars!r}")
        if self.visibility is not None and self.visibility not in ("public", "private"):
            problems.append(f"visibility must be public or private, got {self.visibility!r}")
        if not isinstance(self.topics, list) or not all(isinstance(t, str) for t in self.topics):
            problems.append("topics must be a list of strings")
        if self.language is not None and not isinstance(self.language, str):
            problems.append("language must be a string")
        return problems

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = dict(self.extra)
        if self.stars is not None:
            data["stars"] = self.stars
        if self.language is not None:
            data["language"] = self.language
        if self.topics:
            data["topics"] = list(self.topics)
        if self.visibility is not None:
            data["visibility"] = self.visibility
        if self.updated_at is not None:
            data["updated_at"] = self.updated_at
        if self.description is not None:
            data["description"] = self.description
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RepoMeta":
        data = data or {}
        return cls(
            stars=data.get("stars"),
            language=data.get("language"),
            topics=list(data.get("topics") or []),
            visibility=data.get("visibility"),
            updated_at=data.get("updated_at"),
            description=data.get("description"),
            extra={k: v for k, v in data.items() if k not in cls._KNOWN},
        )


@dataclass
class Board:
    """Top-level container for columns and cards."""
    board_id: str
    name: str
    theme: Theme = Theme.SUNRISE
    is_favorite: bool = False
    owner: str = ""
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "board_id": self.board_id,
            "name": self.name,
            "theme": self.theme.value,
            "is_favorite": self.is_favorite,
            "owner": self.owner,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Board":
        return cls(
            board_id=data["board_id"],
            name=data.get("name", ""),
            theme=Theme.from_str(data.get("theme")),
            is_favorite=bool(data.get("is_favorite", False)),
            owner=data.get("owner", ""),
            created_at=data.get("created_at") or utc_now(),
            updated_at=data.get("updated_at") or utc_now(),
        )


@dataclass
class StatusColumn:
    """A WIP-limited bucket of cards placed at a unique grid cell."""
    column_id: str
    board_id: str
    title: str
    color: str = "#8B7355"
    wip_limit: int = 0           # 0 = unlimited
    grid_row: int = 0
    grid_col: int = 0
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    @property
    def cell(self) -> tuple:
        return (self.grid_row, self.grid_col)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "column_id": self.column_id,
            "board_id": self.board_id,
            "title": self.title,
            "color": self.color,
            "wip_limit": self.wip_limit,
            "grid_row": self.grid_row,
            "grid_col": self.grid_col,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatusColumn":
        return cls(
            column_id=data["column_id"],
            board_id=data["board_id"],
            title=data.get("title", ""),
            color=data.get("color") or "#8B7355",
            wip_limit=int(data.get("wip_limit") or 0),
            grid_row=int(data.get("grid_row", 0)),
            grid_col=int(data.get("grid_col", 0)),
            created_at=data.get("created_at") or utc_now(),
            updated_at=data.get("updated_at") or utc_now(),
        )


@dataclass
class Card:
    """A repository reference ranked inside one status column."""
    card_id: str
    board_id: str
    status_id: str
    repo_owner: str
    repo_name: str
    order: float = 0.0
    note: Optional[str] = None
    meta: RepoMeta = field(default_factory=RepoMeta)
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    @property
    def title(self) -> str:
        return self.repo_name

    @property
    def full_name(self) -> str:
        return f"{self.repo_owner}/{self.repo_name}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "card_id": self.card_id,
            "board_id": self.board_id,
            "status_id": self.status_id,
            "repo_owner": self.repo_owner,
            "repo_name": self.repo_name,
            "order": self.order,
            "note": self.note,
            "meta": self.meta.to_dict(),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Card":
        return cls(
            card_id=data["card_id"],
            board_id=data["board_id"],
            status_id=data["status_id"],
            repo_owner=data.get("repo_owner", ""),
            repo_name=data.get("repo_name", ""),
            order=data.get("order", 0.0),
            note=data.get("note"),
            meta=RepoMeta.from_dict(data.get("meta")),
            created_at=data.get("created_at") or utc_now(),
            updated_at=data.get("updated_at") or utc_now(),
        )


# Positional fields each entity kind may carry in a MutationRecord
CARD_FIELDS = ("status_id", "order")
COLUMN_FIELDS = ("grid_row", "grid_col")


@dataclass
class MutationRecord:
    """
    Enough information to invert one committed drop exactly.

    `before` and `after` map entity id -> {field: value} for every
    positional field the drop changed. Card ids and column ids never mix
    in one record; `entity_kind` says which.
    """
    kind: MutationKind
    entity_kind: str                        # "card" | "column"
    entity_ids: List[str]
    before: Dict[str, Dict[str, Any]]
    after: Dict[str, Dict[str, Any]]
    seq: int = 0
    timestamp: str = field(default_factory=utc_now)

    def inverse(self) -> "MutationRecord":
        """The record that undoes this one."""
        return MutationRecord(
            kind=self.kind,
            entity_kind=self.entity_kind,
            entity_ids=list(self.entity_ids),
            before={k: dict(v) for k, v in self.after.items()},
            after={k: dict(v) for k, v in self.before.items()},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "entity_kind": self.entity_kind,
            "entity_ids": list(self.entity_ids),
            "before": self.before,
            "after": self.after,
            "seq": self.seq,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MutationRecord":
        return cls(
            kind=MutationKind(data["kind"]),
            entity_kind=data["entity_kind"],
            entity_ids=list(data.get("entity_ids", [])),
            before=data.get("before", {}),
            after=data.get("after", {}),
            seq=data.get("seq", 0),
            timestamp=data.get("timestamp") or utc_now(),
        )
