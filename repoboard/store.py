"""
Board storage backend (SQLite).

Two roles:
  - authoritative persistence collaborator for the engine
    (persist_card_move / persist_column_grid, load_state)
  - key/value storage for compressed state snapshots (system_state table)
"""
import asyncio
import json
import logging
import sqlite3
from pathlib import Path
from typing import Dict, List, Optional

from .schema import Board, Card, StatusColumn, utc_now
from .state import BoardState

logger = logging.getLogger(__name__)

DEFAULT_COLUMNS = [
    # title, color, wip_limit
    ("Backlog", "#8B7355", 0),
    ("Todo", "#6B8E23", 5),
    ("In Progress", "#CD853F", 3),
    ("Review", "#4682B4", 4),
    ("Done", "#556B2F", 0),
]


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection with FK enforcement and WAL mode."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


class BoardGateway:
    """
    Outbound persistence interface used by BoardEngine.

    Each call resolves True on success. False or an exception is a failure;
    the engine applies its own timeout around every call.
    """

    async def persist_card_move(self, card_id: str, status_id: str, order: float) -> bool:
        raise NotImplementedError

    async def persist_column_grid(self, column_id: str, grid_row: int, grid_col: int) -> bool:
        raise NotImplementedError


class MemoryStorage:
    """In-memory key/value storage with the same surface as SqliteBoardStore."""

    def __init__(self):
        self._items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class SqliteBoardStore(BoardGateway):
    """SQLite-backed store for boards, status columns and repository cards."""

    def __init__(self, db_path: str = None):
        """Initialize store and create tables if needed."""
        if db_path is None:
            db_path = str(Path.home() / ".local" / "share" / "repoboard" / "board.db")
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self):
        """Create tables if they don't exist."""
        with _connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS boards (
                    board_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    theme TEXT DEFAULT 'sunrise',
                    is_favorite INTEGER DEFAULT 0,
                    owner TEXT DEFAULT '',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            # no UNIQUE(board_id, grid_row, grid_col): a swap lands as two writes
            conn.execute("""
                CREATE TABLE IF NOT EXISTS status_columns (
                    column_id TEXT PRIMARY KEY,
                    board_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    color TEXT DEFAULT '#8B7355',
                    wip_limit INTEGER,
                    grid_row INTEGER NOT NULL DEFAULT 0,
                    grid_col INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY (board_id) REFERENCES boards(board_id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS repo_cards (
                    card_id TEXT PRIMARY KEY,
                    board_id TEXT NOT NULL,
                    status_id TEXT NOT NULL,
                    repo_owner TEXT NOT NULL,
                    repo_name TEXT NOT NULL,
                    note TEXT,
                    "order" REAL NOT NULL DEFAULT 0,
                    meta TEXT,  -- JSON object
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY (board_id) REFERENCES boards(board_id),
                    FOREIGN KEY (status_id) REFERENCES status_columns(column_id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS system_state (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_columns_board ON status_columns(board_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_cards_status ON repo_cards(status_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_cards_board ON repo_cards(board_id)")
            conn.commit()

    # ── boards ──────────────────────────────────────────────

    def save_board(self, board: Board) -> bool:
        """Save or update a board."""
        try:
            with _connect(self.db_path) as conn:
                conn.execute("""
                    INSERT OR REPLACE INTO boards
                    (board_id, name, theme, is_favorite, owner, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                """, (
                    board.board_id,
                    board.name,
                    board.theme.value,
                    1 if board.is_favorite else 0,
                    board.owner,
                    board.created_at,
                    board.updated_at,
                ))
                conn.commit()
                return True
        except sqlite3.Error as e:
            logger.error(f"Error saving board {board.board_id}: {e}")
            return False

    def get_board(self, board_id: str) -> Optional[Board]:
        with _connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM boards WHERE board_id = ?", (board_id,)
            ).fetchone()
        if not row:
            return None
        data = dict(row)
        data["is_favorite"] = bool(data.get("is_favorite", 0))
        return Board.from_dict(data)

    def list_boards(self, favorites_only: bool = False) -> List[Board]:
        """List boards, most recently updated first."""
        query = "SELECT * FROM boards"
        if favorites_only:
            query += " WHERE is_favorite = 1"
        query += " ORDER BY updated_at DESC"
        with _connect(self.db_path) as conn:
            rows = conn.execute(query).fetchall()
        boards = []
        for row in rows:
            data = dict(row)
            data["is_favorite"] = bool(data.get("is_favorite", 0))
            boards.append(Board.from_dict(data))
        return boards

    def create_default_columns(self, board_id: str) -> List[StatusColumn]:
        """Lay out the default five columns on row 0."""
        columns = []
        for i, (title, color, wip_limit) in enumerate(DEFAULT_COLUMNS):
            col = StatusColumn(
                column_id=f"{board_id}-col-{i}",
                board_id=board_id,
                title=title,
                color=color,
                wip_limit=wip_limit,
                grid_row=0,
                grid_col=i,
            )
            if self.save_column(col):
                columns.append(col)
        return columns

    def delete_board(self, board_id: str) -> bool:
        """Delete a board with its columns and cards."""
        try:
            with _connect(self.db_path) as conn:
                conn.execute("DELETE FROM repo_cards WHERE board_id = ?", (board_id,))
                conn.execute("DELETE FROM status_columns WHERE board_id = ?", (board_id,))
                conn.execute("DELETE FROM boards WHERE board_id = ?", (board_id,))
                conn.commit()
                return True
        except sqlite3.Error as e:
            logger.error(f"Error deleting board {board_id}: {e}")
            return False

    # ── columns ─────────────────────────────────────────────

    def save_column(self, column: StatusColumn) -> bool:
        """Save or update a status column."""
        try:
            with _connect(self.db_path) as conn:
                conn.execute("""
                    INSERT OR REPLACE INTO status_columns
                    (column_id, board_id, title, color, wip_limit,
                     grid_row, grid_col, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    column.column_id,
                    column.board_id,
                    column.title,
                    column.color,
                    column.wip_limit or None,
                    column.grid_row,
                    column.grid_col,
                    column.created_at,
                    column.updated_at,
                ))
                conn.commit()
                return True
        except sqlite3.Error as e:
            logger.error(f"Error saving column {column.column_id}: {e}")
            return False

    def get_column(self, column_id: str) -> Optional[StatusColumn]:
        with _connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM status_columns WHERE column_id = ?", (column_id,)
            ).fetchone()
        return StatusColumn.from_dict(dict(row)) if row else None

    def list_columns(self, board_id: str) -> List[StatusColumn]:
        """Columns of a board in grid order."""
        with _connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM status_columns WHERE board_id = ? ORDER BY grid_row, grid_col",
                (board_id,),
            ).fetchall()
        return [StatusColumn.from_dict(dict(r)) for r in rows]

    def delete_column(self, column_id: str) -> bool:
        """Delete a column and the cards in it."""
        try:
            with _connect(self.db_path) as conn:
                conn.execute("DELETE FROM repo_cards WHERE status_id = ?", (column_id,))
                conn.execute("DELETE FROM status_columns WHERE column_id = ?", (column_id,))
                conn.commit()
                return True
        except sqlite3.Error as e:
            logger.error(f"Error deleting column {column_id}: {e}")
            return False

    # ── cards ───────────────────────────────────────────────

    def save_card(self, card: Card) -> bool:
        """Save or update a card. Metadata is validated here and nowhere else."""
        problems = card.meta.validate()
        if problems:
            logger.error(f"Rejecting card {card.card_id}: {'; '.join(problems)}")
            return False
        try:
            with _connect(self.db_path) as conn:
                conn.execute("""
                    INSERT OR REPLACE INTO repo_cards
                    (card_id, board_id, status_id, repo_owner, repo_name,
                     note, "order", meta, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    card.card_id,
                    card.board_id,
                    card.status_id,
                    card.repo_owner,
                    card.repo_name,
                    card.note,
                    card.order,
                    json.dumps(card.meta.to_dict()),
                    card.created_at,
                    card.updated_at,
                ))
                conn.commit()
                return True
        except sqlite3.Error as e:
            logger.error(f"Error saving card {card.card_id}: {e}")
            return False

    def get_card(self, card_id: str) -> Optional[Card]:
        with _connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM repo_cards WHERE card_id = ?", (card_id,)
            ).fetchone()
        return self._row_to_card(row) if row else None

    def list_cards(self, board_id: str) -> List[Card]:
        """Cards of a board grouped by column, in rank order."""
        with _connect(self.db_path) as conn:
            rows = conn.execute(
                'SELECT * FROM repo_cards WHERE board_id = ? ORDER BY status_id, "order"',
                (board_id,),
            ).fetchall()
        return [self._row_to_card(r) for r in rows]

    def next_order(self, status_id: str) -> float:
        """Rank that appends a new card at the bottom of a column."""
        with _connect(self.db_path) as conn:
            row = conn.execute(
                'SELECT MAX("order") FROM repo_cards WHERE status_id = ?', (status_id,)
            ).fetchone()
        return 0.0 if row[0] is None else float(row[0]) + 1

    def delete_card(self, card_id: str) -> bool:
        try:
            with _connect(self.db_path) as conn:
                conn.execute("DELETE FROM repo_cards WHERE card_id = ?", (card_id,))
                conn.commit()
                return True
        except sqlite3.Error as e:
            logger.error(f"Error deleting card {card_id}: {e}")
            return False

    def _row_to_card(self, row: sqlite3.Row) -> Card:
        """Convert a database row to a Card object."""
        data = dict(row)
        meta = {}
        if data.get("meta"):
            try:
                meta = json.loads(data["meta"])
            except (json.JSONDecodeError, TypeError):
                meta = {}
        data["meta"] = meta if isinstance(meta, dict) else {}
        return Card.from_dict(data)

    # ── authoritative snapshot ──────────────────────────────

    def load_state(self, board_id: str) -> BoardState:
        """Full board state as last persisted."""
        return BoardState(
            board=self.get_board(board_id),
            columns=self.list_columns(board_id),
            cards=self.list_cards(board_id),
        )

    # ── gateway (positional writes) ─────────────────────────

    def update_card_position(self, card_id: str, status_id: str, order: float) -> bool:
        try:
            with _connect(self.db_path) as conn:
                cur = conn.execute(
                    'UPDATE repo_cards SET status_id = ?, "order" = ?, updated_at = ? WHERE card_id = ?',
                    (status_id, order, utc_now(), card_id),
                )
                conn.commit()
                return cur.rowcount == 1
        except sqlite3.Error as e:
            logger.error(f"Error moving card {card_id}: {e}")
            return False

    def update_column_grid(self, column_id: str, grid_row: int, grid_col: int) -> bool:
        try:
            with _connect(self.db_path) as conn:
                cur = conn.execute(
                    "UPDATE status_columns SET grid_row = ?, grid_col = ?, updated_at = ? WHERE column_id = ?",
                    (grid_row, grid_col, utc_now(), column_id),
                )
                conn.commit()
                return cur.rowcount == 1
        except sqlite3.Error as e:
            logger.error(f"Error moving column {column_id}: {e}")
            return False

    async def persist_card_move(self, card_id: str, status_id: str, order: float) -> bool:
        return await asyncio.to_thread(self.update_card_position, card_id, status_id, order)

    async def persist_column_grid(self, column_id: str, grid_row: int, grid_col: int) -> bool:
        return await asyncio.to_thread(self.update_column_grid, column_id, grid_row, grid_col)

    # ── key/value (snapshot storage) ────────────────────────

    def get_item(self, key: str) -> Optional[str]:
        try:
            with _connect(self.db_path) as conn:
                row = conn.execute(
                    "SELECT value FROM system_state WHERE key = ?", (key,)
                ).fetchone()
            return row[0] if row else None
        except sqlite3.Error as e:
            logger.warning(f"Failed to read {key} from storage: {e}")
            return None

    def set_item(self, key: str, value: str) -> None:
        try:
            with _connect(self.db_path) as conn:
                conn.execute(
                    "INSERT OR REPLACE INTO system_state (key, value, updated_at) VALUES (?, ?, ?)",
                    (key, value, utc_now()),
                )
                conn.commit()
        except sqlite3.Error as e:
            logger.warning(f"Failed to write {key} to storage: {e}")

    def remove_item(self, key: str) -> None:
        try:
            with _connect(self.db_path) as conn:
                conn.execute("DELETE FROM system_state WHERE key = ?", (key,))
                conn.commit()
        except sqlite3.Error as e:
            logger.warning(f"Failed to remove {key} from storage: {e}")
