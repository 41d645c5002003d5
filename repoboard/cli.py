#!/usr/bin/env python3
"""
repoboard command line.

    repoboard new-board BOARD_ID NAME [--theme THEME]
    repoboard add-card BOARD_ID STATUS_ID OWNER/NAME [--note TEXT] [--stars N] [--language L]
    repoboard show BOARD_ID [--cached]
    repoboard move CARD_ID STATUS_ID INDEX
    repoboard column COLUMN_ID (--cell ROW COL | --insert ROW COL | --new-row)

Drops go through the same BoardEngine a UI would use: the local state is
updated first, then the positional writes are persisted and reconciled
before the command exits.
"""
import argparse
import asyncio
import inspect
import logging
import sys
import uuid
from pathlib import Path
from typing import List, Optional

from . import serializer
from .config import EngineConfig
from .engine import BoardEngine
from .errors import BoardError
from .schema import Board, Card, DropDescriptor, RepoMeta, Theme
from .snapshot import StateSnapshotter, board_tree, state_from_tree
from .state import BoardState
from .store import SqliteBoardStore
from .wip import violates_wip, wip_summary

logger = logging.getLogger(__name__)


def render(state: BoardState) -> str:
    """Columns in grid order with their cards, flagging WIP overruns."""
    lines = []
    if state.board is not None:
        theme = state.board.theme
        lines.append(f"{state.board.name} [{state.board.board_id}] theme={theme.value}"
                     f"{' (dark)' if theme.is_dark else ''}")
    current_row = None
    for column in state.columns_on_board():
        if column.grid_row != current_row:
            current_row = column.grid_row
            lines.append(f"── row {current_row} ──")
        flag = ""
        if violates_wip(column, state.card_count(column.column_id)):
            flag = "  ⚠ WIP limit exceeded"
        lines.append(
            f"  ({column.grid_row},{column.grid_col}) {column.title} "
            f"[{column.column_id}] {wip_summary(state, column)}{flag}"
        )
        for card in state.cards_in_column(column.column_id):
            stars = f" ★{card.meta.stars}" if card.meta.stars is not None else ""
            lines.append(f"      {card.order:g}  {card.full_name}{stars}  [{card.card_id}]")
    return "\n".join(lines)


def _snapshotter(store: SqliteBoardStore, cfg: EngineConfig, board_id: str) -> StateSnapshotter:
    codec = serializer.create_compressed_serializer(
        cfg.compression_format, backend=cfg.compression_backend
    )
    return StateSnapshotter(
        store, codec,
        key=f"{cfg.snapshot_key}:{board_id}",
        version=cfg.snapshot_version,
        debounce_ms=cfg.save_debounce_ms,
    )


# ── commands ────────────────────────────────────────────────


def cmd_new_board(args, store: SqliteBoardStore, cfg: EngineConfig) -> int:
    board = Board(board_id=args.board_id, name=args.name, theme=Theme.from_str(args.theme))
    if not store.save_board(board):
        return 1
    columns = store.create_default_columns(board.board_id)
    print(f"Created board {board.board_id} with {len(columns)} columns")
    return 0


def cmd_add_card(args, store: SqliteBoardStore, cfg: EngineConfig) -> int:
    owner, sep, name = args.repo.partition("/")
    if not sep or not owner or not name:
        print(f"Expected OWNER/NAME, got {args.repo!r}", file=sys.stderr)
        return 2
    column = store.get_column(args.status_id)
    if column is None or column.board_id != args.board_id:
        print(f"No column {args.status_id} on board {args.board_id}", file=sys.stderr)
        return 1
    card = Card(
        card_id=uuid.uuid4().hex[:8],
        board_id=args.board_id,
        status_id=args.status_id,
        repo_owner=owner,
        repo_name=name,
        order=store.next_order(args.status_id),
        note=args.note,
        meta=RepoMeta(stars=args.stars, language=args.language),
    )
    if not store.save_card(card):
        return 1
    print(f"Added {card.full_name} as {card.card_id}")
    count = sum(1 for c in store.list_cards(args.board_id) if c.status_id == args.status_id)
    if violates_wip(column, count):
        print(f"⚠ {column.title} is over its WIP limit ({count}/{column.wip_limit})")
    return 0


async def cmd_show(args, store: SqliteBoardStore, cfg: EngineConfig) -> int:
    await serializer.init(cfg.compression_backend)
    snapshots = _snapshotter(store, cfg, args.board_id)

    state = None
    if args.cached:
        state = state_from_tree(snapshots.load())
        if state is None:
            logger.info("No usable cached state, reading the database")
    if state is None:
        state = store.load_state(args.board_id)
        if state.board is None:
            print(f"No board {args.board_id}", file=sys.stderr)
            return 1
        snapshots.save(board_tree(state))
    print(render(state))
    return 0


async def _run_drop(store: SqliteBoardStore, cfg: EngineConfig, board_id: str, drop) -> int:
    """Load the board, apply one drop through the engine, wait for persistence."""
    engine = BoardEngine(store.load_state(board_id), store, cfg)
    failures: List[BoardError] = []
    engine.subscribe("persistence_failed", lambda error: failures.append(error))

    result = drop(engine)
    print(result.message or ("Committed" if result.committed else "No change"))
    for column_id in result.wip_violations:
        column = engine.state.columns[column_id]
        print(f"⚠ {column.title} is over its WIP limit ({wip_summary(engine.state, column)})")
    await engine.drain()

    for error in failures:
        print(f"✗ {error} ({error.recovered})", file=sys.stderr)

    await serializer.init(cfg.compression_backend)
    _snapshotter(store, cfg, board_id).save(board_tree(engine.state))
    return 1 if failures else 0


async def cmd_move(args, store: SqliteBoardStore, cfg: EngineConfig) -> int:
    card = store.get_card(args.card_id)
    if card is None:
        print(f"No card {args.card_id}", file=sys.stderr)
        return 1
    return await _run_drop(
        store, cfg, card.board_id,
        lambda engine: engine.move_card(args.card_id, args.status_id, args.index),
    )


async def cmd_column(args, store: SqliteBoardStore, cfg: EngineConfig) -> int:
    column = store.get_column(args.column_id)
    if column is None:
        print(f"No column {args.column_id}", file=sys.stderr)
        return 1
    if args.cell:
        drop = DropDescriptor.cell(*args.cell)
    elif args.insert:
        drop = DropDescriptor.insert(*args.insert)
    else:
        drop = DropDescriptor.new_row()
    return await _run_drop(
        store, cfg, column.board_id,
        lambda engine: engine.reorder_column(args.column_id, drop),
    )


# ── entry point ─────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="repoboard",
        description="Kanban board of repository references",
    )
    ap.add_argument("--config", default=None, help="Path to config.yaml")
    ap.add_argument(
        "--db", default=None,
        help="SQLite database (default: ~/.local/share/repoboard/board.db)",
    )
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("new-board", help="Create a board with the default columns")
    p.add_argument("board_id")
    p.add_argument("name")
    p.add_argument("--theme", default="sunrise", choices=[t.value for t in Theme])

    p = sub.add_parser("add-card", help="Add a repository card at the bottom of a column")
    p.add_argument("board_id")
    p.add_argument("status_id")
    p.add_argument("repo", help="OWNER/NAME")
    p.add_argument("--note", default=None)
    p.add_argument("--stars", type=int, default=None)
    p.add_argument("--language", default=None)

    p = sub.add_parser("show", help="Render a board in grid order")
    p.add_argument("board_id")
    p.add_argument("--cached", action="store_true", help="Prefer the compressed state snapshot")

    p = sub.add_parser("move", help="Move a card to a position in a column")
    p.add_argument("card_id")
    p.add_argument("status_id")
    p.add_argument("index", type=int)

    p = sub.add_parser("column", help="Move a status column on the grid")
    p.add_argument("column_id")
    target = p.add_mutually_exclusive_group(required=True)
    target.add_argument("--cell", nargs=2, type=int, metavar=("ROW", "COL"),
                        help="Swap with the column at this cell, or take it if empty")
    target.add_argument("--insert", nargs=2, type=int, metavar=("ROW", "COL"),
                        help="Insert before this cell, shifting the row right")
    target.add_argument("--new-row", action="store_true", help="Start a new row")
    return ap


COMMANDS = {
    "new-board": cmd_new_board,
    "add-card": cmd_add_card,
    "show": cmd_show,
    "move": cmd_move,
    "column": cmd_column,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [repoboard] %(levelname)s: %(message)s",
        stream=sys.stdout,
    )

    try:
        cfg = EngineConfig.load(args.config)
    except BoardError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2
    if args.db:
        cfg.db_path = str(Path(args.db).expanduser())

    store = SqliteBoardStore(cfg.db_path)
    handler = COMMANDS[args.command]
    try:
        if inspect.iscoroutinefunction(handler):
            return asyncio.run(handler(args, store, cfg))
        return handler(args, store, cfg)
    except BoardError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
