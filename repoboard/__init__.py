# Repoboard: kanban board of repository references with an optimistic mutation engine
#
# Components:
#   schema.py     - Data model (Board, StatusColumn, Card, RepoMeta, MutationRecord)
#   state.py      - BoardState context object and invariant checks
#   grid.py       - Grid position model for column drag-and-drop
#   ordering.py   - Card rank computation and column compaction
#   wip.py        - Advisory WIP limit checks
#   reducer.py    - Pure drop/undo transitions producing inverse records
#   history.py    - Bounded undo stack
#   engine.py     - Coordinator: drag lifecycle, optimistic commit, reconcile
#   store.py      - SQLite persistence collaborator and key/value storage
#   transforms.py - JSON encode/decode with replacer/reviver transforms
#   serializer.py - LZ-String compressed state codec
#   snapshot.py   - Versioned, debounced state snapshots
#   config.py     - YAML-backed engine configuration
#   cli.py        - Command line entry point

__version__ = "0.3.0"
