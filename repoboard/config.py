# Repoboard: configuration
# Override defaults via config.yaml, the REPOBOARD_DB env var, or CLI args.

import os
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).parent / "config.yaml"

CONFLICT_POLICIES = ("collapse", "reject")
COMPRESSION_FORMATS = ("utf16", "base64", "uri")


@dataclass
class EngineConfig:
    """Runtime configuration for the board engine and state snapshots."""

    # Undo
    undo_depth: int = 10

    # Card ranks: renumber the column when a gap drops below this
    compaction_threshold: float = 1e-6

    # Persistence
    persist_timeout_secs: float = 10.0
    conflict_policy: str = "collapse"      # collapse | reject

    # Snapshot codec
    compression_format: str = "utf16"      # utf16 | base64 | uri
    compression_backend: str = "lzstring"
    snapshot_key: str = "repoboard-state"
    snapshot_version: int = 1
    save_debounce_ms: int = 300

    # Storage
    db_path: str = "~/.local/share/repoboard/board.db"

    def validate(self):
        """Raise ConfigError on values the engine cannot work with."""
        if self.undo_depth < 1:
            raise ConfigError(f"undo_depth must be >= 1, got {self.undo_depth}")
        if self.compaction_threshold <= 0:
            raise ConfigError(
                f"compaction_threshold must be > 0, got {self.compaction_threshold}"
            )
        if self.persist_timeout_secs <= 0:
            raise ConfigError(
                f"persist_timeout_secs must be > 0, got {self.persist_timeout_secs}"
            )
        if self.conflict_policy not in CONFLICT_POLICIES:
            raise ConfigError(
                f"conflict_policy must be one of {CONFLICT_POLICIES}, "
                f"got {self.conflict_policy!r}"
            )
        if self.compression_format not in COMPRESSION_FORMATS:
            raise ConfigError(
                f"compression_format must be one of {COMPRESSION_FORMATS}, "
                f"got {self.compression_format!r}"
            )
        if self.save_debounce_ms < 0:
            raise ConfigError(f"save_debounce_ms must be >= 0, got {self.save_debounce_ms}")

    def resolve_paths(self):
        """Apply the REPOBOARD_DB override and expand ~."""
        env_db = os.environ.get("REPOBOARD_DB")
        if env_db:
            self.db_path = env_db
        self.db_path = str(Path(self.db_path).expanduser())

    @classmethod
    def load(cls, path: Optional[str] = None) -> "EngineConfig":
        """Load config from YAML file, falling back to defaults."""
        cfg_path = Path(path) if path else CONFIG_PATH
        known = {f.name for f in fields(cls)}
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
                cfg = cls(**{k: v for k, v in data.items() if k in known})
            except (OSError, yaml.YAMLError, TypeError, AttributeError) as e:
                logger.warning(f"Ignoring unreadable config {cfg_path}: {e}")
                cfg = cls()
        else:
            cfg = cls()
        cfg.resolve_paths()
        cfg.validate()
        return cfg
