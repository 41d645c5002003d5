"""Tests for YAML-backed engine configuration."""
import pytest

from repoboard.config import EngineConfig
from repoboard.errors import ConfigError


@pytest.fixture(autouse=True)
def no_env_override(monkeypatch):
    monkeypatch.delenv("REPOBOARD_DB", raising=False)


def test_missing_file_uses_defaults(tmp_path):
    cfg = EngineConfig.load(str(tmp_path / "absent.yaml"))
    assert cfg.undo_depth == 10
    assert cfg.compaction_threshold == 1e-6
    assert cfg.conflict_policy == "collapse"
    assert cfg.compression_format == "utf16"
    assert "~" not in cfg.db_path


def test_bundled_config_loads():
    cfg = EngineConfig.load()
    assert cfg.snapshot_key == "repoboard-state"
    assert cfg.persist_timeout_secs == 10.0


def test_values_and_unknown_keys(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "undo_depth: 15\n"
        "conflict_policy: reject\n"
        "compression_format: base64\n"
        "db_path: /tmp/boards.db\n"
        "colour_scheme: loud\n"
    )
    cfg = EngineConfig.load(str(path))
    assert cfg.undo_depth == 15
    assert cfg.conflict_policy == "reject"
    assert cfg.compression_format == "base64"
    assert cfg.db_path == "/tmp/boards.db"


def test_unreadable_yaml_falls_back(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("undo_depth: [unclosed\n")
    assert EngineConfig.load(str(path)).undo_depth == 10

    path.write_text("- just\n- a list\n")
    assert EngineConfig.load(str(path)).undo_depth == 10


def test_invalid_values_raise(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("conflict_policy: merge\n")
    with pytest.raises(ConfigError):
        EngineConfig.load(str(path))

    for bad in (
        EngineConfig(undo_depth=0),
        EngineConfig(compaction_threshold=0),
        EngineConfig(persist_timeout_secs=-1),
        EngineConfig(compression_format="gzip"),
        EngineConfig(save_debounce_ms=-5),
    ):
        with pytest.raises(ConfigError):
            bad.validate()


def test_env_overrides_db_path(tmp_path, monkeypatch):
    monkeypatch.setenv("REPOBOARD_DB", str(tmp_path / "env.db"))
    cfg = EngineConfig.load(str(tmp_path / "absent.yaml"))
    assert cfg.db_path == str(tmp_path / "env.db")
