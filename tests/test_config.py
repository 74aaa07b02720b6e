"""Tests for runtime configuration."""

from datetime import datetime, timezone
from pathlib import Path

from skillduggery.config import Config
from skillduggery.rules.signing_keys import DEFAULT_TRUSTED_KEYS
from skillduggery.suppressions import new_suppression, save_suppressions


def test_defaults(isolated_home: Path) -> None:
    config = Config.load()

    assert config.home == isolated_home
    assert config.rule_pack_dir == isolated_home / "rules" / "current"
    assert config.suppressions_path == isolated_home / "suppressions.yaml"
    assert config.trusted_keys == DEFAULT_TRUSTED_KEYS
    assert config.max_file_size_mb == 10
    assert config.use_behavioral_analyzer is True
    assert config.use_meta_filtering is True
    assert config.log_level == "INFO"
    assert config.rule_pack.source == "bundled"
    assert config.rule_pack.warnings == ()


def test_environment_overrides(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SKILLDUGGERY_RULE_PACK_DIR", str(tmp_path / "pack"))
    monkeypatch.setenv("SKILLDUGGERY_SUPPRESSIONS", str(tmp_path / "s.yaml"))
    monkeypatch.setenv("SKILLDUGGERY_MAX_FILE_SIZE_MB", "2")
    monkeypatch.setenv("SKILLDUGGERY_BEHAVIORAL", "off")
    monkeypatch.setenv("SKILLDUGGERY_META_FILTERING", "0")
    monkeypatch.setenv("SKILLDUGGERY_LOG_LEVEL", "DEBUG")

    config = Config.load()

    assert config.rule_pack_dir == tmp_path / "pack"
    assert config.suppressions_path == tmp_path / "s.yaml"
    assert config.max_file_size_mb == 2
    assert config.use_behavioral_analyzer is False
    assert config.use_meta_filtering is False
    assert config.log_level == "DEBUG"


def test_malformed_values_fall_back(monkeypatch) -> None:
    monkeypatch.setenv("SKILLDUGGERY_MAX_FILE_SIZE_MB", "lots")
    monkeypatch.setenv("SKILLDUGGERY_BEHAVIORAL", "maybe")

    config = Config.load()

    assert config.max_file_size_mb == 10
    assert config.use_behavioral_analyzer is True


def test_explicit_arguments_win(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SKILLDUGGERY_RULE_PACK_DIR", str(tmp_path / "env-pack"))
    config = Config.load(rule_pack_dir=tmp_path / "arg-pack", suppressions_path=tmp_path / "arg.yaml")
    assert config.rule_pack_dir == tmp_path / "arg-pack"
    assert config.suppressions_path == tmp_path / "arg.yaml"


def test_trusted_keys_from_environment(monkeypatch) -> None:
    key = "A" * 43 + "="
    monkeypatch.setenv("SKILLDUGGERY_TRUSTED_KEYS", f"{key}, not-a-key")
    config = Config.load()
    assert config.trusted_keys == [bytes(32)]


def test_scan_options_load_active_suppressions(tmp_path: Path) -> None:
    path = tmp_path / "suppressions.yaml"
    save_suppressions(
        path,
        [
            new_suppression("KEEP", days=None),
            new_suppression("EXPIRED", days=1, now=datetime(2000, 1, 1, tzinfo=timezone.utc)),
        ],
    )
    options = Config.load(suppressions_path=path).scan_options()
    assert [s.rule_id for s in options.suppressions] == ["KEEP"]
    assert options.use_behavioral_analyzer is True


def test_build_engine_uses_loaded_rules() -> None:
    engine = Config.load().build_engine()
    assert engine.state == "idle"
