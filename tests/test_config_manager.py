"""Unit tests for configuration management."""

from pathlib import Path

import pytest

from rosterlab.config import (
    ConfigError,
    ConfigManager,
    RosterLabConfig,
    flatten_for_env,
    resolve_with_precedence,
)


def _fresh_manager(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> ConfigManager:
    monkeypatch.setenv("HOME", str(tmp_path))
    return ConfigManager()


def test_ensure_exists_creates_default_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)

    path = manager.ensure_exists()

    assert path == tmp_path / ".rosterlab" / "config.yaml"
    text = path.read_text(encoding="utf-8")
    assert "rosterlab configuration file" in text
    assert "Last updated:" in text

    config = manager.load(include_env=False)
    assert isinstance(config, RosterLabConfig)
    assert config.library.roster_script == "data/select.def"


def test_resolve_with_precedence_respects_order(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.ensure_exists()

    manager.save({"library": {"working_dir": "/games/engine"}, "backups": {"keep": 5}})

    env = {"ROSTERLAB__BACKUPS__KEEP": "8", "ROSTERLAB__LOGGING__LEVEL": "DEBUG"}
    cli = {"backups.keep": 3}

    config = manager.load(cli_overrides=cli, env_overrides=env)

    assert config.library.working_dir == "/games/engine"
    assert config.logging.level == "DEBUG"
    # CLI overrides take precedence over environment
    assert config.backups.keep == 3


def test_environment_lists_are_parsed_as_yaml(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)

    config = manager.load(env_overrides={"ROSTERLAB__NAMING__GENERIC_FOLDER_PREFIXES": "[draft, wip]"})

    assert config.naming.generic_folder_prefixes == ["draft", "wip"]


def test_invalid_yaml_raises_config_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.ensure_exists()

    manager.config_path.write_text("- not-a-mapping", encoding="utf-8")

    with pytest.raises(ConfigError):
        manager.load()


def test_unknown_keys_are_rejected(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)

    with pytest.raises(ConfigError):
        manager.load(cli_overrides={"library.chars_folder": "fighters"})


def test_flatten_for_env_round_trips_defaults() -> None:
    flat = flatten_for_env(RosterLabConfig())

    assert flat["ROSTERLAB__LIBRARY__ROSTER_SCRIPT"] == "data/select.def"
    assert flat["ROSTERLAB__BACKUPS__KEEP"] == "20"


def test_resolve_with_precedence_invalid_value_raises() -> None:
    with pytest.raises(ConfigError):
        resolve_with_precedence(
            defaults=RosterLabConfig(),
            file_overrides={"backups": {"keep": "not-an-int"}},
        )
