"""Config loading from .testmo/config.yaml."""
from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from testmo.config import (
    DEFAULT_CONFIG_YAML,
    Config,
    load_config,
    parse_config,
    write_default_config,
)

if TYPE_CHECKING:
    from pathlib import Path


def test_missing_file_gives_defaults(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("TESTMO_LOG_LEVEL", raising=False)
    config = load_config(tmp_path)
    assert config == Config(root=tmp_path)
    assert config.ai.max_attempts == 5
    assert config.ai.base_delay == 4.0
    assert config.ai.import_batch_size == 3
    assert config.db_path == tmp_path / ".testmo" / "state.db"


def test_default_file_matches_defaults(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("TESTMO_LOG_LEVEL", raising=False)
    path = write_default_config(tmp_path)
    assert path.read_text(encoding="utf-8") == DEFAULT_CONFIG_YAML
    assert load_config(tmp_path) == Config(root=tmp_path)


def test_values_are_read(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("TESTMO_LOG_LEVEL", raising=False)
    config = parse_config({
        "log_level": "debug",
        "ai": {"model": "gemini-2.5-pro", "base_delay": 2, "import_batch_size": 5, "unknown": 1},
        "store": {"max_bytes": 0},
        "activity": {"limit": 10},
        "auth": {"password": 1234},
    }, tmp_path)
    assert config.log_level == "DEBUG"
    assert config.ai.model == "gemini-2.5-pro"
    assert config.ai.base_delay == 2.0
    assert isinstance(config.ai.base_delay, float)
    assert config.ai.import_batch_size == 5
    assert config.store_max_bytes == 0
    assert config.activity_limit == 10
    assert config.auth_password == "1234"


@pytest.mark.parametrize("raw, key", [
    ({"ai": {"max_attempts": "five"}}, "ai.max_attempts"),
    ({"ai": {"jitter": True}}, "ai.jitter"),
    ({"store": {"max_bytes": 1.5}}, "store.max_bytes"),
    ({"log_level": 3}, "log_level"),
])
def test_wrong_types_name_the_key(raw, key):
    with pytest.raises(ValueError, match=key):
        parse_config(raw)


def test_bounds_are_checked():
    with pytest.raises(ValueError, match="max_attempts"):
        parse_config({"ai": {"max_attempts": 0}})
    with pytest.raises(ValueError, match="import_batch_size"):
        parse_config({"ai": {"import_batch_size": 0}})


def test_sections_must_be_mappings():
    with pytest.raises(ValueError, match="ai"):
        parse_config({"ai": ["model"]})


def test_env_overrides_log_level(monkeypatch):
    monkeypatch.setenv("TESTMO_LOG_LEVEL", "info")
    assert parse_config({"log_level": "ERROR"}).log_level == "INFO"


def test_api_key_comes_from_env(monkeypatch):
    monkeypatch.setenv("MY_KEY", "secret")
    config = parse_config({"ai": {"api_key_env": "MY_KEY"}})
    assert config.ai.api_key == "secret"
