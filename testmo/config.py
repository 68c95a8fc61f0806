"""Load .testmo/config.yaml into typed settings."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

WORKSPACE_DIR = ".testmo"
CONFIG_FILE = "config.yaml"
STATE_FILE = "state.db"

DEFAULT_CONFIG_YAML = """\
# testmo configuration
log_level: WARNING

ai:
  model: gemini-2.5-flash
  api_key_env: GEMINI_API_KEY   # environment variable holding the key
  max_attempts: 5
  base_delay: 4.0               # seconds, doubled on every retry
  max_delay: 60.0
  jitter: 1.0
  import_batch_size: 3          # CSV data rows per request
  batch_pause: 2.0

store:
  max_bytes: 5000000            # 0 disables the quota check

activity:
  limit: 50

auth:
  password: password
"""


@dataclass
class AIConfig:
    model: str = "gemini-2.5-flash"
    api_key_env: str = "GEMINI_API_KEY"
    max_attempts: int = 5
    base_delay: float = 4.0
    max_delay: float = 60.0
    jitter: float = 1.0
    import_batch_size: int = 3
    batch_pause: float = 2.0

    @property
    def api_key(self) -> str:
        return os.getenv(self.api_key_env, "")


@dataclass
class Config:
    root: Path = field(default_factory=Path.cwd)
    log_level: str = "WARNING"
    ai: AIConfig = field(default_factory=AIConfig)
    store_max_bytes: int = 5_000_000
    activity_limit: int = 50
    auth_password: str = "password"

    @property
    def workspace_dir(self) -> Path:
        return self.root / WORKSPACE_DIR

    @property
    def db_path(self) -> Path:
        return self.workspace_dir / STATE_FILE

    @property
    def config_path(self) -> Path:
        return self.workspace_dir / CONFIG_FILE


def _typed(section: str, key: str, value: Any, expected: type) -> Any:
    # ints are accepted where floats are expected, bools never count as numbers
    if expected is float and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    if not isinstance(value, expected) or (expected is not bool and isinstance(value, bool)):
        name = f"{section}.{key}" if section else key
        raise ValueError(f"Config key '{name}' must be {expected.__name__}, got {type(value).__name__}")
    return value


def _section(raw: dict, name: str) -> dict:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ValueError(f"Config section '{name}' must be a mapping")
    return value


def parse_config(raw: dict | None, root: Path | None = None) -> Config:
    raw = raw or {}
    if not isinstance(raw, dict):
        raise ValueError("Config file must contain a mapping")
    config = Config(root=root or Path.cwd())

    if "log_level" in raw:
        config.log_level = _typed("", "log_level", raw["log_level"], str).upper()

    ai_raw = _section(raw, "ai")
    types = {f.name: f.type for f in fields(AIConfig)}
    expected = {"str": str, "int": int, "float": float}
    for key, value in ai_raw.items():
        if key in types:
            setattr(config.ai, key, _typed("ai", key, value, expected[types[key]]))

    store_raw = _section(raw, "store")
    if "max_bytes" in store_raw:
        config.store_max_bytes = _typed("store", "max_bytes", store_raw["max_bytes"], int)
    activity_raw = _section(raw, "activity")
    if "limit" in activity_raw:
        config.activity_limit = _typed("activity", "limit", activity_raw["limit"], int)
    auth_raw = _section(raw, "auth")
    if "password" in auth_raw:
        config.auth_password = str(auth_raw["password"])

    if config.ai.max_attempts < 1:
        raise ValueError("Config key 'ai.max_attempts' must be >= 1")
    if config.ai.import_batch_size < 1:
        raise ValueError("Config key 'ai.import_batch_size' must be >= 1")

    env_level = os.getenv("TESTMO_LOG_LEVEL")
    if env_level:
        config.log_level = env_level.upper()
    return config


def load_config(root: Path | None = None) -> Config:
    """Read ``<root>/.testmo/config.yaml``; a missing file yields the defaults."""
    root = root or Path.cwd()
    path = root / WORKSPACE_DIR / CONFIG_FILE
    raw = None
    if path.exists():
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    return parse_config(raw, root)


def write_default_config(root: Path) -> Path:
    path = root / WORKSPACE_DIR / CONFIG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_CONFIG_YAML, encoding="utf-8")
    return path
