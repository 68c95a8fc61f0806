"""testmo init: create .testmo/ with a default config and an empty store."""
from __future__ import annotations

from pathlib import Path

from testmo.config import WORKSPACE_DIR, load_config, write_default_config
from testmo.store.state import StateManager


def init_workspace(target_dir: Path | None = None) -> str:
    target = target_dir or Path.cwd()
    workspace_dir = target / WORKSPACE_DIR
    if workspace_dir.exists():
        return f"Already initialized: {workspace_dir} exists"

    config_path = write_default_config(target)
    config = load_config(target)
    store = StateManager(config.db_path, max_bytes=config.store_max_bytes)
    try:
        users = store.load_users()
    finally:
        store.close()

    return "\n".join([
        f"✓ Created {config_path}",
        f"✓ Created {config.db_path}",
        f"  Default user: {users[0].username}",
        "",
        "Next: testmo login admin <password>, then testmo generate or testmo import",
    ])


def cmd_init(cwd: str):
    print(init_workspace(Path(cwd)))
