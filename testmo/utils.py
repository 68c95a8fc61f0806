from __future__ import annotations

import uuid
from datetime import UTC, datetime


def now_iso() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_case_id(existing: set[str] | None = None) -> str:
    existing = existing or set()
    while True:
        case_id = f"TC-{uuid.uuid4().hex[:8].upper()}"
        if case_id not in existing:
            return case_id


def new_entry_id() -> str:
    return uuid.uuid4().hex
