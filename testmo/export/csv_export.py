"""Flatten cases into semicolon-separated rows, one per (case, step).

Two layouts:
  standard: every case-level column repeated on each row
  external: test-management import layout; the case title is the grouping
            key on every row, description and tags only on a case's first row
"""
from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from testmo.types import TestCase

DELIMITER = ";"
BOM = "\ufeff"

STANDARD_HEADERS = [
    "Case ID",
    "Title",
    "Priority",
    "Status",
    "Created By",
    "Step No",
    "Step Description",
    "Expected Result",
    "Test Data",
    "Step Status",
    "Notes",
    "Last Updated",
    "Meta",
]

EXTERNAL_HEADERS = [
    "Name",
    "Step",
    "Result",
    "TestData",
    "ExternalID",
    "Description",
    "Tags",
]


def quote(value: str | None) -> str:
    text = "" if value is None else str(value)
    return '"' + text.replace('"', '""') + '"'


def _meta_inline(case: TestCase) -> str:
    return "|".join(f"{k}:{v}" for k, v in (case.meta or {}).items())


def _full_description(case: TestCase) -> str:
    text = case.summary
    if case.preconditions:
        text += "\n\nPreconditions:\n- " + "\n- ".join(case.preconditions)
    if case.meta:
        text += "\n\nDimensions:\n" + "\n".join(f"{k}: {v}" for k, v in case.meta.items())
    return text


def _ordered_steps(case: TestCase):
    return sorted(case.steps, key=lambda s: s.sequence)


def export_standard(cases: list[TestCase]) -> str:
    rows = [DELIMITER.join(STANDARD_HEADERS)]
    for case in cases:
        meta = _meta_inline(case)
        for step in _ordered_steps(case):
            rows.append(DELIMITER.join([
                quote(case.case_id),
                quote(case.title),
                str(case.priority),
                str(case.display_status),
                quote(case.created_by),
                str(step.sequence),
                quote(step.description),
                quote(step.expected_result),
                quote(step.test_data),
                str(step.status),
                quote(step.notes),
                quote(case.last_updated),
                quote(meta),
            ]))
    return "\n".join(rows)


def export_external(cases: list[TestCase]) -> str:
    rows = [DELIMITER.join(EXTERNAL_HEADERS)]
    for case in cases:
        description = _full_description(case)
        tags = ",".join(case.tags)
        for index, step in enumerate(_ordered_steps(case)):
            first = index == 0
            rows.append(DELIMITER.join([
                quote(case.title),
                quote(step.description),
                quote(step.expected_result),
                quote(step.test_data),
                quote(case.case_id),
                quote(description) if first else "",
                quote(tags) if first else "",
            ]))
    return "\n".join(rows)


def write_export(content: str, directory: Path, prefix: str) -> Path:
    """Write ``<prefix>_<date>.csv`` with a UTF-8 BOM so spreadsheet tools detect the encoding."""
    directory.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now(tz=UTC).strftime("%Y-%m-%d")
    path = directory / f"{prefix}_{stamp}.csv"
    path.write_text(BOM + content, encoding="utf-8")
    return path
