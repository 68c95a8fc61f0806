"""TestAssistant: the AI collaborator used by the workspace.

Every operation builds a prompt, asks the provider for schema-constrained
JSON, and hydrates the answer at the boundary. Calls run through
``with_retry`` so rate limits back off; malformed answers surface at once.
An operation already in flight for the same target raises
OperationPendingError instead of being submitted twice.
"""
from __future__ import annotations

import contextlib
import logging
import time
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from testmo.ai import prompts, schemas
from testmo.ai.hydrate import (
    hydrate_analysis,
    hydrate_case,
    hydrate_defect,
    parse_json_payload,
)
from testmo.ai.retry import with_retry
from testmo.errors import MalformedResponseError, OperationPendingError, ValidationError
from testmo.types import MediaInput
from testmo.utils import new_case_id

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from testmo.ai.provider import Provider
    from testmo.config import AIConfig
    from testmo.types import DefectReport, EvidenceAnalysis, ProjectSettings, TestCase, TestStep

logger = logging.getLogger(__name__)

VARIANT_TAG = "AI-Variant"
VARIANT_AUTHOR = "AI-Variant-Generator"
IMPORT_AUTHOR = "BulkImport"


def _raw_case_id(raw: Any) -> str | None:
    if isinstance(raw, dict) and raw.get("case_id"):
        return str(raw["case_id"])
    return None


class TestAssistant:
    __test__ = False  # not a pytest class

    def __init__(
        self,
        provider: Provider,
        config: AIConfig,
        settings: ProjectSettings | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.provider = provider
        self.config = config
        self.settings = settings
        self._sleep = sleep
        self._pending: set[str] = set()

    # ─── Pending guard ───

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    @contextlib.contextmanager
    def _guard(self, key: str) -> Iterator[None]:
        if key in self._pending:
            raise OperationPendingError(f"'{key}' is already running")
        self._pending.add(key)
        try:
            yield
        finally:
            self._pending.discard(key)

    # ─── Transport ───

    def _ask(self, label: str, prompt: str, *, system: str, schema: dict, temperature: float,
             media: MediaInput | None = None) -> Any:
        def attempt() -> Any:
            text = self.provider.generate(prompt, system=system, schema=schema,
                                          temperature=temperature, media=media)
            return parse_json_payload(text)

        try:
            return with_retry(
                attempt,
                attempts=self.config.max_attempts,
                base_delay=self.config.base_delay,
                max_delay=self.config.max_delay,
                jitter=self.config.jitter,
                sleep=self._sleep,
                label=label,
            )
        except MalformedResponseError as e:
            logger.error("%s returned malformed output: %s", label, e)
            raise

    # ─── Operations ───

    def generate(
        self,
        context: str,
        *,
        role: str = "Case Manager",
        priority: str = "Medium",
        media: MediaInput | None = None,
        existing_ids: set[str] | None = None,
    ) -> TestCase:
        if not context.strip() and media is None:
            raise ValidationError("Describe the scenario or attach a file to generate a test case")
        taken = existing_ids or set()
        with self._guard("generate"):
            raw = self._ask(
                "generate",
                prompts.generate_prompt(context, role, priority, media, self.settings),
                system=prompts.SYSTEM_QA,
                schema=schemas.CASE_SCHEMA,
                temperature=0.3,
                media=media,
            )
            case_id = _raw_case_id(raw)
            if case_id is None or case_id in taken:
                case_id = new_case_id(taken)
            return hydrate_case(raw, case_id=case_id, created_by=role)

    def refine(self, case: TestCase) -> TestCase:
        """Rewrite a case's content; id, status, author and draft flag are kept, steps start over."""
        with self._guard(f"refine:{case.case_id}"):
            raw = self._ask(
                "refine",
                prompts.refine_prompt(case, self.settings),
                system=prompts.SYSTEM_QA,
                schema=schemas.CASE_SCHEMA,
                temperature=0.3,
            )
        refined = hydrate_case(raw, case_id=case.case_id, created_by=case.created_by, is_draft=case.is_draft)
        return replace(
            refined,
            case_status=case.case_status,
            assigned_to=case.assigned_to,
            executed_by=case.executed_by,
        )

    def generate_variants(self, case: TestCase, *, existing_ids: set[str] | None = None) -> list[TestCase]:
        with self._guard(f"variants:{case.case_id}"):
            raw = self._ask(
                "variants",
                prompts.variants_prompt(case, self.settings),
                system=prompts.SYSTEM_QA,
                schema=schemas.CASE_LIST_SCHEMA,
                temperature=0.6,
            )
        if not isinstance(raw, list):
            raise MalformedResponseError("Expected a JSON array of variant cases")
        taken = set(existing_ids or ()) | {case.case_id}
        variants = []
        for item in raw:
            case_id = new_case_id(taken)
            taken.add(case_id)
            variant = hydrate_case(item, case_id=case_id, created_by=VARIANT_AUTHOR, is_draft=True)
            if VARIANT_TAG not in variant.tags:
                variant = replace(variant, tags=[*variant.tags, VARIANT_TAG])
            variants.append(variant)
        return variants

    def parse_import(self, text: str) -> list[TestCase]:
        """Convert CSV text into cases, a few data rows per request.

        The header row is repeated in front of every batch. A pause between
        batches keeps the request rate under the service quota.
        """
        lines = [line for line in text.splitlines() if line.strip()]
        if len(lines) < 2:
            raise ValidationError("The import needs a header row and at least one data row")
        header, rows = lines[0], lines[1:]
        size = self.config.import_batch_size
        batches = [rows[i:i + size] for i in range(0, len(rows), size)]
        logger.info("Importing %d rows in %d batches", len(rows), len(batches))

        raw_cases: list[Any] = []
        with self._guard("import"):
            for number, batch in enumerate(batches, 1):
                logger.info("Processing import batch %d/%d", number, len(batches))
                result = self._ask(
                    f"import batch {number}",
                    prompts.import_prompt("\n".join([header, *batch])),
                    system=prompts.SYSTEM_IMPORT,
                    schema=schemas.CASE_LIST_SCHEMA,
                    temperature=0.1,
                )
                raw_cases.extend(result if isinstance(result, list) else [result])
                if number < len(batches) and self.config.batch_pause > 0:
                    self._sleep(self.config.batch_pause)

        if not raw_cases:
            raise MalformedResponseError("No test cases could be generated. Check the CSV format.")
        seen: set[str] = set()
        cases = []
        for raw in raw_cases:
            case_id = _raw_case_id(raw)
            if case_id is None or case_id in seen:
                case_id = new_case_id(seen)
            seen.add(case_id)
            cases.append(hydrate_case(raw, case_id=case_id, created_by=IMPORT_AUTHOR))
        return cases

    def analyze_evidence(self, step: TestStep) -> EvidenceAnalysis:
        if not step.evidence:
            raise ValidationError(f'Step "{step.step_id}" has no evidence to analyse')
        mime = "image/png"
        if step.evidence.startswith("data:") and ";" in step.evidence:
            mime = step.evidence[5:step.evidence.index(";")]
        with self._guard(f"analyze:{step.step_id}"):
            raw = self._ask(
                "analyze evidence",
                prompts.evidence_prompt(step.expected_result, self.settings),
                system=prompts.SYSTEM_VISUAL,
                schema=schemas.ANALYSIS_SCHEMA,
                temperature=0.1,
                media=MediaInput(mime_type=mime, data=step.evidence),
            )
        return hydrate_analysis(raw)

    def generate_defect_report(self, case: TestCase, step: TestStep) -> DefectReport:
        with self._guard(f"defect:{case.case_id}:{step.step_id}"):
            raw = self._ask(
                "defect report",
                prompts.defect_prompt(case, step),
                system=prompts.SYSTEM_DEFECT,
                schema=schemas.DEFECT_SCHEMA,
                temperature=0.4,
            )
        return hydrate_defect(raw)
