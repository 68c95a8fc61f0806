"""testmo: manual test case management with guided execution runs."""

from testmo.engine import (
    ExecutionSession,
    FailureInterception,
    RunResult,
    calculate_progress,
    dashboard_stats,
    derive_case_status,
)
from testmo.errors import (
    AIError,
    MalformedResponseError,
    OperationPendingError,
    RunnerError,
    StorageError,
    StorageQuotaError,
    TransientAIError,
    ValidationError,
)
from testmo.types import CaseStatus, Priority, StepStatus, TestCase, TestStep
from testmo.workspace import Workspace

__version__ = "0.3.0"

__all__ = [
    "AIError",
    "CaseStatus",
    "ExecutionSession",
    "FailureInterception",
    "MalformedResponseError",
    "OperationPendingError",
    "Priority",
    "RunResult",
    "RunnerError",
    "StepStatus",
    "StorageError",
    "StorageQuotaError",
    "TestCase",
    "TestStep",
    "TransientAIError",
    "ValidationError",
    "Workspace",
    "calculate_progress",
    "dashboard_stats",
    "derive_case_status",
]
