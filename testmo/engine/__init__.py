from testmo.engine.interception import FailureInterception, Outcome, PendingInterception, requires_interception
from testmo.engine.runner import ExecutionSession, RunResult, RunState
from testmo.engine.stats import dashboard_stats
from testmo.engine.status import calculate_progress, derive_case_status, recompute

__all__ = [
    "ExecutionSession",
    "FailureInterception",
    "Outcome",
    "PendingInterception",
    "RunResult",
    "RunState",
    "calculate_progress",
    "dashboard_stats",
    "derive_case_status",
    "recompute",
    "requires_interception",
]
