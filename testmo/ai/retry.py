"""Generic retry with exponential backoff and jitter for flaky remote calls."""
from __future__ import annotations

import logging
import random
import time
from typing import TYPE_CHECKING, TypeVar

from testmo.errors import TransientAIError

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient(error: BaseException) -> bool:
    return isinstance(error, TransientAIError)


def backoff_delay(attempt: int, base_delay: float, max_delay: float | None = None, jitter: float = 0.0) -> float:
    """Delay before retry number ``attempt`` (0-based): base * 2**attempt plus up to ``jitter`` seconds."""
    delay = base_delay * (2 ** attempt)
    if max_delay is not None:
        delay = min(delay, max_delay)
    return delay + (random.uniform(0, jitter) if jitter else 0.0)


def with_retry(
    operation: Callable[[], T],
    *,
    attempts: int = 5,
    base_delay: float = 4.0,
    max_delay: float | None = 60.0,
    jitter: float = 1.0,
    classify: Callable[[BaseException], bool] = is_transient,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "AI call",
) -> T:
    """Run ``operation`` until it succeeds, fails permanently, or attempts run out.

    Only errors ``classify`` accepts are retried; anything else propagates on
    the first occurrence. After the last attempt the final transient error is
    re-raised unchanged so callers can offer a manual retry.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")
    for attempt in range(attempts):
        try:
            return operation()
        except Exception as e:
            if not classify(e) or attempt == attempts - 1:
                raise
            wait = backoff_delay(attempt, base_delay, max_delay, jitter)
            logger.warning("%s rate limited (%s). Retrying in %.1fs (attempt %d/%d)",
                           label, e, wait, attempt + 1, attempts)
            sleep(wait)
    raise AssertionError("unreachable")

