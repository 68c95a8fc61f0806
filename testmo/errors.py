"""Exception hierarchy shared across the engine, store and AI layers."""
from __future__ import annotations


class ValidationError(ValueError):
    """A user action was rejected locally; nothing was persisted or logged."""


class RunnerError(RuntimeError):
    """An execution session could not be started or restored."""


class StorageError(RuntimeError):
    pass


class StorageQuotaError(StorageError):
    pass


class AIError(RuntimeError):
    """Base class for failures of the AI collaborator."""


class TransientAIError(AIError):
    """Rate limited or server busy. Safe to retry."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class MalformedResponseError(AIError):
    """The service answered, but not with usable structured output. Retrying will not help."""


class OperationPendingError(AIError):
    """The same AI operation is already in flight for this surface."""
