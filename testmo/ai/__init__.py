from testmo.ai.assistant import TestAssistant
from testmo.ai.provider import GeminiProvider, Provider
from testmo.ai.retry import backoff_delay, with_retry

__all__ = ["GeminiProvider", "Provider", "TestAssistant", "backoff_delay", "with_retry"]
