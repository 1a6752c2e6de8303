"""Completion hook strategies invoked when a proxied stream finishes."""

from __future__ import annotations

import logging

from ..interfaces import CompletionHook
from ..models import CompletionResult

logger = logging.getLogger(__name__)


class NoopCompletionHook(CompletionHook):
    """Default hook: does nothing with the result."""

    def on_complete(self, result: CompletionResult) -> None:
        return None


class LoggingCompletionHook(CompletionHook):
    """Logs token usage and the finish reason of every completed stream."""

    def __init__(self, *, level: int = logging.INFO) -> None:
        self._level = level

    def on_complete(self, result: CompletionResult) -> None:
        logger.log(
            self._level,
            "Completion finished: reason=%s prompt_tokens=%d completion_tokens=%d chars=%d tool_calls=%d",
            result.finish_reason,
            result.usage.prompt_tokens,
            result.usage.completion_tokens,
            len(result.text),
            len(result.tool_calls),
        )
