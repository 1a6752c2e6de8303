"""Core relay between a conversation and the completion backend."""

from __future__ import annotations

import logging
import uuid
from typing import AsyncIterator, Dict, List, Optional, Sequence

from .exceptions import BackendUnavailableError
from .interfaces import CompletionBackend, CompletionHook
from .models import CompletionEvent, CompletionResult, Message, StreamFinish, TextDelta, Usage
from .protocol import (
    error_frame,
    finish_message_frame,
    finish_step_frame,
    start_step_frame,
    text_frame,
    tool_call_frame,
)
from .services.completion_hook import NoopCompletionHook

logger = logging.getLogger(__name__)

GENERIC_ERROR = "An error occurred."


class CompletionProxy:
    """
    Forwards one conversation to the backend and re-frames its output.

    The proxy keeps no state between requests; build one per request with the
    configuration in effect at that moment.

    Usage:
        proxy = CompletionProxy(
            backend=OpenAICompletionBackend.from_config(config),
            hook=LoggingCompletionHook(),
            system_prompt=config.system_prompt,
        )
        frames = await proxy.open(messages)
        async for frame in frames:
            ...
    """

    def __init__(
        self,
        *,
        backend: CompletionBackend,
        hook: Optional[CompletionHook] = None,
        system_prompt: Optional[str] = None,
    ) -> None:
        self._backend = backend
        self._hook = hook or NoopCompletionHook()
        self._system_prompt = system_prompt

    def prepare(self, messages: Sequence[Message]) -> List[Dict[str, str]]:
        """Return the backend payload, with the system prompt injected at index 0."""
        payload = [{"role": m.role, "content": m.content} for m in messages]
        if self._system_prompt:
            payload.insert(0, {"role": "system", "content": self._system_prompt})
        return payload

    async def open(self, messages: Sequence[Message]) -> AsyncIterator[str]:
        """
        Start the backend call and return the frame stream.

        Raises:
            BackendUnavailableError: the backend could not be reached or refused
                the request. Nothing has been sent to the caller yet.
        """
        events = await self._backend.open(self.prepare(messages))
        return self._frames(events)

    async def _frames(self, events: AsyncIterator[CompletionEvent]) -> AsyncIterator[str]:
        yield start_step_frame(f"msg-{uuid.uuid4().hex[:16]}")

        parts: List[str] = []
        finish: Optional[StreamFinish] = None
        try:
            async for event in events:
                if isinstance(event, TextDelta):
                    parts.append(event.text)
                    yield text_frame(event.text)
                elif isinstance(event, StreamFinish):
                    finish = event
        except BackendUnavailableError as exc:
            logger.warning("Completion stream failed after %d deltas: %s", len(parts), exc)
            yield error_frame(GENERIC_ERROR)
            return

        if finish is None:
            finish = StreamFinish(finish_reason="unknown", usage=Usage())

        for call in finish.tool_calls:
            yield tool_call_frame(call)

        self._notify(
            CompletionResult(
                text="".join(parts),
                tool_calls=list(finish.tool_calls),
                usage=finish.usage,
                finish_reason=finish.finish_reason,
            )
        )
        yield finish_step_frame(finish.finish_reason, finish.usage)
        yield finish_message_frame(finish.finish_reason, finish.usage)

    def _notify(self, result: CompletionResult) -> None:
        try:
            self._hook.on_complete(result)
        except Exception:
            logger.exception("Completion hook %s failed", type(self._hook).__name__)
