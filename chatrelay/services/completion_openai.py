"""OpenAI-compatible completion backend using the official SDK."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import openai
from openai import AsyncOpenAI

from ..config import AppConfig
from ..exceptions import BackendUnavailableError
from ..models import CompletionEvent, StreamFinish, TextDelta, ToolCall, Usage

logger = logging.getLogger(__name__)

_FINISH_REASONS = {
    "stop": "stop",
    "length": "length",
    "content_filter": "content-filter",
    "tool_calls": "tool-calls",
    "function_call": "tool-calls",
}


class OpenAICompletionBackend:
    """
    Streams chat completions from any server speaking the OpenAI chat API.

    The SDK client is built without retries; a failed call is reported once
    and left to the user to retry.

    Usage:
        >>> backend = OpenAICompletionBackend(api_key="sk-...", model="alan-gift")
        >>> events = await backend.open([{"role": "user", "content": "hello"}])
        >>> async for event in events:
        ...     print(event)
    """

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self._model = model
        self._client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )

    @classmethod
    def from_config(cls, config: AppConfig) -> "OpenAICompletionBackend":
        return cls(
            api_key=config.api_key,
            model=config.model,
            base_url=config.base_url,
            timeout=config.max_duration,
        )

    async def open(self, messages: Sequence[Dict[str, str]]) -> AsyncIterator[CompletionEvent]:
        logger.debug("Opening completion stream (model=%s, messages=%d)", self._model, len(messages))
        try:
            stream = await self._client.chat.completions.create(
                model=self._model,
                messages=list(messages),
                stream=True,
                stream_options={"include_usage": True},
            )
        except openai.APIStatusError as exc:
            raise BackendUnavailableError(f"Completion backend returned HTTP {exc.status_code}") from exc
        except openai.APIError as exc:
            raise BackendUnavailableError(f"Completion backend could not be reached: {exc}") from exc
        return self._events(stream)

    async def _events(self, stream: Any) -> AsyncIterator[CompletionEvent]:
        finish_reason = "unknown"
        usage = Usage()
        calls: Dict[int, Dict[str, Any]] = {}

        try:
            async for chunk in stream:
                if chunk.usage is not None:
                    usage = Usage(
                        prompt_tokens=chunk.usage.prompt_tokens or 0,
                        completion_tokens=chunk.usage.completion_tokens or 0,
                    )
                if not chunk.choices:
                    continue

                choice = chunk.choices[0]
                delta = choice.delta
                if delta is not None:
                    if delta.content:
                        yield TextDelta(delta.content)
                    for fragment in delta.tool_calls or []:
                        _merge_tool_call(calls, fragment)
                if choice.finish_reason:
                    finish_reason = choice.finish_reason
        except openai.APIError as exc:
            raise BackendUnavailableError(f"Completion stream aborted: {exc}") from exc
        finally:
            await stream.close()

        yield StreamFinish(
            finish_reason=_FINISH_REASONS.get(finish_reason, "other" if finish_reason != "unknown" else "unknown"),
            usage=usage,
            tool_calls=_assemble_tool_calls(calls),
        )


def _merge_tool_call(calls: Dict[int, Dict[str, Any]], fragment: Any) -> None:
    slot = calls.setdefault(fragment.index, {"id": "", "name": "", "arguments": []})
    if fragment.id:
        slot["id"] = fragment.id
    function = fragment.function
    if function is not None:
        if function.name:
            slot["name"] = function.name
        if function.arguments:
            slot["arguments"].append(function.arguments)


def _assemble_tool_calls(calls: Dict[int, Dict[str, Any]]) -> List[ToolCall]:
    return [
        ToolCall(id=slot["id"], name=slot["name"], arguments="".join(slot["arguments"]))
        for _, slot in sorted(calls.items())
    ]
