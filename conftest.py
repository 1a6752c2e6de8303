"""Shared stubs for the chatrelay test suite."""

from __future__ import annotations

import dataclasses
from typing import Any, AsyncIterator, Dict, Iterable, Iterator, List, Optional, Sequence

import pytest

from chatrelay.config import AppConfig
from chatrelay.exceptions import BackendUnavailableError, ChatClientError
from chatrelay.models import CompletionEvent, CompletionResult, StreamFinish, TextDelta, ToolCall, Usage
from chatrelay.protocol import Frame, iter_frames


def make_config(**overrides: Any) -> AppConfig:
    base = AppConfig(
        api_key="test-key",
        base_url=None,
        model="alan-gift",
        system_prompt=None,
        max_duration=30.0,
        tokenizer_url=None,
        host="127.0.0.1",
        port=8000,
        server_url="http://testserver",
        request_timeout=5.0,
        audio_marker="<AUDIO>",
        sample_rate=16000,
        channels=1,
        max_record_seconds=60.0,
    )
    return dataclasses.replace(base, **overrides)


class StubBackend:
    """Completion backend replaying fixed chunks."""

    def __init__(
        self,
        chunks: Sequence[str] = ("hi ", "there"),
        *,
        fail_on_open: bool = False,
        fail_after: Optional[int] = None,
        finish_reason: str = "stop",
        usage: Optional[Usage] = None,
        tool_calls: Sequence[ToolCall] = (),
    ) -> None:
        self.chunks = list(chunks)
        self.fail_on_open = fail_on_open
        self.fail_after = fail_after
        self.finish_reason = finish_reason
        self.usage = usage or Usage(prompt_tokens=5, completion_tokens=len(self.chunks))
        self.tool_calls = list(tool_calls)
        self.calls: List[List[Dict[str, str]]] = []

    async def open(self, messages: Sequence[Dict[str, str]]) -> AsyncIterator[CompletionEvent]:
        self.calls.append([dict(m) for m in messages])
        if self.fail_on_open:
            raise BackendUnavailableError("backend down")
        return self._events()

    async def _events(self) -> AsyncIterator[CompletionEvent]:
        for index, chunk in enumerate(self.chunks):
            if self.fail_after is not None and index == self.fail_after:
                raise BackendUnavailableError("stream aborted")
            yield TextDelta(chunk)
        yield StreamFinish(finish_reason=self.finish_reason, usage=self.usage, tool_calls=self.tool_calls)


class RecordingHook:
    def __init__(self) -> None:
        self.results: List[CompletionResult] = []

    def on_complete(self, result: CompletionResult) -> None:
        self.results.append(result)


class ListChatStream:
    """Chat stream over a fixed list of frames."""

    def __init__(self, frames: Iterable[Frame], *, error_after: Optional[int] = None) -> None:
        self.frames = list(frames)
        self.error_after = error_after
        self.closed = False
        self.consumed = 0

    def __iter__(self) -> Iterator[Frame]:
        for index, frame in enumerate(self.frames):
            if self.closed:
                return
            if self.error_after is not None and index == self.error_after:
                raise ChatClientError("connection reset")
            self.consumed += 1
            yield frame

    def close(self) -> None:
        self.closed = True


class ScriptedTransport:
    """Transport handing out pre-built streams (or raising) per call."""

    def __init__(self, *outcomes: Any) -> None:
        self.outcomes = list(outcomes)
        self.payloads: List[List[Dict[str, str]]] = []

    def open(self, messages: Sequence[Dict[str, str]]) -> ListChatStream:
        self.payloads.append([dict(m) for m in messages])
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class ASGIChatTransport:
    """Transport posting through a FastAPI TestClient."""

    def __init__(self, client: Any) -> None:
        self._client = client
        self.payloads: List[List[Dict[str, str]]] = []

    def open(self, messages: Sequence[Dict[str, str]]) -> ListChatStream:
        self.payloads.append([dict(m) for m in messages])
        response = self._client.post("/api/chat", json={"messages": list(messages)})
        if response.status_code >= 400:
            raise ChatClientError(f"Chat request failed ({response.status_code}): {response.text}")
        return ListChatStream(iter_frames(response.text.splitlines()))


def text_frames(*chunks: str, finish_reason: str = "stop") -> List[Frame]:
    frames = [Frame("f", {"messageId": "msg-test"})]
    frames.extend(Frame("0", chunk) for chunk in chunks)
    usage = {"promptTokens": 4, "completionTokens": len(chunks)}
    frames.append(Frame("e", {"finishReason": finish_reason, "usage": usage, "isContinued": False}))
    frames.append(Frame("d", {"finishReason": finish_reason, "usage": usage}))
    return frames


@pytest.fixture
def config() -> AppConfig:
    return make_config()
