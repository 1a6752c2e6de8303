"""Shared dataclasses for the relay and its client."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Literal, Mapping, Optional, Union

from .config import DEFAULT_AUDIO_MARKER

if TYPE_CHECKING:  # pragma: no cover
    import numpy as np

Role = Literal["system", "user", "assistant"]
ContentKind = Literal["text", "audio"]


def _new_id() -> str:
    return f"msg-{uuid.uuid4().hex[:16]}"


@dataclass
class Message:
    """
    Represents a single chat turn.

    ``kind`` tags the content variant. Audio messages carry the marker-wrapped
    token string as their content so the backend receives it verbatim, while
    renderers branch on ``kind`` and never inspect the text.
    """

    role: Role
    content: str
    kind: ContentKind = "text"
    id: str = field(default_factory=_new_id)

    @classmethod
    def audio(cls, tokens: str, *, marker: str = DEFAULT_AUDIO_MARKER) -> "Message":
        """Build a user message holding an audio-token payload."""
        return cls(role="user", content=f"{marker}{tokens}", kind="audio")

    @property
    def is_audio(self) -> bool:
        return self.kind == "audio"

    def as_dict(self) -> Dict[str, str]:
        """Convert to the API shape expected by the chat endpoint."""
        payload = {"role": self.role, "content": self.content}
        if self.kind != "text":
            payload["kind"] = self.kind
        return payload


@dataclass
class Usage:
    """Token accounting reported by the backend."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def as_dict(self) -> Dict[str, int]:
        """Wire shape used in the `e:` and `d:` frames."""
        return {"promptTokens": self.prompt_tokens, "completionTokens": self.completion_tokens}

    @classmethod
    def from_dict(cls, payload: Optional[Mapping[str, Any]]) -> "Usage":
        if not payload:
            return cls()
        return cls(
            prompt_tokens=int(payload.get("promptTokens") or 0),
            completion_tokens=int(payload.get("completionTokens") or 0),
        )


@dataclass
class ToolCall:
    """A completed tool call assembled from streamed fragments."""

    id: str
    name: str
    arguments: str


@dataclass
class TextDelta:
    """One incremental fragment of assistant text."""

    text: str


@dataclass
class StreamFinish:
    """Terminal event of a backend stream."""

    finish_reason: str
    usage: Usage
    tool_calls: List[ToolCall] = field(default_factory=list)


CompletionEvent = Union[TextDelta, StreamFinish]


@dataclass
class CompletionResult:
    """Payload handed to the completion hook once a stream has ended."""

    text: str
    tool_calls: List[ToolCall]
    usage: Usage
    finish_reason: str


@dataclass
class CapturedAudio:
    """
    Audio captured by a recorder.

    Attributes:
        samples: float32 frames shaped ``(frames, channels)`` in ``[-1.0, 1.0]``.
        sample_rate: Native capture rate in Hz.
    """

    samples: "np.ndarray"
    sample_rate: int

    @property
    def frames(self) -> int:
        return int(self.samples.shape[0])

    @property
    def channels(self) -> int:
        return int(self.samples.shape[1]) if self.samples.ndim > 1 else 1

    @property
    def duration(self) -> float:
        return self.frames / float(self.sample_rate) if self.sample_rate else 0.0


@dataclass
class TokenizeResult:
    """Outcome of one capture-and-tokenize round; exactly one field is set."""

    tokens: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.tokens is not None

    @classmethod
    def success(cls, tokens: str) -> "TokenizeResult":
        return cls(tokens=tokens)

    @classmethod
    def failure(cls, error: str) -> "TokenizeResult":
        return cls(error=error)

