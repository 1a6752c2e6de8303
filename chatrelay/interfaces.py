"""Protocol interfaces for dependency injection."""

from __future__ import annotations

from typing import AsyncIterator, Dict, Iterator, Protocol, Sequence

from .models import CapturedAudio, CompletionEvent, CompletionResult
from .protocol import Frame


class CompletionBackend(Protocol):
    """Text-completion service the proxy forwards conversations to."""

    async def open(self, messages: Sequence[Dict[str, str]]) -> AsyncIterator[CompletionEvent]:
        """
        Start a completion and return its event stream.

        Connection and status failures must surface here, before any event is
        produced, as :class:`~chatrelay.exceptions.BackendUnavailableError`.
        The stream yields :class:`TextDelta` items and ends with one
        :class:`StreamFinish`.
        """


class CompletionHook(Protocol):
    """Receives the assembled result once per finished stream."""

    def on_complete(self, result: CompletionResult) -> None:
        """Handle the final text, tool calls, usage and finish reason."""


class ChatStream(Protocol):
    """An open response from `/api/chat`, iterated frame by frame."""

    def __iter__(self) -> Iterator[Frame]:
        """Yield parsed frames in delivery order."""

    def close(self) -> None:
        """Abort the underlying connection; safe to call more than once."""


class ChatTransport(Protocol):
    """Opens streaming chat requests against the proxy."""

    def open(self, messages: Sequence[Dict[str, str]]) -> ChatStream:
        """Submit the full conversation and return the open stream."""


class AudioRecorder(Protocol):
    """Captures audio from the user between explicit start and stop calls."""

    @property
    def recording(self) -> bool:
        """Whether the input device is currently open."""

    def start(self) -> None:
        """Open the input device and begin accumulating frames."""

    def stop(self) -> CapturedAudio:
        """Release the input device and return everything captured."""


class AudioTokenizer(Protocol):
    """Turns an encoded waveform into its textual token representation."""

    def tokenize(self, wav: bytes) -> str:
        """Upload ``wav`` and return the token string."""
