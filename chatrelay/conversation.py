"""Client-side conversation state machine."""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .config import DEFAULT_AUDIO_MARKER
from .exceptions import ChatClientError, ConversationBusyError, EmptyInputError, NothingToRetryError
from .interfaces import ChatStream, ChatTransport
from .models import Message, TokenizeResult, Usage
from .protocol import ERROR, FINISH_MESSAGE, FINISH_STEP, START_STEP, TEXT, TOOL_CALL, Frame

logger = logging.getLogger(__name__)

DeltaCallback = Callable[[Message, str], None]
FinishCallback = Callable[[Message, Usage, str], None]
ErrorCallback = Callable[[str], None]


class Status(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    ERROR = "error"


_ACTIVE = (Status.SENDING, Status.STREAMING)


class ConversationController:
    """
    Owns one conversation and drives it through the relay.

    Transitions::

        IDLE -> SENDING -> STREAMING -> IDLE
        SENDING | STREAMING -> ERROR      (request or stream failure)
        ERROR -> SENDING                  (retry)
        SENDING | STREAMING -> IDLE       (stop)

    ``submit`` and ``retry`` run the turn on the calling thread and return
    when the stream ends. ``stop`` may be called from any thread, or from
    inside ``on_delta``; every frame read after it is dropped.

    Usage:
        controller = ConversationController(
            HttpChatTransport("http://localhost:8000"),
            on_delta=lambda message, delta: print(delta, end="", flush=True),
        )
        controller.submit("hello")
        controller.messages[-1].content
    """

    def __init__(
        self,
        transport: ChatTransport,
        *,
        on_delta: Optional[DeltaCallback] = None,
        on_finish: Optional[FinishCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        audio_marker: str = DEFAULT_AUDIO_MARKER,
    ) -> None:
        self._transport = transport
        self._on_delta = on_delta
        self._on_finish = on_finish
        self._on_error = on_error
        self._audio_marker = audio_marker

        self._lock = threading.RLock()
        self._status = Status.IDLE
        self._messages: List[Message] = []
        self._placeholder = Message(role="assistant", content="")
        self._stream: Optional[ChatStream] = None
        self._generation = 0
        self._error: Optional[str] = None
        self._retryable = False
        self._usage: Optional[Usage] = None
        self._finish_reason: Optional[str] = None
        self._tool_calls: List[Dict[str, Any]] = []

    @property
    def status(self) -> Status:
        return self._status

    @property
    def messages(self) -> Sequence[Message]:
        """Read-only snapshot of the conversation."""
        with self._lock:
            return tuple(self._messages)

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def is_busy(self) -> bool:
        return self._status in _ACTIVE

    @property
    def last_usage(self) -> Optional[Usage]:
        return self._usage

    @property
    def last_finish_reason(self) -> Optional[str]:
        return self._finish_reason

    @property
    def tool_calls(self) -> Sequence[Dict[str, Any]]:
        """Tool calls reported for the most recent turn."""
        return tuple(self._tool_calls)

    def submit(self, text: str) -> Message:
        """Append a user message and stream the reply."""
        if not text or not text.strip():
            raise EmptyInputError("Input is empty")
        return self._submit_message(Message(role="user", content=text))

    def submit_audio(self, result: TokenizeResult) -> Optional[Message]:
        """
        Turn a capture result into the next user turn.

        A failed result moves an idle conversation to ``ERROR`` without touching
        its messages; retry is not available for it, only ``dismiss_error``.
        """
        if result.ok:
            return self._submit_message(Message.audio(result.tokens or "", marker=self._audio_marker))

        error = result.error or "Audio capture failed"
        with self._lock:
            if self._status not in _ACTIVE:
                self._status = Status.ERROR
                self._error = error
                self._retryable = False
        logger.warning("Audio turn discarded: %s", error)
        self._emit_error(error)
        return None

    def retry(self) -> None:
        """
        Resend the conversation after a failure.

        The failed assistant placeholder is replaced; everything before it is
        sent unchanged. From ``IDLE`` this regenerates the last reply.
        """
        with self._lock:
            if self._status in _ACTIVE:
                raise ConversationBusyError("A reply is still streaming")
            if self._status == Status.ERROR and not self._retryable:
                raise NothingToRetryError("The last failure has no request to resend")
            keep = len(self._messages)
            if keep and self._messages[-1].role == "assistant":
                keep -= 1
            if keep == 0:
                raise NothingToRetryError("Conversation is empty")
            del self._messages[keep:]
            generation, payload = self._start_turn()
        self._stream_turn(generation, payload)

    def stop(self) -> bool:
        """Abort the in-flight stream, keeping any partial reply."""
        with self._lock:
            if self._status not in _ACTIVE:
                return False
            self._generation += 1
            stream, self._stream = self._stream, None
            self._status = Status.IDLE
        if stream is not None:
            stream.close()
        logger.debug("Stream stopped by user")
        return True

    def dismiss_error(self) -> None:
        with self._lock:
            if self._status == Status.ERROR:
                self._status = Status.IDLE
                self._error = None
                self._retryable = False

    def _submit_message(self, message: Message) -> Message:
        with self._lock:
            if self._status != Status.IDLE:
                raise ConversationBusyError(f"Cannot submit while {self._status.value}")
            self._messages.append(message)
            generation, payload = self._start_turn()
        self._stream_turn(generation, payload)
        return message

    def _start_turn(self) -> Tuple[int, List[Dict[str, str]]]:
        # caller holds the lock
        payload = [m.as_dict() for m in self._messages]
        self._placeholder = Message(role="assistant", content="")
        self._messages.append(self._placeholder)
        self._generation += 1
        self._status = Status.SENDING
        self._error = None
        self._retryable = False
        self._usage = None
        self._finish_reason = None
        self._tool_calls = []
        return self._generation, payload

    def _stream_turn(self, generation: int, payload: List[Dict[str, str]]) -> None:
        try:
            stream = self._transport.open(payload)
        except ChatClientError as exc:
            self._fail(generation, str(exc))
            return

        with self._lock:
            current = generation == self._generation
            if current:
                self._stream = stream
        if not current:
            stream.close()
            return

        try:
            for frame in stream:
                if not self._apply(generation, frame):
                    break
        except ChatClientError as exc:
            self._fail(generation, str(exc))
        finally:
            stream.close()

        self._fail(generation, "Chat stream ended unexpectedly")

    def _apply(self, generation: int, frame: Frame) -> bool:
        with self._lock:
            if generation != self._generation or self._status not in _ACTIVE:
                return False
            placeholder = self._placeholder

            if frame.code == TEXT:
                if not isinstance(frame.value, str):
                    return True
                self._status = Status.STREAMING
                placeholder.content += frame.value
            elif frame.code == START_STEP:
                self._status = Status.STREAMING
                return True
            elif frame.code == TOOL_CALL:
                self._tool_calls.append(frame.value)
                return True
            elif frame.code == FINISH_STEP:
                self._record_finish(frame.value)
                return True
            elif frame.code == FINISH_MESSAGE:
                self._record_finish(frame.value)
                self._status = Status.IDLE
                self._stream = None
            elif frame.code != ERROR:
                return True

        if frame.code == TEXT:
            if self._on_delta is not None:
                self._on_delta(placeholder, frame.value)
            return True
        if frame.code == FINISH_MESSAGE:
            logger.debug("Turn finished: reason=%s usage=%s", self._finish_reason, self._usage)
            if self._on_finish is not None:
                self._on_finish(placeholder, self._usage or Usage(), self._finish_reason or "unknown")
            return False

        self._fail(generation, str(frame.value))
        return False

    def _record_finish(self, value: Any) -> None:
        if isinstance(value, dict):
            self._finish_reason = value.get("finishReason") or self._finish_reason
            self._usage = Usage.from_dict(value.get("usage"))

    def _fail(self, generation: int, error: str) -> None:
        with self._lock:
            if generation != self._generation or self._status not in _ACTIVE:
                return
            self._status = Status.ERROR
            self._error = error
            self._retryable = True
            self._stream = None
        logger.warning("Chat turn failed: %s", error)
        self._emit_error(error)

    def _emit_error(self, error: str) -> None:
        if self._on_error is not None:
            self._on_error(error)
