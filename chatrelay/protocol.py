"""
Line framing for the `/api/chat` response stream.

Every frame is one line of the form ``<code>:<json>``. The codes follow the
data stream convention understood by common chat front-ends:

    f  start of step        {"messageId": "..."}
    0  text delta           "text"
    9  completed tool call  {"toolCallId", "toolName", "args"}
    e  end of step          {"finishReason", "usage", "isContinued"}
    d  end of stream        {"finishReason", "usage"}
    3  error                "message"

Usage:
    >>> encode_frame(TEXT, "hi ")
    '0:"hi "\\n'
    >>> parse_frame('0:"hi "')
    Frame(code='0', value='hi ')
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Union

from .models import ToolCall, Usage

START_STEP = "f"
TEXT = "0"
ERROR = "3"
TOOL_CALL = "9"
FINISH_STEP = "e"
FINISH_MESSAGE = "d"

STREAM_HEADER = "x-vercel-ai-data-stream"
STREAM_VERSION = "v1"
MEDIA_TYPE = "text/plain; charset=utf-8"

KNOWN_CODES = frozenset({START_STEP, TEXT, ERROR, TOOL_CALL, FINISH_STEP, FINISH_MESSAGE})


@dataclass(frozen=True)
class Frame:
    """One parsed stream frame."""

    code: str
    value: Any

    @property
    def is_terminal(self) -> bool:
        return self.code in (FINISH_MESSAGE, ERROR)


def encode_frame(code: str, value: Any) -> str:
    return f"{code}:{json.dumps(value, ensure_ascii=False, separators=(',', ':'))}\n"


def start_step_frame(message_id: str) -> str:
    return encode_frame(START_STEP, {"messageId": message_id})


def text_frame(text: str) -> str:
    return encode_frame(TEXT, text)


def error_frame(message: str) -> str:
    return encode_frame(ERROR, message)


def tool_call_frame(call: ToolCall) -> str:
    try:
        args: Any = json.loads(call.arguments) if call.arguments else {}
    except json.JSONDecodeError:
        args = call.arguments
    return encode_frame(TOOL_CALL, {"toolCallId": call.id, "toolName": call.name, "args": args})


def finish_step_frame(finish_reason: str, usage: Usage) -> str:
    return encode_frame(
        FINISH_STEP,
        {"finishReason": finish_reason, "usage": usage.as_dict(), "isContinued": False},
    )


def finish_message_frame(finish_reason: str, usage: Usage) -> str:
    return encode_frame(FINISH_MESSAGE, {"finishReason": finish_reason, "usage": usage.as_dict()})


def parse_frame(line: Union[str, bytes]) -> Frame:
    """Parse a single line; raises ``ValueError`` when it is not a frame."""
    if isinstance(line, bytes):
        line = line.decode("utf-8")
    line = line.rstrip("\r\n")
    code, sep, body = line.partition(":")
    if not sep or code not in KNOWN_CODES:
        raise ValueError(f"Not a stream frame: {line[:40]!r}")
    try:
        value = json.loads(body)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Frame {code!r} carries invalid JSON") from exc
    return Frame(code=code, value=value)


def iter_frames(lines: Iterable[Union[str, bytes]]) -> Iterator[Frame]:
    """Parse a line stream, skipping blank lines."""
    for line in lines:
        if not line.strip():
            continue
        yield parse_frame(line)
