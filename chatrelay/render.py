"""Text rendering of conversation messages for the terminal client."""

from __future__ import annotations

from typing import Iterable

from .models import Message

AUDIO_PLACEHOLDER = "[audio message]"

ROLE_LABELS = {
    "system": "System:",
    "user": "You:",
    "assistant": "Assistant:",
}


def render_content(message: Message) -> str:
    """Visible body of a message; audio payloads never show their tokens."""
    if message.is_audio:
        return AUDIO_PLACEHOLDER
    return message.content


def render_message(message: Message) -> str:
    return f"{ROLE_LABELS.get(message.role, message.role)} {render_content(message)}"


def render_history(messages: Iterable[Message]) -> str:
    return "\n".join(render_message(m) for m in messages)
