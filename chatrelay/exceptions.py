"""Custom exceptions for chatrelay."""

from __future__ import annotations


class ChatRelayError(RuntimeError):
    """Base class for every error raised by this package."""


class MalformedRequestError(ChatRelayError):
    """Raised when a `/api/chat` body cannot be parsed or lacks `messages`."""


class BackendUnavailableError(ChatRelayError):
    """Raised when the completion backend is unreachable or answers with an error."""


class TokenizationError(ChatRelayError):
    """Raised when the tokenization service fails or returns an invalid payload."""


class ChatClientError(ChatRelayError):
    """Raised when the proxy responds with an error or cannot be reached."""


class ConversationBusyError(ChatRelayError):
    """Raised when a turn is submitted while another one is outstanding."""


class EmptyInputError(ChatRelayError):
    """Raised when a submit carries empty or whitespace-only text."""


class MicrophoneUnavailableError(ChatRelayError):
    """Raised when the input device cannot be opened (missing, busy, or denied)."""


class NothingToRetryError(ChatRelayError):
    """Raised when retry is requested but no failed request can be resent."""
