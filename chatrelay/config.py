"""Configuration helpers for the chatrelay server and client."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_MODEL = "alan-gift"
DEFAULT_AUDIO_MARKER = "<AUDIO>"


@dataclass
class AppConfig:
    """
    Runtime configuration shared by the proxy server and the terminal client.

    Attributes:
        api_key: Completion backend API key.
        base_url: Optional override for the OpenAI-compatible backend URL.
        model: Model identifier sent to the backend.
        system_prompt: Optional system message injected at index 0 of every request.
        max_duration: Wall-clock ceiling (seconds) for one backend request.
        tokenizer_url: Upstream tokenization service for `/api/tokenize`.
        host: Bind address for `chatrelay serve`.
        port: Bind port for `chatrelay serve`.
        server_url: Root URL of the proxy, used by the terminal client.
        request_timeout: Client-side HTTP timeout in seconds.
        audio_marker: Prefix that marks an audio-token payload on the wire.
        sample_rate: Capture sample rate in Hz.
        channels: Capture channel count.
        max_record_seconds: Ceiling for one recording; later frames are dropped.

    Usage:
        >>> config = AppConfig.from_env()
        >>> config.model
        'alan-gift'
    """

    api_key: str
    base_url: Optional[str]
    model: str
    system_prompt: Optional[str]
    max_duration: float
    tokenizer_url: Optional[str]
    host: str
    port: int
    server_url: str
    request_timeout: float
    audio_marker: str
    sample_rate: int
    channels: int
    max_record_seconds: float

    @classmethod
    def from_env(cls) -> "AppConfig":
        """
        Build an :class:`AppConfig` from environment variables.

        Supported variables:
            - OPENAI_API_KEY: Completion backend key (default: empty).
            - OPENAI_BASE_URL: Optional backend base URL override.
            - CHATRELAY_MODEL: Model name (default: "alan-gift").
            - CHATRELAY_SYSTEM_PROMPT: Optional system instruction.
            - CHATRELAY_MAX_DURATION: Backend request ceiling in seconds (default: 30).
            - CHATRELAY_TOKENIZER_URL: Upstream tokenizer endpoint for `/api/tokenize`.
            - CHATRELAY_HOST / CHATRELAY_PORT: Server bind (default: 127.0.0.1:8000).
            - CHATRELAY_SERVER_URL: Proxy root for the client (default: http://localhost:8000).
            - CHATRELAY_REQUEST_TIMEOUT: Client HTTP timeout in seconds (default: 30).
            - CHATRELAY_AUDIO_MARKER: Audio payload marker (default: "<AUDIO>").
            - CHATRELAY_SAMPLE_RATE: Capture sample rate (default: 16000).
            - CHATRELAY_CHANNELS: Capture channels (default: 1).
            - CHATRELAY_MAX_RECORD_SECONDS: Recording ceiling (default: 60).
        """

        return cls(
            api_key=os.environ.get("OPENAI_API_KEY", ""),
            base_url=os.environ.get("OPENAI_BASE_URL") or None,
            model=os.environ.get("CHATRELAY_MODEL") or DEFAULT_MODEL,
            system_prompt=os.environ.get("CHATRELAY_SYSTEM_PROMPT") or None,
            max_duration=_float_env("CHATRELAY_MAX_DURATION", "30"),
            tokenizer_url=os.environ.get("CHATRELAY_TOKENIZER_URL") or None,
            host=os.environ.get("CHATRELAY_HOST", "127.0.0.1"),
            port=_int_env("CHATRELAY_PORT", "8000"),
            server_url=os.environ.get("CHATRELAY_SERVER_URL", "http://localhost:8000").rstrip("/"),
            request_timeout=_float_env("CHATRELAY_REQUEST_TIMEOUT", "30"),
            audio_marker=os.environ.get("CHATRELAY_AUDIO_MARKER") or DEFAULT_AUDIO_MARKER,
            sample_rate=_int_env("CHATRELAY_SAMPLE_RATE", "16000"),
            channels=_int_env("CHATRELAY_CHANNELS", "1"),
            max_record_seconds=_float_env("CHATRELAY_MAX_RECORD_SECONDS", "60"),
        )


def _float_env(name: str, default: str) -> float:
    raw = os.environ.get(name, default)
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number") from exc


def _int_env(name: str, default: str) -> int:
    raw = os.environ.get(name, default)
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc
