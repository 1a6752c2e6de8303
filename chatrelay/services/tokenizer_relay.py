"""Server-side relay from `/api/tokenize` to the upstream tokenization service."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ..config import AppConfig
from ..exceptions import TokenizationError

logger = logging.getLogger(__name__)


class TokenizerRelay:
    """
    Posts a waveform to the upstream tokenizer and normalizes its reply.

    Args:
        url: Full URL of the upstream endpoint (multipart field ``file``).
        timeout: HTTP timeout in seconds.
        transport: Optional httpx transport, used to stub the upstream.

    Accepted upstream shapes (first match wins):
        {"tokens": "..."}
        {"tokens": ["...", "..."]}
        {"data": {"tokens": "..."}}
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls, config: AppConfig) -> "TokenizerRelay":
        if not config.tokenizer_url:
            raise TokenizationError("CHATRELAY_TOKENIZER_URL is not configured")
        return cls(config.tokenizer_url, timeout=config.max_duration)

    async def tokenize(
        self,
        wav: bytes,
        *,
        filename: str = "recording.wav",
        content_type: str = "audio/wav",
    ) -> str:
        if not wav:
            raise TokenizationError("No audio data provided for tokenization.")

        logger.debug("Relaying %d bytes to tokenizer %s", len(wav), self._url)
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                response = await client.post(self._url, files={"file": (filename, wav, content_type)})
            except httpx.HTTPError as exc:
                raise TokenizationError(f"Tokenizer could not be reached: {exc}") from exc

        if response.status_code >= 400:
            raise TokenizationError(f"Tokenizer request failed ({response.status_code}): {response.text[:200]}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise TokenizationError("Tokenizer response was not valid JSON") from exc

        return _extract_tokens(payload)


def _extract_tokens(payload: Any) -> str:
    if isinstance(payload, dict):
        data = payload.get("data")
        if "tokens" not in payload and isinstance(data, dict):
            payload = data
        tokens = payload.get("tokens")
        if isinstance(tokens, list) and all(isinstance(t, str) for t in tokens):
            tokens = "".join(tokens)
        if isinstance(tokens, str) and tokens:
            return tokens
    raise TokenizationError("Tokenizer response did not contain tokens")
