"""Client-side upload of recorded audio to `/api/tokenize`."""

from __future__ import annotations

import logging
from typing import Optional

import requests

from ..exceptions import TokenizationError
from ..interfaces import AudioTokenizer

logger = logging.getLogger(__name__)


class HttpAudioTokenizer(AudioTokenizer):
    """
    Uploads a WAV blob as multipart field ``file`` and returns the token text.

    Args:
        base_url: Root URL of the relay (e.g., "http://localhost:8000").
        timeout: HTTP timeout in seconds.
        session: Optional ``requests.Session`` to reuse connections.

    Expected API format:
        POST /api/tokenize
        Content-Type: multipart/form-data (field "file")

        Response: {"tokens": "..."}
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._endpoint = f"{base_url.rstrip('/')}/api/tokenize"
        self._timeout = timeout
        self._session = session or requests.Session()

    def tokenize(self, wav: bytes) -> str:
        if not wav:
            raise TokenizationError("No audio data provided for tokenization.")

        logger.debug("[rec] Uploading %d bytes to %s", len(wav), self._endpoint)
        try:
            response = self._session.post(
                self._endpoint,
                files={"file": ("recording.wav", wav, "audio/wav")},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise TokenizationError(f"Tokenize request could not reach the server: {exc}") from exc

        if not response.ok:
            raise TokenizationError(f"Tokenize request failed ({response.status_code}): {response.text[:200]}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise TokenizationError("Tokenize response was not valid JSON") from exc

        tokens = payload.get("tokens") if isinstance(payload, dict) else None
        if not isinstance(tokens, str) or not tokens:
            raise TokenizationError("Tokenize response did not contain tokens")
        return tokens
