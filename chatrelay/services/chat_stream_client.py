"""HTTP client for the streaming `/api/chat` endpoint."""

from __future__ import annotations

import http.client
import json
import logging
import ssl
import threading
import urllib.error
import urllib.request
from typing import Any, Dict, Iterator, Optional, Sequence

from ..exceptions import ChatClientError
from ..interfaces import ChatStream, ChatTransport
from ..protocol import MEDIA_TYPE, Frame, parse_frame

logger = logging.getLogger(__name__)


class HttpChatStream(ChatStream):
    """
    Iterates the frames of one open `/api/chat` response.

    ``close`` may be called from another thread while iteration is blocked on
    the socket; the iterator then ends quietly instead of raising.
    """

    def __init__(self, response: Any) -> None:
        self._response = response
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def __iter__(self) -> Iterator[Frame]:
        try:
            for line_bytes in self._response:
                if self._closed:
                    break
                line = line_bytes.decode("utf-8").strip()
                if not line:
                    continue
                try:
                    frame = parse_frame(line)
                except ValueError:
                    logger.debug("Skipping unparseable line: %r", line[:80])
                    continue
                yield frame
                if frame.is_terminal:
                    break
        except AttributeError:
            # http.client drops its file object on close()
            if not self._closed:
                raise
        except (OSError, ValueError, http.client.HTTPException) as exc:
            if not self._closed:
                raise ChatClientError(f"Chat stream interrupted: {exc}") from exc
        finally:
            self.close()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._response.close()


class HttpChatTransport(ChatTransport):
    """
    Opens streaming chat requests against the relay.

    Usage:
        >>> transport = HttpChatTransport("http://localhost:8000")
        >>> stream = transport.open([{"role": "user", "content": "hello"}])
        >>> for frame in stream:
        ...     print(frame)
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> None:
        self._endpoint = f"{base_url.rstrip('/')}/api/chat"
        self._timeout = timeout
        self._ssl_context = ssl_context

    def open(self, messages: Sequence[Dict[str, str]]) -> HttpChatStream:
        request = urllib.request.Request(
            self._endpoint,
            data=json.dumps({"messages": list(messages)}).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "Accept": MEDIA_TYPE,
            },
            method="POST",
        )

        logger.debug("[chat] Sending %d messages to %s", len(messages), self._endpoint)
        try:
            response = urllib.request.urlopen(request, timeout=self._timeout, context=self._ssl_context)  # type: ignore[arg-type]
        except urllib.error.HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="ignore")
            raise ChatClientError(f"Chat request failed ({exc.code}): {detail}") from exc
        except urllib.error.URLError as exc:
            raise ChatClientError(f"Chat request could not reach the server: {exc.reason}") from exc
        except OSError as exc:
            raise ChatClientError(f"Chat request failed: {exc}") from exc

        content_type = response.headers.get("Content-Type", "")
        if not content_type.startswith("text/plain"):
            response.close()
            raise ChatClientError(f"Unexpected content type: {content_type}")
        return HttpChatStream(response)
