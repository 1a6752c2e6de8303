"""FastAPI application exposing `/api/chat` and `/api/tokenize`."""

from __future__ import annotations

import json
import logging
from typing import Callable, List, Optional

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from .config import AppConfig
from .exceptions import BackendUnavailableError, MalformedRequestError, TokenizationError
from .interfaces import CompletionBackend, CompletionHook
from .models import Message
from .protocol import MEDIA_TYPE, STREAM_HEADER, STREAM_VERSION
from .proxy import GENERIC_ERROR, CompletionProxy
from .schemas import ChatRequest, ErrorResponse, TokenizeResponse
from .services.completion_hook import NoopCompletionHook
from .services.completion_openai import OpenAICompletionBackend
from .services.tokenizer_relay import TokenizerRelay

logger = logging.getLogger(__name__)

ConfigLoader = Callable[[], AppConfig]
BackendFactory = Callable[[AppConfig], CompletionBackend]
RelayFactory = Callable[[AppConfig], TokenizerRelay]


def create_app(
    *,
    config_loader: ConfigLoader = AppConfig.from_env,
    backend_factory: BackendFactory = OpenAICompletionBackend.from_config,
    relay_factory: RelayFactory = TokenizerRelay.from_config,
    hook: Optional[CompletionHook] = None,
) -> FastAPI:
    """
    Build the relay application.

    Configuration is loaded on every request so the model, key, base URL and
    system prompt always reflect the current environment; nothing in the
    request body can override them.
    """

    app = FastAPI(title="chatrelay")
    completion_hook = hook or NoopCompletionHook()

    @app.exception_handler(MalformedRequestError)
    async def _malformed(request: Request, exc: MalformedRequestError) -> JSONResponse:
        logger.info("Rejected %s %s: %s", request.method, request.url.path, exc)
        return _error(str(exc), 400)

    @app.exception_handler(BackendUnavailableError)
    async def _backend_unavailable(request: Request, exc: BackendUnavailableError) -> JSONResponse:
        logger.warning("Completion backend failure: %s", exc)
        return _error(GENERIC_ERROR, 502)

    @app.exception_handler(TokenizationError)
    async def _tokenizer_failed(request: Request, exc: TokenizationError) -> JSONResponse:
        logger.warning("Tokenization failure: %s", exc)
        return _error(GENERIC_ERROR, 502)

    @app.get("/healthz")
    async def healthz() -> JSONResponse:
        config = config_loader()
        return JSONResponse({"status": "ok", "model": config.model})

    @app.post("/api/chat", responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}})
    async def chat(request: Request) -> StreamingResponse:
        messages = await _read_messages(request)
        config = config_loader()
        proxy = CompletionProxy(
            backend=backend_factory(config),
            hook=completion_hook,
            system_prompt=config.system_prompt,
        )
        frames = await proxy.open(messages)
        return StreamingResponse(
            frames,
            media_type=MEDIA_TYPE,
            headers={STREAM_HEADER: STREAM_VERSION},
        )

    @app.post(
        "/api/tokenize",
        response_model=TokenizeResponse,
        responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    )
    async def tokenize(file: Optional[UploadFile] = File(None)) -> TokenizeResponse:
        if file is None:
            raise MalformedRequestError("Multipart field 'file' is required")
        data = await file.read()
        if not data:
            raise MalformedRequestError("Uploaded audio is empty")

        config = config_loader()
        if not config.tokenizer_url:
            raise HTTPException(status_code=503, detail="Tokenizer is not configured")

        relay = relay_factory(config)
        tokens = await relay.tokenize(
            data,
            filename=file.filename or "recording.wav",
            content_type=file.content_type or "audio/wav",
        )
        return TokenizeResponse(tokens=tokens)

    return app


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(ErrorResponse(error=message).model_dump(), status_code=status_code)


async def _read_messages(request: Request) -> List[Message]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedRequestError("Request body is not valid JSON") from exc

    if not isinstance(body, dict) or "messages" not in body:
        raise MalformedRequestError("Request body must contain 'messages'")

    try:
        parsed = ChatRequest.model_validate(body)
    except ValidationError as exc:
        raise MalformedRequestError(f"Invalid 'messages': {exc.error_count()} error(s)") from exc

    return [Message(role=m.role, content=m.content, kind=m.kind) for m in parsed.messages]
