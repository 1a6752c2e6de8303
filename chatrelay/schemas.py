"""Request and response bodies of the HTTP API."""

from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field


class WireMessage(BaseModel):
    """One message as posted by a chat front-end; unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore")

    role: Literal["system", "user", "assistant"]
    content: str
    kind: Literal["text", "audio"] = "text"


class ChatRequest(BaseModel):
    messages: List[WireMessage] = Field(min_length=1)


class TokenizeResponse(BaseModel):
    tokens: str


class ErrorResponse(BaseModel):
    error: str
