"""
chatrelay: a streaming chat relay and its terminal client.

The server side forwards full conversations to an OpenAI-compatible completion
backend and streams the reply back as line frames. The client side keeps the
conversation state machine, renders deltas as they arrive, and can record
microphone audio for the tokenization endpoint.
The default entrypoint is ``python -m chatrelay``.
"""

__version__ = "0.1.0"

__all__ = [
    "config",
    "conversation",
    "interfaces",
    "models",
    "protocol",
    "proxy",
    "server",
]
