"""CLI harness: run the relay server or the terminal chat client."""

from __future__ import annotations

import argparse
import logging
import threading
from typing import Callable, Optional

import uvicorn

from .capture import AudioCaptureSession, CaptureStatus
from .config import AppConfig
from .conversation import ConversationController
from .exceptions import ChatRelayError, MicrophoneUnavailableError
from .models import Message, Usage
from .render import render_history
from .server import create_app
from .services.chat_stream_client import HttpChatTransport
from .services.completion_hook import LoggingCompletionHook, NoopCompletionHook
from .services.mic_recorder import SoundDeviceRecorder
from .services.tokenizer_client import HttpAudioTokenizer

logger = logging.getLogger(__name__)

HELP = """Commands:
  /rec      start recording from the microphone
  /send     stop recording and send the audio
  /cancel   stop recording and discard the audio
  /stop     stop the reply being streamed (Ctrl+C works too)
  /retry    resend the conversation after an error
  /dismiss  clear the current error
  /history  print the conversation
  /quit     exit"""


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def serve(config: AppConfig, *, log_completions: bool = False, reload: bool = False) -> None:
    """Run the relay under uvicorn."""
    if reload:
        uvicorn.run("chatrelay.server:create_app", factory=True, host=config.host, port=config.port, reload=True)
        return
    hook = LoggingCompletionHook() if log_completions else NoopCompletionHook()
    uvicorn.run(create_app(hook=hook), host=config.host, port=config.port)


def build_controller(config: AppConfig) -> ConversationController:
    """Wire a conversation controller that prints deltas as they arrive."""

    def on_delta(message: Message, delta: str) -> None:
        print(delta, end="", flush=True)

    def on_finish(message: Message, usage: Usage, finish_reason: str) -> None:
        print()
        logger.debug("Usage %s, finish reason %s", usage, finish_reason)

    def on_error(error: str) -> None:
        print(f"\n[error] {error}  (type /retry or /dismiss)")

    return ConversationController(
        HttpChatTransport(config.server_url, timeout=config.request_timeout),
        on_delta=on_delta,
        on_finish=on_finish,
        on_error=on_error,
        audio_marker=config.audio_marker,
    )


def build_capture(config: AppConfig) -> AudioCaptureSession:
    recorder = SoundDeviceRecorder(
        sample_rate=config.sample_rate,
        channels=config.channels,
        max_seconds=config.max_record_seconds,
    )
    return AudioCaptureSession(recorder, HttpAudioTokenizer(config.server_url, timeout=config.request_timeout))


def run_turn(controller: ConversationController, action: Callable[[], object]) -> None:
    """
    Run one streaming action on a worker thread.

    The main thread stays free to receive Ctrl+C, which stops the stream and
    keeps whatever has been rendered so far.
    """
    errors: list[BaseException] = []

    def target() -> None:
        try:
            action()
        except ChatRelayError as exc:
            errors.append(exc)

    worker = threading.Thread(target=target, name="chatrelay-turn", daemon=True)
    worker.start()
    try:
        while worker.is_alive():
            worker.join(0.1)
    except KeyboardInterrupt:
        if controller.stop():
            print("\n[chat] Stopped.")
        worker.join()

    for exc in errors:
        print(f"[chat] {exc}")


def run_chat(
    controller: ConversationController,
    capture: Optional[AudioCaptureSession] = None,
    *,
    input_fn: Callable[[str], str] = input,
) -> None:
    """Read-eval loop of the terminal client."""
    print(HELP)
    while True:
        prompt = "[rec] > " if capture is not None and capture.status == CaptureStatus.RECORDING else "> "
        try:
            line = input_fn(prompt)
        except (EOFError, KeyboardInterrupt):
            print()
            break

        command = line.strip()
        if command == "/quit":
            break
        if command == "/history":
            print(render_history(controller.messages))
        elif command == "/stop":
            controller.stop()
        elif command == "/dismiss":
            controller.dismiss_error()
        elif command == "/retry":
            run_turn(controller, controller.retry)
        elif command in ("/rec", "/send", "/cancel"):
            _handle_capture(command, controller, capture)
        elif command.startswith("/"):
            print(HELP)
        elif controller.is_busy or controller.error is not None:
            print(f"[chat] Busy ({controller.status.value}); /stop, /retry or /dismiss first.")
        elif command:
            run_turn(controller, lambda: controller.submit(line))

    if capture is not None:
        capture.cancel()


def _handle_capture(
    command: str,
    controller: ConversationController,
    capture: Optional[AudioCaptureSession],
) -> None:
    if capture is None:
        print("[rec] Audio capture is not available.")
        return
    if command == "/rec":
        try:
            capture.start()
        except MicrophoneUnavailableError as exc:
            print(f"[rec] {exc}")
        except RuntimeError as exc:
            print(f"[rec] {exc}")
    elif command == "/cancel":
        capture.cancel()
        print("[rec] Discarded.")
    else:
        if capture.status != CaptureStatus.RECORDING:
            print("[rec] Not recording.")
            return
        result = capture.stop()
        if result.ok and (controller.is_busy or controller.error is not None):
            print(f"[rec] Conversation is {controller.status.value}; recording discarded.")
            return
        run_turn(controller, lambda: controller.submit_audio(result))


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Streaming chat relay and terminal client.")
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve_parser = sub.add_parser("serve", help="Run the /api/chat and /api/tokenize server.")
    serve_parser.add_argument("--host", help="Override CHATRELAY_HOST.")
    serve_parser.add_argument("--port", type=int, help="Override CHATRELAY_PORT.")
    serve_parser.add_argument("--reload", action="store_true", help="Restart on code changes.")
    serve_parser.add_argument(
        "--log-completions",
        action="store_true",
        help="Log usage and finish reason of every completed stream.",
    )

    chat_parser = sub.add_parser("chat", help="Chat with a running relay from the terminal.")
    chat_parser.add_argument("--server-url", help="Override CHATRELAY_SERVER_URL.")
    chat_parser.add_argument("--no-audio", action="store_true", help="Disable microphone commands.")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)
    _configure_logging(args.verbose)
    config = AppConfig.from_env()

    if args.command == "serve":
        if args.host:
            config.host = args.host
        if args.port:
            config.port = args.port
        serve(config, log_completions=args.log_completions, reload=args.reload)
        return

    if args.server_url:
        config.server_url = args.server_url.rstrip("/")
    controller = build_controller(config)
    capture = None if args.no_audio else build_capture(config)
    run_chat(controller, capture)


if __name__ == "__main__":
    main()
