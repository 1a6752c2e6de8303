"""Tests for the client-side conversation state machine."""

from __future__ import annotations

import threading

import pytest

from chatrelay.conversation import ConversationController, Status
from chatrelay.exceptions import (
    ChatClientError,
    ConversationBusyError,
    EmptyInputError,
    NothingToRetryError,
)
from chatrelay.models import TokenizeResult
from chatrelay.protocol import Frame
from chatrelay.render import AUDIO_PLACEHOLDER, render_content, render_message
from conftest import ListChatStream, ScriptedTransport, text_frames


def _contents(controller):
    return [(m.role, m.content) for m in controller.messages]


def test_submit_streams_reply_into_placeholder():
    deltas = []
    finished = []
    transport = ScriptedTransport(ListChatStream(text_frames("hi ", "there")))
    controller = ConversationController(
        transport,
        on_delta=lambda message, delta: deltas.append((delta, message.content)),
        on_finish=lambda message, usage, reason: finished.append((message.content, usage.total_tokens, reason)),
    )

    controller.submit("hello")

    assert controller.status == Status.IDLE
    assert _contents(controller) == [("user", "hello"), ("assistant", "hi there")]
    assert deltas == [("hi ", "hi "), ("there", "hi there")]
    assert finished == [("hi there", 6, "stop")]
    assert transport.payloads == [[{"role": "user", "content": "hello"}]]
    assert controller.last_finish_reason == "stop"


def test_history_is_sent_in_full_each_turn():
    transport = ScriptedTransport(
        ListChatStream(text_frames("one")),
        ListChatStream(text_frames("two")),
    )
    controller = ConversationController(transport)

    controller.submit("first")
    controller.submit("second")

    assert transport.payloads[1] == [
        {"role": "user", "content": "first"},
        {"role": "assistant", "content": "one"},
        {"role": "user", "content": "second"},
    ]


@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
def test_empty_input_is_rejected_without_network(text):
    transport = ScriptedTransport()
    controller = ConversationController(transport)

    with pytest.raises(EmptyInputError):
        controller.submit(text)

    assert transport.payloads == []
    assert controller.messages == ()
    assert controller.status == Status.IDLE


def test_second_submit_while_streaming_is_rejected():
    rejected = []
    transport = ScriptedTransport(ListChatStream(text_frames("a", "b")))

    def on_delta(message, delta):
        assert controller.is_busy
        with pytest.raises(ConversationBusyError):
            controller.submit("again")
        rejected.append(delta)

    controller = ConversationController(transport, on_delta=on_delta)
    controller.submit("hello")

    assert rejected == ["a", "b"]
    assert len(transport.payloads) == 1
    assert _contents(controller) == [("user", "hello"), ("assistant", "ab")]


def test_stop_keeps_partial_reply_and_drops_later_frames():
    stream = ListChatStream(text_frames("first ", "second ", "third"))
    transport = ScriptedTransport(stream)

    def on_delta(message, delta):
        assert controller.stop() is True
        assert controller.status == Status.IDLE

    controller = ConversationController(transport, on_delta=on_delta)
    controller.submit("hello")

    assert controller.status == Status.IDLE
    assert controller.error is None
    assert _contents(controller) == [("user", "hello"), ("assistant", "first ")]
    assert stream.closed
    assert stream.consumed == 2


def test_stop_when_idle_is_a_no_op():
    controller = ConversationController(ScriptedTransport())
    assert controller.stop() is False


def test_stop_from_another_thread_during_sending():
    opened = threading.Event()
    release = threading.Event()
    stream = ListChatStream(text_frames("late"))

    class SlowTransport:
        def open(self, messages):
            opened.set()
            release.wait(5)
            return stream

    controller = ConversationController(SlowTransport())
    worker = threading.Thread(target=controller.submit, args=("hello",))
    worker.start()
    assert opened.wait(5)

    assert controller.status == Status.SENDING
    assert controller.stop() is True
    release.set()
    worker.join(5)

    assert controller.status == Status.IDLE
    assert stream.closed
    assert _contents(controller) == [("user", "hello"), ("assistant", "")]


def test_request_failure_moves_to_error_and_keeps_last_message():
    errors = []
    transport = ScriptedTransport(ChatClientError("Chat request failed (502)"))
    controller = ConversationController(transport, on_error=errors.append)

    controller.submit("hello")

    assert controller.status == Status.ERROR
    assert controller.error == "Chat request failed (502)"
    assert errors == ["Chat request failed (502)"]
    assert controller.messages[0].content == "hello"


def test_error_frame_moves_to_error():
    frames = [Frame("f", {"messageId": "m"}), Frame("0", "par"), Frame("3", "An error occurred.")]
    controller = ConversationController(ScriptedTransport(ListChatStream(frames)))

    controller.submit("hello")

    assert controller.status == Status.ERROR
    assert controller.error == "An error occurred."
    assert _contents(controller)[-1] == ("assistant", "par")


def test_stream_ending_without_terminal_frame_is_an_error():
    frames = [Frame("f", {"messageId": "m"}), Frame("0", "cut")]
    controller = ConversationController(ScriptedTransport(ListChatStream(frames)))

    controller.submit("hello")

    assert controller.status == Status.ERROR


def test_interrupted_stream_is_an_error():
    stream = ListChatStream(text_frames("a", "b"), error_after=2)
    controller = ConversationController(ScriptedTransport(stream))

    controller.submit("hello")

    assert controller.status == Status.ERROR
    assert controller.error == "connection reset"


def test_submit_is_refused_while_in_error():
    controller = ConversationController(ScriptedTransport(ChatClientError("down")))
    controller.submit("hello")

    with pytest.raises(ConversationBusyError):
        controller.submit("again")


def test_retry_resends_identical_conversation():
    transport = ScriptedTransport(
        ListChatStream(text_frames("one")),
        ChatClientError("backend down"),
        ListChatStream(text_frames("two")),
    )
    controller = ConversationController(transport)
    controller.submit("first")
    controller.submit("second")
    assert controller.status == Status.ERROR
    before = _contents(controller)

    controller.retry()

    assert transport.payloads[2] == transport.payloads[1]
    assert controller.status == Status.IDLE
    assert len(controller.messages) == len(before)
    assert _contents(controller)[:-1] == before[:-1]
    assert _contents(controller)[-1] == ("assistant", "two")


def test_retry_replaces_partial_failed_reply():
    frames = [Frame("f", {"messageId": "m"}), Frame("0", "half"), Frame("3", "An error occurred.")]
    transport = ScriptedTransport(ListChatStream(frames), ListChatStream(text_frames("whole")))
    controller = ConversationController(transport)
    controller.submit("hello")

    controller.retry()

    assert _contents(controller) == [("user", "hello"), ("assistant", "whole")]
    assert transport.payloads[0] == transport.payloads[1]


def test_retry_when_idle_regenerates_last_reply():
    transport = ScriptedTransport(ListChatStream(text_frames("one")), ListChatStream(text_frames("uno")))
    controller = ConversationController(transport)
    controller.submit("hello")

    controller.retry()

    assert _contents(controller) == [("user", "hello"), ("assistant", "uno")]


def test_retry_on_empty_conversation_raises():
    with pytest.raises(NothingToRetryError):
        ConversationController(ScriptedTransport()).retry()


def test_audio_result_becomes_tagged_user_message():
    transport = ScriptedTransport(ListChatStream(text_frames("heard you")))
    controller = ConversationController(transport, audio_marker="<AUDIO>")

    message = controller.submit_audio(TokenizeResult.success("ab12"))

    assert message is not None
    assert message.role == "user"
    assert message.is_audio
    assert message.content == "<AUDIO>ab12"
    assert transport.payloads == [[{"role": "user", "content": "<AUDIO>ab12", "kind": "audio"}]]
    assert "ab12" not in render_content(message)
    assert render_content(message) == AUDIO_PLACEHOLDER
    assert render_message(controller.messages[-1]) == "Assistant: heard you"


def test_text_that_looks_like_audio_is_rendered_literally():
    transport = ScriptedTransport(ListChatStream(text_frames("ok")))
    controller = ConversationController(transport)

    message = controller.submit("<AUDIO>not really")

    assert not message.is_audio
    assert render_content(message) == "<AUDIO>not really"


def test_failed_audio_result_surfaces_error_without_touching_history():
    errors = []
    transport = ScriptedTransport(ListChatStream(text_frames("one")))
    controller = ConversationController(transport, on_error=errors.append)
    controller.submit("hello")

    assert controller.submit_audio(TokenizeResult.failure("Tokenize request failed (500)")) is None

    assert controller.status == Status.ERROR
    assert errors == ["Tokenize request failed (500)"]
    assert _contents(controller) == [("user", "hello"), ("assistant", "one")]
    with pytest.raises(NothingToRetryError):
        controller.retry()

    controller.dismiss_error()
    assert controller.status == Status.IDLE
    assert controller.error is None
