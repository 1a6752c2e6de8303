"""Audio capture session: record, encode, upload, hand back a typed result."""

from __future__ import annotations

import logging
from enum import Enum

from .audio import encode_wav
from .exceptions import MicrophoneUnavailableError, TokenizationError
from .interfaces import AudioRecorder, AudioTokenizer
from .models import TokenizeResult

logger = logging.getLogger(__name__)


class CaptureStatus(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    ENCODING = "encoding"
    UPLOADING = "uploading"


class AudioCaptureSession:
    """
    Drives one recorder and one tokenizer through a capture round.

    ``IDLE -> RECORDING -> ENCODING -> UPLOADING -> IDLE``. Every failure after
    ``start`` becomes a failed :class:`TokenizeResult`; the captured audio is
    dropped as soon as the round ends, successful or not.

    Usage:
        session = AudioCaptureSession(SoundDeviceRecorder(), HttpAudioTokenizer(url))
        session.start()
        ...
        result = session.stop()
        controller.submit_audio(result)
    """

    def __init__(self, recorder: AudioRecorder, tokenizer: AudioTokenizer) -> None:
        self._recorder = recorder
        self._tokenizer = tokenizer
        self._status = CaptureStatus.IDLE

    @property
    def status(self) -> CaptureStatus:
        return self._status

    def start(self) -> None:
        """
        Open the microphone.

        Raises:
            MicrophoneUnavailableError: the device is missing, busy, or access
                was denied. The session stays ``IDLE``.
        """
        if self._status != CaptureStatus.IDLE:
            raise RuntimeError(f"Capture already {self._status.value}")
        self._recorder.start()
        self._status = CaptureStatus.RECORDING

    def stop(self) -> TokenizeResult:
        """Release the microphone, encode the capture, and tokenize it."""
        if self._status != CaptureStatus.RECORDING:
            return TokenizeResult.failure("Not recording")

        try:
            audio = self._recorder.stop()
            if audio.frames == 0:
                return TokenizeResult.failure("No audio captured")

            self._status = CaptureStatus.ENCODING
            wav = encode_wav(audio)
            del audio

            self._status = CaptureStatus.UPLOADING
            tokens = self._tokenizer.tokenize(wav)
        except (MicrophoneUnavailableError, TokenizationError, ValueError) as exc:
            logger.warning("Capture discarded during %s: %s", self._status.value, exc)
            return TokenizeResult.failure(str(exc))
        finally:
            self._status = CaptureStatus.IDLE

        logger.debug("Tokenized capture into %d characters", len(tokens))
        return TokenizeResult.success(tokens)

    def cancel(self) -> None:
        """Stop recording and discard whatever was captured."""
        if self._status != CaptureStatus.RECORDING:
            return
        try:
            self._recorder.stop()
        except MicrophoneUnavailableError as exc:
            logger.warning("Capture cancelled with a device error: %s", exc)
        finally:
            self._status = CaptureStatus.IDLE
