"""Microphone recorder backed by sounddevice."""

from __future__ import annotations

import logging
import math
import threading
from typing import Any, List, Optional

import numpy as np

from ..exceptions import MicrophoneUnavailableError
from ..interfaces import AudioRecorder
from ..models import CapturedAudio

logger = logging.getLogger(__name__)


class SoundDeviceRecorder(AudioRecorder):
    """
    Records from the default microphone between ``start`` and ``stop``.

    Args:
        sample_rate: Capture sample rate (Hz).
        channels: Number of channels to record.
        max_seconds: Ceiling for one recording; frames past it are dropped
            and a warning is logged once. ``0`` disables the ceiling.

    Usage:
        recorder = SoundDeviceRecorder(sample_rate=16000, max_seconds=60)
        recorder.start()
        ...
        audio = recorder.stop()
    """

    def __init__(
        self,
        *,
        sample_rate: int = 16000,
        channels: int = 1,
        max_seconds: float = 60.0,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.max_seconds = max_seconds
        self._max_frames: Optional[int] = math.ceil(max_seconds * sample_rate) if max_seconds > 0 else None
        self._stream: Any = None
        self._chunks: List[np.ndarray] = []
        self._frames = 0
        self._truncated = False
        self._lock = threading.Lock()

    @property
    def recording(self) -> bool:
        return self._stream is not None

    def start(self) -> None:
        if self._stream is not None:
            raise RuntimeError("Recorder is already running")
        sd = _lazy_import_sounddevice()

        with self._lock:
            self._chunks = []
            self._frames = 0
            self._truncated = False

        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="float32",
                callback=self._callback,
            )
            stream.start()
        except sd.PortAudioError as exc:
            raise MicrophoneUnavailableError(f"Could not open the input device: {exc}") from exc

        self._stream = stream
        if self._max_frames is not None:
            logger.info("[rec] Listening (max %.0fs)", self.max_seconds)
        else:
            logger.info("[rec] Listening")

    def stop(self) -> CapturedAudio:
        stream, self._stream = self._stream, None
        if stream is None:
            raise RuntimeError("Recorder is not running")
        sd = _lazy_import_sounddevice()
        try:
            try:
                stream.stop()
            finally:
                stream.close()
        except sd.PortAudioError as exc:
            with self._lock:
                self._chunks = []
            raise MicrophoneUnavailableError(f"Input device failed while stopping: {exc}") from exc

        with self._lock:
            chunks, self._chunks = self._chunks, []

        if chunks:
            recording = np.concatenate(chunks, axis=0)
        else:
            recording = np.zeros((0, self.channels), dtype=np.float32)
        logger.info("[rec] Recorded %.2fs of audio", len(recording) / self.sample_rate)
        return CapturedAudio(samples=recording, sample_rate=self.sample_rate)

    def _callback(self, indata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:
        if status:
            logger.debug("[rec] Status: %s", status)
        with self._lock:
            chunk = indata
            if self._max_frames is not None:
                remaining = self._max_frames - self._frames
                if remaining <= 0:
                    if not self._truncated:
                        logger.warning("[rec] Max duration reached (%.0fs); dropping further audio", self.max_seconds)
                        self._truncated = True
                    return
                chunk = indata[:remaining]
            self._chunks.append(chunk.copy())
            self._frames += len(chunk)


def _lazy_import_sounddevice():
    try:
        import sounddevice as sd  # type: ignore
    except (ImportError, OSError) as exc:  # pragma: no cover - runtime dependency
        raise MicrophoneUnavailableError("sounddevice with a working PortAudio is required for recording.") from exc
    return sd
