"""WAV encoding for captured audio."""

from __future__ import annotations

import io
import wave

import numpy as np

from .models import CapturedAudio

SAMPLE_WIDTH = 2  # 16-bit PCM
_PCM_SCALE = 32767


def encode_wav(audio: CapturedAudio) -> bytes:
    """
    Encode float32 frames as a 16-bit PCM WAV container.

    The native sample rate and channel count are preserved, and so is the
    frame count: decoding the result yields ``audio.frames`` frames per channel.
    """
    samples = np.asarray(audio.samples, dtype=np.float32)
    if samples.ndim == 1:
        samples = samples.reshape(-1, 1)
    if samples.ndim != 2 or samples.shape[1] < 1:
        raise ValueError(f"Expected (frames, channels) samples, got shape {samples.shape}")
    if audio.sample_rate <= 0:
        raise ValueError("Sample rate must be positive")

    # Convert float32 [-1.0, 1.0] to 16-bit little-endian PCM
    pcm = (np.clip(samples, -1.0, 1.0) * _PCM_SCALE).astype("<i2")

    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(samples.shape[1])
        wf.setsampwidth(SAMPLE_WIDTH)
        wf.setframerate(audio.sample_rate)
        wf.writeframes(pcm.tobytes())
    return buf.getvalue()


def decode_wav(data: bytes) -> CapturedAudio:
    """Decode a 16-bit PCM WAV container back into float32 frames."""
    try:
        with wave.open(io.BytesIO(data), "rb") as wf:
            channels = wf.getnchannels()
            sample_rate = wf.getframerate()
            if wf.getsampwidth() != SAMPLE_WIDTH:
                raise ValueError(f"Unsupported sample width: {wf.getsampwidth()} bytes")
            raw = wf.readframes(wf.getnframes())
    except (wave.Error, EOFError) as exc:
        raise ValueError(f"Not a valid WAV container: {exc}") from exc

    pcm = np.frombuffer(raw, dtype="<i2").reshape(-1, channels)
    return CapturedAudio(samples=pcm.astype(np.float32) / _PCM_SCALE, sample_rate=sample_rate)
