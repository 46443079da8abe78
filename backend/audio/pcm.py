"""PCM16LE mono conversion utilities (numpy)."""

from __future__ import annotations

import numpy as np

from constants import AUDIO_CHANNELS, AUDIO_SAMPLE_WIDTH_BYTES


def pcm16le_to_int16(pcm_bytes: bytes) -> np.ndarray:
    """
    View PCM16 little-endian bytes as an int16 array.

    A trailing odd byte (truncated sample) is dropped.
    """
    if len(pcm_bytes) % AUDIO_SAMPLE_WIDTH_BYTES != 0:
        pcm_bytes = pcm_bytes[: len(pcm_bytes) - 1]
    return np.frombuffer(pcm_bytes, dtype="<i2")


def int16_to_pcm16le(samples: np.ndarray) -> bytes:
    """
    Encode samples as PCM16LE bytes.

    Multi-channel input is down-mixed to mono by averaging.
    """
    if samples.ndim > 1:
        samples = samples.mean(axis=1).astype(np.int16)
    return samples.astype("<i2", copy=False).tobytes()


def pcm_duration_s(num_bytes: int, sample_rate_hz: int) -> float:
    if sample_rate_hz <= 0:
        raise ValueError("sample_rate_hz must be > 0")
    frame_bytes = AUDIO_SAMPLE_WIDTH_BYTES * AUDIO_CHANNELS
    return (num_bytes // frame_bytes) / sample_rate_hz
