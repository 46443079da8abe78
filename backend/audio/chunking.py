"""
PCM chunk splitting (pure).

Purpose:
- Cut a PCM16LE mono 16 kHz blob into the fixed-size chunks the microphone
  producer would deliver, for file-backed producers and tests.

Design:
- Pure functions only (no queues, no timing, no IO).
- Chunk size must be a whole number of samples.
- The trailing partial chunk is kept by default (a file's last few
  milliseconds are still speech); pass drop_partial=True to discard it.
"""

from __future__ import annotations

from constants import AUDIO_CHANNELS, AUDIO_SAMPLE_WIDTH_BYTES, INPUT_CHUNK_BYTES


def chunk_pcm(
    pcm_bytes: bytes,
    *,
    chunk_bytes: int = INPUT_CHUNK_BYTES,
    drop_partial: bool = False,
) -> list[bytes]:
    """
    Split raw PCM16 bytes into chunks of `chunk_bytes`.

    Raises:
        ValueError if chunk_bytes is not a positive multiple of the frame size.
    """
    frame_bytes = AUDIO_SAMPLE_WIDTH_BYTES * AUDIO_CHANNELS
    if chunk_bytes <= 0 or chunk_bytes % frame_bytes != 0:
        raise ValueError(
            f"chunk_bytes must be a positive multiple of {frame_bytes} (got {chunk_bytes})"
        )

    # Never split a sample
    usable = len(pcm_bytes) - (len(pcm_bytes) % frame_bytes)
    if usable <= 0:
        return []

    out: list[bytes] = []
    for offset in range(0, usable, chunk_bytes):
        chunk = pcm_bytes[offset : min(offset + chunk_bytes, usable)]
        if drop_partial and len(chunk) < chunk_bytes:
            break
        out.append(chunk)
    return out
