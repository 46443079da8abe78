"""
Playback sinks for model audio (PCM16LE mono 24 kHz, arrival order).

- MemoryAudioSink: buffers chunks in memory (tests, headless capture)
- SoundFileSink:   appends chunks to a WAV file via soundfile

Both satisfy session.dispatcher.PlaybackSink: play() only enqueues/writes,
it never touches the network.
"""

from __future__ import annotations

import threading
from pathlib import Path

import soundfile as sf

from audio.pcm import pcm16le_to_int16
from constants import AUDIO_CHANNELS, OUTPUT_SAMPLE_RATE_HZ


class MemoryAudioSink:
    """Keeps every received chunk, in order."""

    def __init__(self) -> None:
        self._chunks: list[bytes] = []
        self._lock = threading.Lock()

    def play(self, pcm_bytes: bytes) -> None:
        with self._lock:
            self._chunks.append(pcm_bytes)

    @property
    def chunks(self) -> list[bytes]:
        with self._lock:
            return list(self._chunks)

    def pcm(self) -> bytes:
        with self._lock:
            return b"".join(self._chunks)

    def clear(self) -> None:
        with self._lock:
            self._chunks.clear()


class SoundFileSink:
    """
    Streams received audio into a 16-bit WAV file.

    The file is opened lazily on the first chunk and finalized by close().
    """

    def __init__(
        self,
        path: str | Path,
        *,
        sample_rate_hz: int = OUTPUT_SAMPLE_RATE_HZ,
    ) -> None:
        self.path = Path(path)
        self.sample_rate_hz = sample_rate_hz
        self._file: sf.SoundFile | None = None
        self._frames_written = 0
        self._lock = threading.Lock()

    @property
    def frames_written(self) -> int:
        return self._frames_written

    def play(self, pcm_bytes: bytes) -> None:
        samples = pcm16le_to_int16(pcm_bytes)
        if samples.size == 0:
            return
        with self._lock:
            if self._file is None:
                self._file = sf.SoundFile(
                    self.path,
                    mode="w",
                    samplerate=self.sample_rate_hz,
                    channels=AUDIO_CHANNELS,
                    subtype="PCM_16",
                    format="WAV",
                )
            self._file.write(samples)
            self._frames_written += int(samples.size)

    def close(self) -> None:
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None
