"""
WAV-file microphone stand-in.

Reads a 16 kHz WAV with soundfile, cuts it into microphone-sized PCM16LE
chunks and delivers them from a worker thread at real-time cadence, the
way a capture callback would.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable

import soundfile as sf

from audio.chunking import chunk_pcm
from audio.pcm import int16_to_pcm16le, pcm_duration_s
from constants import INPUT_CHUNK_BYTES, INPUT_SAMPLE_RATE_HZ
from observability.logger import log_event


class WavFileProducer:
    """
    ChunkProducer backed by a WAV file.

    realtime=False delivers every chunk back to back (tests, batch runs).
    """

    def __init__(
        self,
        path: str | Path,
        *,
        chunk_bytes: int = INPUT_CHUNK_BYTES,
        realtime: bool = True,
    ) -> None:
        self.path = Path(path)
        self._chunk_bytes = chunk_bytes
        self._realtime = realtime
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

        self.finished = threading.Event()
        self.chunks_sent = 0

    def load_chunks(self) -> list[bytes]:
        """
        Raises:
            ValueError if the file is not 16 kHz.
        """
        samples, sample_rate = sf.read(self.path, dtype="int16", always_2d=False)
        if sample_rate != INPUT_SAMPLE_RATE_HZ:
            raise ValueError(
                f"{self.path} is {sample_rate} Hz; expected {INPUT_SAMPLE_RATE_HZ} Hz"
            )
        return chunk_pcm(int16_to_pcm16le(samples), chunk_bytes=self._chunk_bytes)

    def start(self, on_chunk_ready: Callable[[bytes], None]) -> None:
        if self._thread is not None:
            return
        chunks = self.load_chunks()
        self._stop.clear()
        self.finished.clear()
        self._thread = threading.Thread(
            target=self._run,
            args=(chunks, on_chunk_ready),
            name=f"wav-producer-{self.path.name}",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        thread = self._thread
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)

    def _run(self, chunks: list[bytes], on_chunk_ready: Callable[[bytes], None]) -> None:
        try:
            for chunk in chunks:
                if self._stop.is_set():
                    return
                on_chunk_ready(chunk)
                self.chunks_sent += 1
                if self._realtime and self._stop.wait(
                    pcm_duration_s(len(chunk), INPUT_SAMPLE_RATE_HZ)
                ):
                    return
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "PRODUCER_ERROR",
                "producer": "wav_file",
                "path": str(self.path),
                "error": repr(e),
            }, level="error")
        finally:
            log_event({
                "event_type": "WAV_PRODUCER_DONE",
                "path": str(self.path),
                "chunks_sent": self.chunks_sent,
                "chunks_total": len(chunks),
            }, level="debug")
            self.finished.set()
