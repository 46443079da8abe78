# pylint: disable=missing-module-docstring,missing-function-docstring

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
import soundfile as sf

from audio.chunking import chunk_pcm
from audio.file_producer import WavFileProducer
from audio.pcm import int16_to_pcm16le, pcm16le_to_int16, pcm_duration_s
from audio.sinks import MemoryAudioSink, SoundFileSink
from constants import INPUT_CHUNK_BYTES


# ---------------------------------------------------------------------
# Chunking
# ---------------------------------------------------------------------

def test_default_chunk_is_4096_bytes():
    pcm = b"\x00" * (INPUT_CHUNK_BYTES * 3)

    chunks = chunk_pcm(pcm)

    assert INPUT_CHUNK_BYTES == 4096
    assert [len(c) for c in chunks] == [4096, 4096, 4096]


def test_trailing_partial_chunk_kept_unless_dropped():
    pcm = b"\x00" * (INPUT_CHUNK_BYTES + 10)

    assert [len(c) for c in chunk_pcm(pcm)] == [INPUT_CHUNK_BYTES, 10]
    assert [len(c) for c in chunk_pcm(pcm, drop_partial=True)] == [INPUT_CHUNK_BYTES]


def test_odd_trailing_byte_never_splits_a_sample():
    assert chunk_pcm(b"\x01\x00\x02", chunk_bytes=4) == [b"\x01\x00"]


def test_empty_input_returns_no_chunks():
    assert chunk_pcm(b"") == []


@pytest.mark.parametrize("size", [0, -2, 3])
def test_invalid_chunk_size(size: int):
    with pytest.raises(ValueError):
        chunk_pcm(b"\x00\x00", chunk_bytes=size)


# ---------------------------------------------------------------------
# PCM
# ---------------------------------------------------------------------

def test_pcm_conversions():
    samples = np.array([0, 16384, -32768, 32767], dtype=np.int16)
    pcm = int16_to_pcm16le(samples)

    assert pcm == b"\x00\x00\x00\x40\x00\x80\xff\x7f"
    assert pcm16le_to_int16(pcm + b"\x01").tolist() == samples.tolist()


def test_pcm_duration():
    assert pcm_duration_s(32000, 16000) == pytest.approx(1.0)
    assert pcm_duration_s(4096, 16000) == pytest.approx(0.128)


# ---------------------------------------------------------------------
# Sinks
# ---------------------------------------------------------------------

def test_memory_sink_keeps_arrival_order():
    sink = MemoryAudioSink()
    sink.play(b"\x01\x00")
    sink.play(b"\x02\x00")

    assert sink.chunks == [b"\x01\x00", b"\x02\x00"]
    assert sink.pcm() == b"\x01\x00\x02\x00"


def test_soundfile_sink_writes_24k_wav(tmp_path: Path):
    path = tmp_path / "reply.wav"
    sink = SoundFileSink(path)
    pcm = int16_to_pcm16le(np.arange(-100, 100, dtype=np.int16))

    sink.play(pcm[:200])
    sink.play(pcm[200:])
    sink.close()

    data, rate = sf.read(path, dtype="int16")
    assert rate == 24000
    assert data.tolist() == list(range(-100, 100))
    assert sink.frames_written == 200


# ---------------------------------------------------------------------
# WAV file producer
# ---------------------------------------------------------------------

def test_wav_producer_streams_whole_file(tmp_path: Path):
    path = tmp_path / "question.wav"
    samples = (np.arange(5000) % 200 - 100).astype(np.int16)
    sf.write(path, samples, 16000, subtype="PCM_16")

    received: list[bytes] = []
    producer = WavFileProducer(path, realtime=False)
    producer.start(received.append)

    assert producer.finished.wait(timeout=5.0)
    producer.stop()

    assert b"".join(received) == int16_to_pcm16le(samples)
    assert len(received[0]) == INPUT_CHUNK_BYTES
    assert producer.chunks_sent == len(received)


def test_wav_producer_rejects_wrong_rate(tmp_path: Path):
    path = tmp_path / "hifi.wav"
    sf.write(path, np.zeros(100, dtype=np.int16), 44100, subtype="PCM_16")

    with pytest.raises(ValueError):
        WavFileProducer(path).start(lambda chunk: None)
