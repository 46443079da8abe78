"""
Wire-level domain events.

Rules:
- Events carry data only (no behavior, no I/O).
- Outbound events are created by producers / the state machine and owned
  by the multiplexer until the codec serializes them.
- Inbound events are produced by the codec from exactly one frame and
  consumed exactly once by the dispatcher.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from constants import INPUT_SAMPLE_RATE_HZ, RESPONSE_MODALITY_AUDIO


# =============================================================================
# Outbound
# =============================================================================

class OutboundKind(str, Enum):
    """Discriminant for outbound events (used by admission and logging)."""

    SETUP = "SETUP"
    TEXT_TURN = "TEXT_TURN"
    AUDIO_CHUNK = "AUDIO_CHUNK"
    IMAGE_CHUNK = "IMAGE_CHUNK"


@dataclass(frozen=True)
class Setup:
    """First message on every transport; configures the model session."""
    model: str
    response_modality: str = RESPONSE_MODALITY_AUDIO
    voice: str | None = None

    kind = OutboundKind.SETUP

    def payload_size(self) -> int:
        return 0


@dataclass(frozen=True)
class TextTurn:
    """User-composed text. Low-frequency and user-visible."""
    text: str

    kind = OutboundKind.TEXT_TURN

    def payload_size(self) -> int:
        return len(self.text.encode("utf-8"))


@dataclass(frozen=True)
class AudioChunk:
    """
    Microphone audio.

    pcm_bytes:
        PCM16 little-endian mono, already encoded by the producer.
    """
    pcm_bytes: bytes = field(repr=False)
    sample_rate_hz: int = INPUT_SAMPLE_RATE_HZ

    kind = OutboundKind.AUDIO_CHUNK

    def payload_size(self) -> int:
        return len(self.pcm_bytes)


@dataclass(frozen=True)
class ImageChunk:
    """A complete JPEG frame from the camera or screen producer."""
    jpeg_bytes: bytes = field(repr=False)

    kind = OutboundKind.IMAGE_CHUNK

    def payload_size(self) -> int:
        return len(self.jpeg_bytes)


OutboundEvent = Union[Setup, TextTurn, AudioChunk, ImageChunk]

MEDIA_KINDS: frozenset[OutboundKind] = frozenset({
    OutboundKind.AUDIO_CHUNK,
    OutboundKind.IMAGE_CHUNK,
})


# =============================================================================
# Inbound
# =============================================================================

class InboundKind(str, Enum):
    """Discriminant for inbound events."""

    SETUP_ACK = "SETUP_ACK"
    TEXT_PART = "TEXT_PART"
    AUDIO_PART = "AUDIO_PART"
    TURN_COMPLETE = "TURN_COMPLETE"
    INTERRUPTED = "INTERRUPTED"
    UNRECOGNIZED = "UNRECOGNIZED"


@dataclass(frozen=True)
class SetupAck:
    """Server accepted the Setup message."""

    kind = InboundKind.SETUP_ACK


@dataclass(frozen=True)
class TextPart:
    """One text part of a model turn."""
    text: str

    kind = InboundKind.TEXT_PART


@dataclass(frozen=True)
class AudioPart:
    """One audio part of a model turn (PCM16LE mono @ 24kHz)."""
    pcm_bytes: bytes = field(repr=False)

    kind = InboundKind.AUDIO_PART


@dataclass(frozen=True)
class TurnComplete:
    """The model finished its turn."""

    kind = InboundKind.TURN_COMPLETE


@dataclass(frozen=True)
class Interrupted:
    """The model turn was interrupted (user barge-in)."""

    kind = InboundKind.INTERRUPTED


@dataclass(frozen=True)
class Unrecognized:
    """A well-formed frame (or part) the client does not understand."""
    raw: Any

    kind = InboundKind.UNRECOGNIZED


InboundEvent = Union[SetupAck, TextPart, AudioPart, TurnComplete, Interrupted, Unrecognized]
