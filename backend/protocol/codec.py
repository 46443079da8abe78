"""
JSON envelope codec for the BidiGenerateContent protocol.

Client -> Server:
    {"setup": {"model": ..., "generationConfig": {...}}}
    realtime input carrying exactly one part:
        {"text": "..."}
        {"inlineData": {"mimeType": "audio/pcm;rate=16000", "data": <b64>}}
        {"inlineData": {"mimeType": "image/jpeg", "data": <b64>}}

Server -> Client:
    {"setupComplete": {...}}
    {"serverContent": {"modelTurn": {"parts": [...]}}}
    {"serverContent": {"turnComplete": true}}
    {"serverContent": {"interrupted": true}}

The realtime-input envelope shape changed between server revisions, so it
is selected explicitly with EnvelopeVersion. Nothing outside this module
knows which shape is on the wire.

Usage example:

    text = encode_outbound(AudioChunk(pcm_bytes=pcm), envelope=EnvelopeVersion.MEDIA_CHUNKS)
    await transport.send(text)

    try:
        events = decode_inbound(frame)
    except ProtocolDecodeError as e:
        log_event({"event_type": "INBOUND_DECODE_ERROR", "error": str(e)})
"""

from __future__ import annotations

import base64
import binascii
import json
from enum import Enum
from typing import Any

from constants import MIME_AUDIO_PCM_PREFIX, MIME_IMAGE_JPEG
from protocol.events import (
    AudioChunk,
    AudioPart,
    ImageChunk,
    InboundEvent,
    Interrupted,
    OutboundEvent,
    Setup,
    SetupAck,
    TextPart,
    TextTurn,
    TurnComplete,
    Unrecognized,
)


# -------------------------
# Exceptions
# -------------------------

class ProtocolDecodeError(Exception):
    """
    Raised when an inbound frame cannot be parsed.

    Covers malformed JSON, non-object frames, non-UTF-8 bytes and invalid
    base64 payloads. The frame must be dropped; the connection stays up.
    """


# -------------------------
# Envelope versions
# -------------------------

class EnvelopeVersion(str, Enum):
    """
    Realtime-input envelope shape.

    MEDIA_CHUNKS:
        {"realtimeInput": {"mediaChunks": [part]}}
    USER_TURN_PARTS:
        {"realtimeInput": {"modelTurn": {"userTurn": {"parts": [part]}}}}
    CLIENT_CONTENT:
        text as {"clientContent": {"turns": [{"parts": [part]}], "turnComplete": true}},
        media as MEDIA_CHUNKS.
    """

    MEDIA_CHUNKS = "media_chunks"
    USER_TURN_PARTS = "user_turn_parts"
    CLIENT_CONTENT = "client_content"


# -------------------------
# Low-level helpers
# -------------------------

def _b64encode(data: bytes) -> str:
    # Standard alphabet, no line wrapping
    return base64.b64encode(data).decode("ascii")


def _b64decode(data: Any) -> bytes:
    if not isinstance(data, str):
        raise ProtocolDecodeError(f"inlineData.data must be a string, got {type(data).__name__}")
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ProtocolDecodeError(f"invalid base64 payload: {e}") from e


def _inline_part(mime_type: str, data: bytes) -> dict[str, Any]:
    return {"inlineData": {"mimeType": mime_type, "data": _b64encode(data)}}


def audio_mime_type(sample_rate_hz: int) -> str:
    """MIME type announced for PCM16 input at the given rate."""
    return f"{MIME_AUDIO_PCM_PREFIX};rate={sample_rate_hz}"


def _realtime_envelope(part: dict[str, Any], envelope: EnvelopeVersion) -> dict[str, Any]:
    if envelope is EnvelopeVersion.USER_TURN_PARTS:
        return {"realtimeInput": {"modelTurn": {"userTurn": {"parts": [part]}}}}
    return {"realtimeInput": {"mediaChunks": [part]}}


# -------------------------
# Client -> Server
# -------------------------

def encode_setup(event: Setup) -> dict[str, Any]:
    """Build the setup envelope. speechConfig is omitted without a voice."""
    generation_config: dict[str, Any] = {
        "responseModalities": event.response_modality,
    }
    if event.voice:
        generation_config["speechConfig"] = {
            "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": event.voice}},
        }
    return {"setup": {"model": event.model, "generationConfig": generation_config}}


def encode_outbound_dict(
    event: OutboundEvent,
    *,
    envelope: EnvelopeVersion = EnvelopeVersion.MEDIA_CHUNKS,
) -> dict[str, Any]:
    """Build the JSON-ready envelope for an outbound event."""
    if isinstance(event, Setup):
        return encode_setup(event)

    if isinstance(event, TextTurn):
        part: dict[str, Any] = {"text": event.text}
        if envelope is EnvelopeVersion.CLIENT_CONTENT:
            return {"clientContent": {"turns": [{"parts": [part]}], "turnComplete": True}}
        return _realtime_envelope(part, envelope)

    if isinstance(event, AudioChunk):
        return _realtime_envelope(
            _inline_part(audio_mime_type(event.sample_rate_hz), event.pcm_bytes),
            envelope,
        )

    if isinstance(event, ImageChunk):
        return _realtime_envelope(_inline_part(MIME_IMAGE_JPEG, event.jpeg_bytes), envelope)

    raise TypeError(f"Unsupported outbound event: {type(event).__name__}")


def encode_outbound(
    event: OutboundEvent,
    *,
    envelope: EnvelopeVersion = EnvelopeVersion.MEDIA_CHUNKS,
) -> str:
    """Serialize an outbound event to a single text frame."""
    return json.dumps(
        encode_outbound_dict(event, envelope=envelope),
        ensure_ascii=True,
        separators=(",", ":"),
    )


# -------------------------
# Server -> Client
# -------------------------

def _decode_part(part: Any) -> InboundEvent:
    if not isinstance(part, dict):
        return Unrecognized(raw=part)

    text = part.get("text")
    if isinstance(text, str):
        return TextPart(text=text)

    inline = part.get("inlineData")
    if isinstance(inline, dict):
        mime_type = inline.get("mimeType")
        if isinstance(mime_type, str) and mime_type.startswith(MIME_AUDIO_PCM_PREFIX):
            return AudioPart(pcm_bytes=_b64decode(inline.get("data")))

    return Unrecognized(raw=part)


def _decode_server_content(content: Any, raw: dict[str, Any]) -> list[InboundEvent]:
    if not isinstance(content, dict):
        return [Unrecognized(raw=raw)]

    events: list[InboundEvent] = []

    model_turn = content.get("modelTurn")
    if isinstance(model_turn, dict):
        parts = model_turn.get("parts")
        if isinstance(parts, list):
            events.extend(_decode_part(p) for p in parts)

    if content.get("interrupted"):
        events.append(Interrupted())

    if content.get("turnComplete"):
        events.append(TurnComplete())

    if not events:
        events.append(Unrecognized(raw=raw))
    return events


def decode_inbound(frame: str | bytes) -> list[InboundEvent]:
    """
    Parse one inbound frame into zero or more inbound events.

    A single frame may carry several model-turn parts followed by
    interrupted / turnComplete markers; they are returned in that order.

    Raises:
        ProtocolDecodeError for frames that are not a JSON object or carry
        an undecodable audio payload.
    """
    if isinstance(frame, (bytes, bytearray)):
        try:
            frame = bytes(frame).decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolDecodeError(f"frame is not UTF-8: {e}") from e

    try:
        data = json.loads(frame)
    except json.JSONDecodeError as e:
        raise ProtocolDecodeError(f"malformed JSON: {e}") from e

    if not isinstance(data, dict):
        raise ProtocolDecodeError(f"frame must be a JSON object, got {type(data).__name__}")

    if "setupComplete" in data:
        return [SetupAck()]

    if "serverContent" in data:
        return _decode_server_content(data["serverContent"], data)

    return [Unrecognized(raw=data)]
