# pylint: disable=missing-module-docstring,missing-function-docstring

import base64
import json

import pytest

from protocol.codec import (
    EnvelopeVersion,
    ProtocolDecodeError,
    decode_inbound,
    encode_outbound,
    encode_outbound_dict,
)
from protocol.events import (
    AudioChunk,
    AudioPart,
    ImageChunk,
    Interrupted,
    Setup,
    SetupAck,
    TextPart,
    TextTurn,
    TurnComplete,
    Unrecognized,
)


# ---------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------

def test_setup_with_voice() -> None:
    encoded = encode_outbound_dict(Setup(model="models/m", voice="Puck"))

    assert encoded == {
        "setup": {
            "model": "models/m",
            "generationConfig": {
                "responseModalities": "audio",
                "speechConfig": {
                    "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": "Puck"}},
                },
            },
        },
    }


def test_setup_without_voice_omits_speech_config() -> None:
    encoded = encode_outbound_dict(Setup(model="models/m"))

    assert "speechConfig" not in encoded["setup"]["generationConfig"]


def test_audio_chunk_media_chunks_envelope() -> None:
    pcm = b"\x01\x02\x03\x04"
    encoded = encode_outbound_dict(AudioChunk(pcm_bytes=pcm))

    (part,) = encoded["realtimeInput"]["mediaChunks"]
    assert part["inlineData"]["mimeType"] == "audio/pcm;rate=16000"
    assert part["inlineData"]["data"] == base64.b64encode(pcm).decode("ascii")


def test_image_chunk_user_turn_parts_envelope() -> None:
    encoded = encode_outbound_dict(
        ImageChunk(jpeg_bytes=b"\xff\xd8\xff"),
        envelope=EnvelopeVersion.USER_TURN_PARTS,
    )

    (part,) = encoded["realtimeInput"]["modelTurn"]["userTurn"]["parts"]
    assert part["inlineData"]["mimeType"] == "image/jpeg"


def test_text_per_envelope() -> None:
    flat = encode_outbound_dict(TextTurn(text="hi"))
    nested = encode_outbound_dict(TextTurn(text="hi"), envelope=EnvelopeVersion.USER_TURN_PARTS)
    client = encode_outbound_dict(TextTurn(text="hi"), envelope=EnvelopeVersion.CLIENT_CONTENT)

    assert flat == {"realtimeInput": {"mediaChunks": [{"text": "hi"}]}}
    assert nested == {"realtimeInput": {"modelTurn": {"userTurn": {"parts": [{"text": "hi"}]}}}}
    assert client == {"clientContent": {"turns": [{"parts": [{"text": "hi"}]}], "turnComplete": True}}


def test_client_content_keeps_media_flat() -> None:
    encoded = encode_outbound_dict(
        AudioChunk(pcm_bytes=b"\x00\x00"),
        envelope=EnvelopeVersion.CLIENT_CONTENT,
    )

    assert "mediaChunks" in encoded["realtimeInput"]


def test_encode_outbound_is_single_line_json() -> None:
    frame = encode_outbound(TextTurn(text="line one\nline two"))

    assert "\n" not in frame
    assert json.loads(frame)["realtimeInput"]["mediaChunks"][0]["text"] == "line one\nline two"


@pytest.mark.parametrize("text", ["héllo 👋", "broken \ud800 pair"])
def test_encode_outbound_is_utf8_safe(text: str) -> None:
    frame = encode_outbound(TextTurn(text=text))

    assert frame.isascii()
    frame.encode("utf-8")
    assert json.loads(frame)["realtimeInput"]["mediaChunks"][0]["text"] == text


# ---------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------

def test_decode_setup_complete() -> None:
    assert decode_inbound('{"setupComplete": {}}') == [SetupAck()]


def test_decode_model_turn_parts_in_order() -> None:
    pcm = b"\x10\x00\x20\x00"
    frame = json.dumps({
        "serverContent": {
            "modelTurn": {
                "parts": [
                    {"text": "Hello"},
                    {"inlineData": {"mimeType": "audio/pcm;rate=24000", "data": base64.b64encode(pcm).decode()}},
                ],
            },
            "turnComplete": True,
        },
    })

    assert decode_inbound(frame) == [TextPart(text="Hello"), AudioPart(pcm_bytes=pcm), TurnComplete()]


def test_decode_interrupted() -> None:
    assert decode_inbound(b'{"serverContent": {"interrupted": true}}') == [Interrupted()]


def test_decode_non_audio_inline_data_is_unrecognized() -> None:
    part = {"inlineData": {"mimeType": "image/png", "data": ""}}
    frame = json.dumps({"serverContent": {"modelTurn": {"parts": [part]}}})

    assert decode_inbound(frame) == [Unrecognized(raw=part)]


def test_decode_unknown_top_level_key() -> None:
    (event,) = decode_inbound('{"toolCall": {"id": 1}}')

    assert isinstance(event, Unrecognized)
    assert event.raw == {"toolCall": {"id": 1}}


def test_decode_empty_server_content_is_unrecognized() -> None:
    (event,) = decode_inbound('{"serverContent": {}}')

    assert isinstance(event, Unrecognized)


@pytest.mark.parametrize(
    "frame",
    [
        "{not json",
        "[1, 2, 3]",
        b"\xff\xfe",
        '{"serverContent": {"modelTurn": {"parts": [{"inlineData": {"mimeType": "audio/pcm", "data": "@@@"}}]}}}',
    ],
)
def test_decode_errors(frame) -> None:
    with pytest.raises(ProtocolDecodeError):
        decode_inbound(frame)


def test_audio_payload_survives_echo_byte_exact() -> None:
    pcm = bytes(range(256)) * 8
    outbound = encode_outbound_dict(AudioChunk(pcm_bytes=pcm))
    echoed = {"serverContent": {"modelTurn": {"parts": outbound["realtimeInput"]["mediaChunks"]}}}

    (event,) = decode_inbound(json.dumps(echoed))

    assert isinstance(event, AudioPart)
    assert event.pcm_bytes == pcm
