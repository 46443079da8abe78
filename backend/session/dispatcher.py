"""
Inbound dispatcher.

Runs on the transport's receive path. One decoded InboundEvent -> one
non-blocking action:

- AudioPart     -> audio sink (enqueue for playback, arrival order)
- TextPart      -> replaces the "last text" observable
- SetupAck      -> connection state machine
- TurnComplete  -> turn marker observable (otherwise inert)
- Interrupted   -> turn marker observable (otherwise inert)
- Unrecognized  -> logged, ignored

Never sends on the network (the receive path must not re-enter the
transport it is reading from).
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol

from observability.logger import log_event
from protocol.events import (
    AudioPart,
    InboundEvent,
    Interrupted,
    SetupAck,
    TextPart,
    TurnComplete,
    Unrecognized,
)
from session.observable import Observable


class PlaybackSink(Protocol):
    """Consumes PCM16LE mono 24 kHz chunks in arrival order."""

    def play(self, pcm_bytes: bytes) -> None:
        ...


class TurnMarker(str, Enum):
    TURN_COMPLETE = "turn_complete"
    INTERRUPTED = "interrupted"


@dataclass(frozen=True)
class TurnSignal:
    """A turn marker plus a per-session sequence so repeats are distinguishable."""
    marker: TurnMarker
    sequence: int


class InboundDispatcher:

    def __init__(
        self,
        *,
        audio_sink: PlaybackSink,
        last_text: Observable[str],
        turn_events: Observable[TurnSignal | None],
        on_setup_ack: Callable[[], None],
        session_id: str | None = None,
    ) -> None:
        self._audio_sink = audio_sink
        self._last_text = last_text
        self._turn_events = turn_events
        self._on_setup_ack = on_setup_ack
        self._session_id = session_id
        self._turn_seq = itertools.count(1)

    def dispatch(self, event: InboundEvent) -> None:
        if isinstance(event, AudioPart):
            self._play(event.pcm_bytes)
        elif isinstance(event, TextPart):
            self._last_text.publish(event.text)
        elif isinstance(event, SetupAck):
            self._on_setup_ack()
        elif isinstance(event, TurnComplete):
            self._mark(TurnMarker.TURN_COMPLETE)
        elif isinstance(event, Interrupted):
            self._mark(TurnMarker.INTERRUPTED)
        elif isinstance(event, Unrecognized):
            log_event({
                "event_type": "INBOUND_UNRECOGNIZED",
                "session_id": self._session_id,
                "keys": sorted(event.raw) if isinstance(event.raw, dict) else None,
            }, level="debug")
        else:
            raise TypeError(f"Unknown inbound event: {event!r}")

    def dispatch_all(self, events: list[InboundEvent]) -> None:
        for event in events:
            self.dispatch(event)

    def _play(self, pcm_bytes: bytes) -> None:
        try:
            self._audio_sink.play(pcm_bytes)
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "AUDIO_SINK_ERROR",
                "session_id": self._session_id,
                "payload_bytes": len(pcm_bytes),
                "error": repr(e),
            }, level="error")

    def _mark(self, marker: TurnMarker) -> None:
        log_event({
            "event_type": "TURN_MARKER",
            "session_id": self._session_id,
            "marker": marker.value,
        })
        self._turn_events.publish(TurnSignal(marker=marker, sequence=next(self._turn_seq)))
