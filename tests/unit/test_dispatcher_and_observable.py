# pylint: disable=missing-module-docstring,missing-function-docstring

from __future__ import annotations

from typing import Any

import pytest

import session.observable as observable_mod
from protocol.events import (
    AudioPart,
    Interrupted,
    SetupAck,
    TextPart,
    TurnComplete,
    Unrecognized,
)
from session.dispatcher import InboundDispatcher, TurnMarker, TurnSignal
from session.observable import Observable

from fakes import RecordingSink


# ---------------------------------------------------------------------
# Observable
# ---------------------------------------------------------------------

def test_late_subscriber_gets_latest_value() -> None:
    obs: Observable[int] = Observable(0, name="n")
    obs.publish(1)
    obs.publish(2)

    seen: list[int] = []
    obs.subscribe(seen.append)

    assert seen == [2]


def test_stale_versioned_publish_is_dropped() -> None:
    obs: Observable[str] = Observable("idle", name="v")
    seen: list[str] = []
    obs.subscribe(seen.append)

    assert obs.publish("newer", version=2)
    assert not obs.publish("older", version=1)
    assert not obs.publish("same", version=2)

    assert obs.value == "newer"
    assert seen == ["idle", "newer"]


def test_republish_from_subscriber_stops_older_delivery() -> None:
    obs: Observable[str] = Observable("idle", name="v")
    late: list[str] = []

    def first(value: str) -> None:
        if value == "connecting":
            obs.publish("disconnected", version=2)

    obs.subscribe(first)
    obs.subscribe(late.append)
    obs.publish("connecting", version=1)

    assert obs.value == "disconnected"
    assert late == ["idle", "disconnected"]


def test_unsubscribe_stops_notifications_and_is_idempotent() -> None:
    obs: Observable[str] = Observable("", name="s")
    seen: list[str] = []
    unsubscribe = obs.subscribe(seen.append)

    obs.publish("a")
    unsubscribe()
    unsubscribe()
    obs.publish("b")

    assert seen == ["", "a"]
    assert obs.value == "b"


def test_failing_subscriber_is_logged_and_others_still_notified(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    emitted: list[dict[str, Any]] = []
    monkeypatch.setattr(observable_mod, "log_event", lambda e, level="info": emitted.append(e))

    obs: Observable[int] = Observable(0, name="boom")
    seen: list[int] = []

    def bad(_value: int) -> None:
        raise RuntimeError("subscriber bug")

    obs.subscribe(bad)
    obs.subscribe(seen.append)
    obs.publish(5)

    assert seen == [0, 5]
    assert [e["event_type"] for e in emitted] == ["OBSERVER_ERROR", "OBSERVER_ERROR"]
    assert emitted[0]["observable"] == "boom"


# ---------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------

class Harness:
    def __init__(self) -> None:
        self.sink = RecordingSink()
        self.last_text: Observable[str] = Observable("", name="last_text")
        self.turns: Observable[TurnSignal | None] = Observable(None, name="turns")
        self.acks = 0
        self.dispatcher = InboundDispatcher(
            audio_sink=self.sink,
            last_text=self.last_text,
            turn_events=self.turns,
            on_setup_ack=self._ack,
        )

    def _ack(self) -> None:
        self.acks += 1


def test_each_event_goes_to_exactly_one_place() -> None:
    h = Harness()

    h.dispatcher.dispatch_all([
        SetupAck(),
        TextPart(text="hello"),
        AudioPart(pcm_bytes=b"\x01\x00"),
        AudioPart(pcm_bytes=b"\x02\x00"),
        Unrecognized(raw={"toolCall": {}}),
    ])

    assert h.acks == 1
    assert h.last_text.value == "hello"
    assert h.sink.played == [b"\x01\x00", b"\x02\x00"]
    assert h.turns.value is None


def test_turn_markers_are_sequenced() -> None:
    h = Harness()
    seen: list[TurnSignal | None] = []
    h.turns.subscribe(seen.append)

    h.dispatcher.dispatch(Interrupted())
    h.dispatcher.dispatch(TurnComplete())
    h.dispatcher.dispatch(TurnComplete())

    assert seen == [
        None,
        TurnSignal(marker=TurnMarker.INTERRUPTED, sequence=1),
        TurnSignal(marker=TurnMarker.TURN_COMPLETE, sequence=2),
        TurnSignal(marker=TurnMarker.TURN_COMPLETE, sequence=3),
    ]


def test_unknown_event_type_is_a_programming_error() -> None:
    with pytest.raises(TypeError):
        Harness().dispatcher.dispatch("not an event")  # type: ignore[arg-type]
