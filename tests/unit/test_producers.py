# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from session.producers import ProducerKind, ProducerSlot

from fakes import FakeProducer


def test_slot_builds_on_activate_and_drops_on_deactivate():
    built: list[FakeProducer] = []
    received: list[bytes] = []

    def factory() -> FakeProducer:
        built.append(FakeProducer())
        return built[-1]

    slot = ProducerSlot(ProducerKind.MICROPHONE, factory, received.append)

    assert not slot.active
    assert slot.activate()
    assert not slot.activate()
    built[0].emit(b"\x00\x00")
    assert slot.deactivate()
    assert not slot.deactivate()

    assert len(built) == 1
    assert built[0].stopped == 1
    assert received == [b"\x00\x00"]


def test_failed_start_leaves_slot_inactive():
    class BrokenProducer(FakeProducer):
        def start(self, on_chunk_ready):
            raise OSError("no camera")

    slot = ProducerSlot(ProducerKind.CAMERA, BrokenProducer, lambda chunk: None)

    with pytest.raises(OSError):
        slot.activate()
    assert not slot.active


def test_stop_error_is_logged_not_raised(monkeypatch: pytest.MonkeyPatch):
    import session.producers as producers_mod

    emitted: list[dict] = []
    monkeypatch.setattr(producers_mod, "log_event", lambda e, level="info": emitted.append(e))

    class StickyProducer(FakeProducer):
        def stop(self):
            raise RuntimeError("stuck")

    slot = ProducerSlot(ProducerKind.SCREEN, StickyProducer, lambda chunk: None)
    slot.activate()

    assert slot.deactivate()
    assert "PRODUCER_STOP_ERROR" in [e["event_type"] for e in emitted]
    assert not slot.active
