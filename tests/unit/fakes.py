# pylint: disable=missing-module-docstring,missing-function-docstring,missing-class-docstring

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

from config import AppConfig
from connection.state import ConnectionState
from transport.base import (
    TransportClosed,
    TransportError,
    TransportIOFailure,
    TransportOpenFailure,
)


class FakeTransport:
    """In-memory transport. Inbound frames and closures are scripted."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.closed_with: tuple[int, str] | None = None
        self.fail_send: TransportError | None = None
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()

    async def send(self, frame: str) -> None:
        if self.fail_send is not None:
            raise self.fail_send
        self.sent.append(frame)

    async def receive(self) -> str | bytes:
        item = await self._inbox.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.closed_with is None:
            self.closed_with = (code, reason)
            self._inbox.put_nowait(TransportClosed(code, reason))

    # -- scripting helpers --

    def feed(self, frame: str | bytes | dict[str, Any]) -> None:
        if isinstance(frame, dict):
            frame = json.dumps(frame)
        self._inbox.put_nowait(frame)

    def drop(self, code: int = 1006, reason: str = "") -> None:
        self._inbox.put_nowait(TransportClosed(code, reason))

    def break_io(self) -> None:
        self._inbox.put_nowait(TransportIOFailure("connection reset"))

    def sent_json(self) -> list[dict[str, Any]]:
        return [json.loads(frame) for frame in self.sent]


class FakeTransportFactory:
    def __init__(self, *, fail_opens: int = 0) -> None:
        self.opened: list[FakeTransport] = []
        self.open_attempts = 0
        self.fail_opens = fail_opens

    async def __call__(self) -> FakeTransport:
        self.open_attempts += 1
        if self.fail_opens != 0:
            if self.fail_opens > 0:
                self.fail_opens -= 1
            raise TransportOpenFailure("connection refused")
        transport = FakeTransport()
        self.opened.append(transport)
        return transport

    @property
    def latest(self) -> FakeTransport:
        return self.opened[-1]


class RecordingSleep:
    """Records requested delays; optionally holds until release()."""

    def __init__(self, *, hold: bool = False) -> None:
        self.delays: list[float] = []
        self._gate = asyncio.Event()
        if not hold:
            self._gate.set()

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await self._gate.wait()

    def release(self) -> None:
        self._gate.set()


class RecordingSink:
    def __init__(self) -> None:
        self.played: list[bytes] = []

    def play(self, pcm_bytes: bytes) -> None:
        self.played.append(pcm_bytes)


class FakeProducer:
    def __init__(self) -> None:
        self.on_chunk_ready: Callable[[bytes], Any] | None = None
        self.started = 0
        self.stopped = 0

    def start(self, on_chunk_ready: Callable[[bytes], Any]) -> None:
        self.started += 1
        self.on_chunk_ready = on_chunk_ready

    def stop(self) -> None:
        self.stopped += 1

    def emit(self, chunk: bytes) -> Any:
        assert self.on_chunk_ready is not None
        return self.on_chunk_ready(chunk)


def make_config(**overrides: Any) -> AppConfig:
    values: dict[str, Any] = {
        "env": "test",
        "log_level": "info",
        "enable_json_logs": True,
        "api_key": "test-key",
    }
    values.update(overrides)
    return AppConfig(**values)


async def settle(spins: int = 30) -> None:
    """Let every ready task on the loop run a few steps."""
    for _ in range(spins):
        await asyncio.sleep(0)


async def wait_until(predicate: Callable[[], bool], *, spins: int = 1000) -> None:
    for _ in range(spins):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


async def wait_for_state(
    get_state: Callable[[], ConnectionState],
    expected: ConnectionState,
    *,
    spins: int = 1000,
) -> None:
    for _ in range(spins):
        if get_state() is expected:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"state is {get_state()}, expected {expected}")
