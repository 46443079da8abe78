"""
LiveSession: the only object external collaborators hold.

Responsibilities:
- Wire ConnectionStateMachine, OutboundMultiplexer, InboundDispatcher
- Expose connect / disconnect / send_* as plain delegation
- Expose replay-latest observables for the UI layer
- Own optional producers (microphone, camera, screen)

NOT responsible for:
- Reconnect policy (ConnectionStateMachine)
- Admission decisions (OutboundMultiplexer)
- Wire formats (protocol.codec)
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass
from typing import Awaitable, Callable
from uuid import uuid4

from config import AppConfig, ConfigError
from connection.backoff import BackoffPolicy
from connection.state import ConnectionState
from connection.state_machine import ConnectionStateMachine
from constants import LOG_PAYLOAD_PREVIEW_CHARS
from observability.logger import log_event
from protocol.codec import EnvelopeVersion, ProtocolDecodeError, decode_inbound
from protocol.events import AudioChunk, ImageChunk, Setup, TextTurn
from session.dispatcher import InboundDispatcher, PlaybackSink, TurnSignal
from session.multiplexer import AdmissionResult, OutboundMultiplexer
from session.observable import Observable
from session.producers import (
    ChunkCallback,
    ProducerFactory,
    ProducerKind,
    ProducerSlot,
)
from transport.base import TransportFactory
from transport.websocket import websocket_transport_factory


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _new_session_id() -> str:
    return f"sess_{uuid4().hex[:12]}"


def _preview(frame: str | bytes) -> str:
    if isinstance(frame, bytes):
        frame = frame.decode("utf-8", errors="replace")
    return frame[:LOG_PAYLOAD_PREVIEW_CHARS]


# ------------------------------------------------------------------
# Status aggregate
# ------------------------------------------------------------------

@dataclass(frozen=True)
class SessionStatus:
    """
    Everything a status line / notification needs, in one value.
    """
    connection_state: ConnectionState = ConnectionState.DISCONNECTED
    microphone_active: bool = False
    camera_active: bool = False
    screen_active: bool = False
    last_text: str = ""

    @property
    def is_connected(self) -> bool:
        return self.connection_state is ConnectionState.SETUP_COMPLETE

    def summary(self) -> str:
        def _on(flag: bool) -> str:
            return "ON" if flag else "OFF"

        return " | ".join((
            "Connected" if self.is_connected else "Disconnected",
            f"Mic {_on(self.microphone_active)}",
            f"Camera {_on(self.camera_active)}",
            f"Screen {_on(self.screen_active)}",
        ))


# ------------------------------------------------------------------
# LiveSession
# ------------------------------------------------------------------

class LiveSession:
    """
    One LiveSession == one logical conversation, possibly spanning many
    physical transports.
    """

    def __init__(
        self,
        *,
        config: AppConfig,
        audio_sink: PlaybackSink,
        transport_factory: TransportFactory | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[float, float], float] = random.uniform,
        session_id: str | None = None,
    ) -> None:
        self.session_id = session_id or _new_session_id()
        self._config = config

        try:
            envelope = EnvelopeVersion(config.envelope)
        except ValueError as e:
            raise ConfigError(f"Unknown envelope version: {config.envelope!r}") from e

        if transport_factory is None:
            transport_factory = websocket_transport_factory(
                config.endpoint_url(),
                open_timeout_s=config.connect_timeout_s,
            )

        self._machine = ConnectionStateMachine(
            transport_factory=transport_factory,
            setup=Setup(model=config.model, voice=config.voice),
            policy=BackoffPolicy(
                max_attempts=config.reconnect_max_attempts,
                jitter_ratio=config.reconnect_jitter,
            ),
            session_id=self.session_id,
            loop=loop,
            sleep=sleep,
            rng=rng,
        )

        self._outbound = OutboundMultiplexer(
            lock=self._machine.lock,
            get_state=lambda: self._machine.state,
            on_send_failure=self._machine.report_transport_failure,
            envelope=envelope,
            max_chunks=config.outbound_max_chunks,
            max_bytes=config.outbound_max_bytes,
            session_id=self.session_id,
        )

        # Observables
        self.connection_state: Observable[ConnectionState] = self._machine.states
        self.last_text: Observable[str] = Observable("", name="last_text")
        self.turn_events: Observable[TurnSignal | None] = Observable(None, name="turn_events")
        self.status: Observable[SessionStatus] = Observable(SessionStatus(), name="status")

        self._dispatcher = InboundDispatcher(
            audio_sink=audio_sink,
            last_text=self.last_text,
            turn_events=self.turn_events,
            on_setup_ack=self._machine.notify_setup_ack,
            session_id=self.session_id,
        )

        self._machine.attach_outbound(self._outbound)
        self._machine.attach_inbound(self._on_frame)

        self._producers: dict[ProducerKind, ProducerSlot] = {}

        self.connection_state.subscribe(lambda _state: self._refresh_status())
        self.last_text.subscribe(lambda _text: self._refresh_status())

        self._log(
            "SESSION_CREATED",
            endpoint=config.redacted_endpoint_url(),
            model=config.model,
            envelope=envelope.value,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self) -> bool:
        """Start connecting. False when an attempt is already active."""
        return self._machine.connect()

    def disconnect(self) -> None:
        """Normal teardown; producers stay registered and keep their state."""
        self._machine.disconnect()

    async def aclose(self) -> None:
        """Stop every producer, disconnect, and wait for background tasks."""
        for slot in self._producers.values():
            slot.deactivate()
        self._refresh_status()
        self._machine.disconnect()
        await self._machine.wait_idle()
        self._log("SESSION_CLOSED")

    # ------------------------------------------------------------------
    # Producer-facing sends
    # ------------------------------------------------------------------

    def send_text(self, text: str) -> AdmissionResult:
        result = self._outbound.submit(TextTurn(text=text))
        if not result:
            self._log(
                "TEXT_REJECTED",
                level="warning",
                reason=result.reason.value if result.reason else None,
                text_len=len(text),
            )
        return result

    def send_audio_chunk(self, pcm_bytes: bytes) -> AdmissionResult:
        return self._outbound.submit(AudioChunk(pcm_bytes=pcm_bytes))

    def send_image_chunk(self, jpeg_bytes: bytes) -> AdmissionResult:
        return self._outbound.submit(ImageChunk(jpeg_bytes=jpeg_bytes))

    # ------------------------------------------------------------------
    # Producers
    # ------------------------------------------------------------------

    def register_producer(self, kind: ProducerKind, factory: ProducerFactory) -> None:
        """
        Register the factory for one producer kind.

        Replacing a registration stops the previous producer first.
        """
        previous = self._producers.get(kind)
        if previous is not None:
            previous.deactivate()

        self._producers[kind] = ProducerSlot(
            kind,
            factory,
            self._chunk_callback(kind),
            session_id=self.session_id,
        )
        self._refresh_status()

    def set_producer_active(self, kind: ProducerKind, active: bool) -> bool:
        """Returns True when the producer's state changed."""
        slot = self._slot(kind)
        changed = slot.activate() if active else slot.deactivate()
        if changed:
            self._refresh_status()
        return changed

    def toggle_producer(self, kind: ProducerKind) -> bool:
        """Flip a producer on/off. Returns the new active flag."""
        slot = self._slot(kind)
        self.set_producer_active(kind, not slot.active)
        return slot.active

    def producer_active(self, kind: ProducerKind) -> bool:
        slot = self._producers.get(kind)
        return slot is not None and slot.active

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._machine.state

    def outbound_snapshot(self) -> dict[str, int]:
        return self._outbound.snapshot()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _slot(self, kind: ProducerKind) -> ProducerSlot:
        try:
            return self._producers[kind]
        except KeyError:
            raise ValueError(f"No producer registered for {kind.value}") from None

    def _chunk_callback(self, kind: ProducerKind) -> ChunkCallback:
        if kind is ProducerKind.MICROPHONE:
            return self.send_audio_chunk
        return self.send_image_chunk

    def _on_frame(self, frame: str | bytes) -> None:
        try:
            events = decode_inbound(frame)
        except ProtocolDecodeError as e:
            self._log(
                "INBOUND_DECODE_ERROR",
                level="warning",
                error=str(e),
                preview=_preview(frame),
            )
            return
        self._dispatcher.dispatch_all(events)

    def _refresh_status(self) -> None:
        self.status.publish(SessionStatus(
            connection_state=self._machine.state,
            microphone_active=self.producer_active(ProducerKind.MICROPHONE),
            camera_active=self.producer_active(ProducerKind.CAMERA),
            screen_active=self.producer_active(ProducerKind.SCREEN),
            last_text=self.last_text.value,
        ))

    def _log(self, event_type: str, *, level: str = "info", **fields: object) -> None:
        log_event({
            "ts_ms": _now_ms(),
            "event_type": event_type,
            "session_id": self.session_id,
            "connection_state": self._machine.state.value,
            **fields,
        }, level=level)
