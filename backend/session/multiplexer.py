"""
Outbound multiplexer: many producers, one ordered stream, one transport.

Admission rules:
- Setup is admitted only while CONNECTED, once per transport, and always
  goes to the head of the queue.
- Every other event is admitted only while SETUP_COMPLETE (else NOT_READY).
- Media (audio/image) is bounded by chunk count and payload bytes; when
  full the NEW chunk is rejected with QUEUE_FULL (the queue is not
  reordered and nothing already queued is evicted).
- Text and Setup are never rejected for capacity.
- Rejected events are dropped, never buffered for later.

submit() never awaits: it checks state and enqueues under the shared
session lock, then wakes the sender task on the event loop.
"""

from __future__ import annotations

import asyncio
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, Optional

from connection.state import ConnectionState
from constants import OUTBOUND_QUEUE_MAX_BYTES, OUTBOUND_QUEUE_MAX_CHUNKS
from observability import metrics
from observability.logger import log_event
from protocol.codec import EnvelopeVersion, encode_outbound
from protocol.events import MEDIA_KINDS, OutboundEvent, OutboundKind
from session.loop_bridge import call_on_loop
from transport.base import Transport, TransportError, TransportIOFailure


class RejectReason(str, Enum):
    """
    Reason an outbound event was not admitted.
    """
    NOT_READY = "not_ready"
    QUEUE_FULL = "queue_full"


@dataclass(frozen=True)
class AdmissionResult:
    """
    Synchronous outcome of submit().

    Truthy when accepted, so producers can write `if not session.send_...`.
    """
    accepted: bool
    reason: Optional[RejectReason] = None

    def __bool__(self) -> bool:
        return self.accepted


ACCEPTED = AdmissionResult(accepted=True)


@dataclass
class AdmissionCounters:
    """
    Admission counters for observability.
    """
    accepted: int = 0
    not_ready: int = 0
    queue_full: int = 0


SendFailureHandler = Callable[[int, TransportError], None]


class OutboundMultiplexer:
    """
    Bounded FIFO of outbound events drained by one sender task per transport.

    The lock is shared with ConnectionStateMachine so the state check and
    the enqueue are atomic with respect to state transitions.
    """

    def __init__(
        self,
        *,
        lock: threading.RLock,
        get_state: Callable[[], ConnectionState],
        on_send_failure: SendFailureHandler,
        envelope: EnvelopeVersion = EnvelopeVersion.MEDIA_CHUNKS,
        max_chunks: int = OUTBOUND_QUEUE_MAX_CHUNKS,
        max_bytes: int = OUTBOUND_QUEUE_MAX_BYTES,
        session_id: str | None = None,
    ) -> None:
        if max_chunks <= 0:
            raise ValueError("max_chunks must be > 0")
        if max_bytes <= 0:
            raise ValueError("max_bytes must be > 0")

        self._lock = lock
        self._get_state = get_state
        self._on_send_failure = on_send_failure
        self._envelope = envelope
        self._max_chunks = max_chunks
        self._max_bytes = max_bytes
        self._session_id = session_id

        self._queue: Deque[OutboundEvent] = deque()
        self._media_chunks = 0
        self._media_bytes = 0
        self._setup_admitted = False

        self._transport: Transport | None = None
        self._generation = 0
        self._loop: asyncio.AbstractEventLoop | None = None
        self._wakeup: asyncio.Event | None = None
        self._sender_task: asyncio.Task[None] | None = None

        self.counters = AdmissionCounters()

    # ------------------------------------------------------------------
    # Producer-facing API
    # ------------------------------------------------------------------

    def submit(self, event: OutboundEvent) -> AdmissionResult:
        """
        Admit or reject an outbound event without blocking.

        Safe to call from any thread.
        """
        loop: asyncio.AbstractEventLoop | None = None
        wakeup: asyncio.Event | None = None
        with self._lock:
            reason = self._check_admission_locked(event)
            if reason is None:
                self._enqueue_locked(event)
                self.counters.accepted += 1
                loop, wakeup = self._loop, self._wakeup
            elif reason is RejectReason.NOT_READY:
                self.counters.not_ready += 1
            else:
                self.counters.queue_full += 1
            state = self._get_state()

        if reason is not None:
            self._log_rejection(event, reason, state)
            return AdmissionResult(accepted=False, reason=reason)

        if loop is not None and wakeup is not None:
            call_on_loop(loop, wakeup.set)
        return ACCEPTED

    # ------------------------------------------------------------------
    # Lifecycle (called by ConnectionStateMachine with the lock held)
    # ------------------------------------------------------------------

    def attach(self, transport: Transport, *, generation: int) -> None:
        """
        Bind a freshly opened transport and start its sender task.

        Must run on the event loop thread.
        """
        with self._lock:
            self._cancel_sender_locked()
            self._clear_locked()
            self._transport = transport
            self._generation = generation
            self._setup_admitted = False
            self._loop = asyncio.get_running_loop()
            self._wakeup = asyncio.Event()
            self._sender_task = self._loop.create_task(
                self._pump(transport, generation, self._wakeup)
            )

    def detach(self) -> None:
        """
        Unbind the transport, drop anything queued, stop the sender.

        Idempotent; safe from any thread.
        """
        with self._lock:
            self._cancel_sender_locked()
            self._clear_locked()
            self._transport = None
            self._wakeup = None
            self._generation += 1

    # ------------------------------------------------------------------
    # Introspection helpers
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)

    def snapshot(self) -> dict[str, int]:
        """
        Lightweight snapshot for logging / metrics.
        """
        with self._lock:
            return {
                "queued": len(self._queue),
                "queued_media_chunks": self._media_chunks,
                "queued_media_bytes": self._media_bytes,
                "accepted": self.counters.accepted,
                "rejected_not_ready": self.counters.not_ready,
                "rejected_queue_full": self.counters.queue_full,
            }

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _check_admission_locked(self, event: OutboundEvent) -> RejectReason | None:
        state = self._get_state()

        if event.kind is OutboundKind.SETUP:
            if (
                state is ConnectionState.CONNECTED
                and self._transport is not None
                and not self._setup_admitted
            ):
                return None
            return RejectReason.NOT_READY

        if state is not ConnectionState.SETUP_COMPLETE or self._transport is None:
            return RejectReason.NOT_READY

        if event.kind in MEDIA_KINDS:
            if self._media_chunks >= self._max_chunks:
                return RejectReason.QUEUE_FULL
            if self._media_bytes + event.payload_size() > self._max_bytes:
                return RejectReason.QUEUE_FULL

        return None

    def _enqueue_locked(self, event: OutboundEvent) -> None:
        if event.kind is OutboundKind.SETUP:
            self._setup_admitted = True
            self._queue.appendleft(event)
            return

        self._queue.append(event)
        if event.kind in MEDIA_KINDS:
            self._media_chunks += 1
            self._media_bytes += event.payload_size()

    def _dequeue_locked(self) -> OutboundEvent | None:
        if not self._queue:
            return None
        event = self._queue.popleft()
        if event.kind in MEDIA_KINDS:
            self._media_chunks -= 1
            self._media_bytes -= event.payload_size()
        return event

    def _clear_locked(self) -> None:
        # Dropped on teardown; not counted as rejections
        self._queue.clear()
        self._media_chunks = 0
        self._media_bytes = 0

    def _cancel_sender_locked(self) -> None:
        task = self._sender_task
        self._sender_task = None
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is current:
            return
        loop = task.get_loop()
        call_on_loop(loop, task.cancel)

    async def _pump(
        self,
        transport: Transport,
        generation: int,
        wakeup: asyncio.Event,
    ) -> None:
        """
        Drain the queue onto the transport in FIFO order.

        Encoding and network I/O happen outside the lock.
        """
        try:
            while True:
                await wakeup.wait()
                wakeup.clear()

                while True:
                    with self._lock:
                        if generation != self._generation:
                            return
                        event = self._dequeue_locked()
                    if event is None:
                        break

                    try:
                        frame = encode_outbound(event, envelope=self._envelope)
                    except (TypeError, ValueError) as e:
                        log_event({
                            "event_type": "OUTBOUND_ENCODE_ERROR",
                            "session_id": self._session_id,
                            "kind": event.kind.value,
                            "error": repr(e),
                        }, level="error")
                        continue

                    try:
                        await transport.send(frame)
                    except TransportError as e:
                        log_event({
                            "event_type": "OUTBOUND_SEND_FAILED",
                            "session_id": self._session_id,
                            "kind": event.kind.value,
                            "error": str(e),
                        }, level="warning")
                        self._on_send_failure(generation, e)
                        return
                    except Exception as e:  # pylint: disable=broad-exception-caught
                        log_event({
                            "event_type": "OUTBOUND_SEND_ERROR",
                            "session_id": self._session_id,
                            "kind": event.kind.value,
                            "error": repr(e),
                        }, level="error")
                        self._on_send_failure(generation, TransportIOFailure(repr(e)))
                        return

                    log_event({
                        "event_type": "OUTBOUND_SENT",
                        "session_id": self._session_id,
                        "kind": event.kind.value,
                        "payload_bytes": event.payload_size(),
                    }, level="info" if event.kind is OutboundKind.SETUP else "debug")
        except asyncio.CancelledError:
            return

    def _log_rejection(
        self,
        event: OutboundEvent,
        reason: RejectReason,
        state: ConnectionState,
    ) -> None:
        metrics.count(
            f"outbound_rejected_{reason.value}",
            session_id=self._session_id,
            details={"kind": event.kind.value},
        )
        # Media drops are routine; text/setup rejections are user-visible
        level = "debug" if event.kind in MEDIA_KINDS else "warning"
        log_event({
            "event_type": "OUTBOUND_REJECTED",
            "session_id": self._session_id,
            "kind": event.kind.value,
            "reason": reason.value,
            "connection_state": state.value,
        }, level=level)
