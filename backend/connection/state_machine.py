"""
Connection state machine for a live session.

Transitions:
    DISCONNECTED --connect()--> CONNECTING --opened--> CONNECTED --SetupAck--> SETUP_COMPLETE
    CONNECTING | CONNECTED | SETUP_COMPLETE --abnormal close--> RECONNECTING | FAILED
    RECONNECTING --backoff elapsed--> CONNECTING
    any --disconnect() / close code 1000--> DISCONNECTED

Design constraints:
- One transport handle per attempt; at most one live at a time.
- Every attempt carries a generation number. Tasks belonging to a
  superseded generation can never mutate state.
- The lock guards state, counter and transport handle only; it is never
  held across network I/O or across observer callbacks.
- On entering CONNECTED exactly one Setup is handed to the outbound
  multiplexer, before any producer event can be admitted.
- Every published state carries a version taken with the transition; a
  publish that lost a race with a newer transition is dropped.
"""

from __future__ import annotations

import asyncio
import random
import threading
import time
from typing import Awaitable, Callable

from connection.backoff import BackoffPolicy
from connection.state import ACTIVE_STATES, ConnectionState
from constants import CLOSE_CODE_NORMAL, NORMAL_CLOSE_CODES
from observability import metrics
from observability.logger import log_event
from protocol.events import Setup
from session.loop_bridge import call_on_loop
from session.multiplexer import OutboundMultiplexer
from session.observable import Observable
from transport.base import (
    Transport,
    TransportClosed,
    TransportError,
    TransportFactory,
    TransportIOFailure,
    TransportOpenFailure,
)


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


SleepFn = Callable[[float], Awaitable[None]]
FrameHandler = Callable[[str | bytes], None]


class ConnectionStateMachine:
    """
    Owns the single logical connection.

    Public interface:
    - connect():            start an attempt (no-op while one is active)
    - disconnect():         normal teardown from any state, idempotent
    - notify_setup_ack():   called by the inbound dispatcher
    - report_transport_failure(generation, error): called by the sender

    Observers read `states` (replay-latest) and never mutate anything.
    """

    def __init__(
        self,
        *,
        transport_factory: TransportFactory,
        setup: Setup,
        policy: BackoffPolicy | None = None,
        session_id: str | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
        sleep: SleepFn = asyncio.sleep,
        rng: Callable[[float, float], float] = random.uniform,
    ) -> None:
        self._transport_factory = transport_factory
        self._setup = setup
        self._policy = policy or BackoffPolicy()
        self._session_id = session_id
        self._loop = loop
        self._sleep = sleep
        self._rng = rng

        self.lock = threading.RLock()
        self.states: Observable[ConnectionState] = Observable(
            ConnectionState.DISCONNECTED, name="connection_state"
        )

        self._state = ConnectionState.DISCONNECTED
        self._state_version = 0
        self._attempt = 0
        self._generation = 0
        self._transport: Transport | None = None
        self._transport_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._setup_timer: str | None = None
        self._tasks: set[asyncio.Task[None]] = set()

        self._outbound: OutboundMultiplexer | None = None
        self._on_frame: FrameHandler | None = None

    # ------------------------------------------------------------------
    # Wiring helpers (called once by LiveSession)
    # ------------------------------------------------------------------

    def attach_outbound(self, outbound: OutboundMultiplexer) -> None:
        """Attach the multiplexer that receives Setup and owns the sender."""
        self._outbound = outbound

    def attach_inbound(self, on_frame: FrameHandler) -> None:
        """Attach the handler that decodes and dispatches inbound frames."""
        self._on_frame = on_frame

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        with self.lock:
            return self._state

    @property
    def attempt(self) -> int:
        """Abnormal closures since the last SetupAck / normal close."""
        with self.lock:
            return self._attempt

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def connect(self) -> bool:
        """
        Start a connection attempt.

        Returns False (and logs) when an attempt is already active.
        From RECONNECTING the pending timer is cancelled and the attempt
        starts now, keeping the counter. From FAILED / DISCONNECTED the
        counter starts at 0.
        """
        loop = self._bind_loop()

        with self.lock:
            prior = self._state
            if prior in ACTIVE_STATES:
                ignored = True
            else:
                ignored = False
                if prior is not ConnectionState.RECONNECTING:
                    self._attempt = 0
                timer = self._reconnect_task
                self._reconnect_task = None
                generation = self._begin_attempt_locked()
                version = self._state_version

        if ignored:
            self._log("CONNECT_IGNORED", state=prior.value)
            return False

        self._emit_transition(prior, ConnectionState.CONNECTING, version)

        def _start() -> None:
            if timer is not None and not timer.done():
                timer.cancel()
            self._spawn_transport(generation)

        call_on_loop(loop, _start)
        return True

    def disconnect(self) -> None:
        """
        Normal teardown. Closes the transport with code 1000, cancels the
        receive loop and any reconnect timer, resets the counter and forces
        DISCONNECTED. Idempotent; callable from any thread.
        """
        with self.lock:
            prior = self._state
            self._generation += 1
            transport = self._transport
            self._transport = None
            tasks = (self._transport_task, self._reconnect_task)
            self._transport_task = None
            self._reconnect_task = None
            self._attempt = 0
            version = self._set_state_locked(ConnectionState.DISCONNECTED)
            metrics.discard_timer(self._setup_timer)
            self._setup_timer = None
            if self._outbound is not None:
                self._outbound.detach()

        if prior is not ConnectionState.DISCONNECTED:
            self._emit_transition(
                prior, ConnectionState.DISCONNECTED, version, reason="client_disconnect"
            )

        loop = self._loop
        if loop is None:
            return

        def _teardown() -> None:
            for task in tasks:
                if task is not None and not task.done():
                    task.cancel()
            if transport is not None:
                self._spawn_close(transport, "client_disconnect")

        call_on_loop(loop, _teardown)

    def notify_setup_ack(self) -> None:
        """SetupAck received: CONNECTED -> SETUP_COMPLETE, counter reset."""
        with self.lock:
            prior = self._state
            if prior is not ConnectionState.CONNECTED:
                accepted = False
            else:
                accepted = True
                version = self._set_state_locked(ConnectionState.SETUP_COMPLETE)
                self._attempt = 0
                timer_id = self._setup_timer
                self._setup_timer = None

        if not accepted:
            self._log("SETUP_ACK_IGNORED", state=prior.value)
            return

        if timer_id is not None:
            metrics.stop_timer(
                timer_id,
                session_id=self._session_id,
                state=ConnectionState.SETUP_COMPLETE.value,
            )
        self._emit_transition(prior, ConnectionState.SETUP_COMPLETE, version)

    def report_transport_failure(self, generation: int, error: TransportError) -> None:
        """Sender-side failure; treated exactly like a receive-side one."""
        if isinstance(error, TransportClosed) and error.code in NORMAL_CLOSE_CODES:
            self._handle_normal_close(generation, error)
        else:
            self._handle_abnormal_close(generation, error)

    async def wait_idle(self) -> None:
        """Wait for every task spawned so far (after disconnect())."""
        while True:
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internal: attempts
    # ------------------------------------------------------------------

    def _bind_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            try:
                self._loop = asyncio.get_running_loop()
            except RuntimeError as e:
                raise RuntimeError(
                    "first connect() must run on the session's event loop "
                    "(or pass loop= explicitly)"
                ) from e
        return self._loop

    def _set_state_locked(self, new: ConnectionState) -> int:
        self._state = new
        self._state_version += 1
        return self._state_version

    def _begin_attempt_locked(self) -> int:
        self._generation += 1
        self._set_state_locked(ConnectionState.CONNECTING)
        metrics.discard_timer(self._setup_timer)
        self._setup_timer = metrics.start_timer("connect_to_setup_complete")
        return self._generation

    def _track(self, task: asyncio.Task[None]) -> asyncio.Task[None]:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _spawn_transport(self, generation: int) -> None:
        with self.lock:
            if generation != self._generation:
                return
            loop = self._bind_loop()
            self._transport_task = self._track(
                loop.create_task(self._run_transport(generation))
            )

    def _spawn_close(self, transport: Transport, reason: str) -> None:
        loop = self._bind_loop()
        self._track(loop.create_task(transport.close(CLOSE_CODE_NORMAL, reason)))

    async def _run_transport(self, generation: int) -> None:
        """
        One physical connection attempt: open, send Setup, receive loop.
        """
        try:
            transport = await self._transport_factory()
        except TransportOpenFailure as e:
            self._handle_abnormal_close(generation, e)
            return
        except asyncio.CancelledError:
            return
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._log("TRANSPORT_FACTORY_ERROR", level="error", error=repr(e))
            self._handle_abnormal_close(generation, TransportOpenFailure(repr(e)))
            return

        with self.lock:
            stale = generation != self._generation
            if not stale:
                self._transport = transport
                version = self._set_state_locked(ConnectionState.CONNECTED)
                assert self._outbound is not None, "outbound channel must be attached"
                self._outbound.attach(transport, generation=generation)
                setup_result = self._outbound.submit(self._setup)

        if stale:
            await transport.close(CLOSE_CODE_NORMAL, "superseded")
            return

        self._emit_transition(ConnectionState.CONNECTING, ConnectionState.CONNECTED, version)
        self._log(
            "SETUP_QUEUED",
            model=self._setup.model,
            voice=self._setup.voice,
            accepted=bool(setup_result),
        )

        await self._receive_loop(transport, generation)

    async def _receive_loop(self, transport: Transport, generation: int) -> None:
        """
        Blocking receive loop for one transport handle.

        Terminates on close, I/O failure or cancellation.
        """
        try:
            while True:
                frame = await transport.receive()
                if self._on_frame is None:
                    continue
                try:
                    self._on_frame(frame)
                except Exception as e:  # pylint: disable=broad-exception-caught
                    self._log("INBOUND_HANDLER_ERROR", level="error", error=repr(e))
        except asyncio.CancelledError:
            return
        except TransportClosed as e:
            if e.code in NORMAL_CLOSE_CODES:
                self._handle_normal_close(generation, e)
            else:
                self._handle_abnormal_close(generation, e)
        except TransportIOFailure as e:
            self._handle_abnormal_close(generation, e)

    # ------------------------------------------------------------------
    # Internal: closures
    # ------------------------------------------------------------------

    def _release_transport_locked(self) -> tuple[Transport | None, asyncio.Task[None] | None]:
        transport = self._transport
        self._transport = None
        task = self._transport_task
        self._transport_task = None
        metrics.discard_timer(self._setup_timer)
        self._setup_timer = None
        if self._outbound is not None:
            self._outbound.detach()
        return transport, task

    def _stop_receive_task(self, task: asyncio.Task[None] | None) -> None:
        if task is None or task.done():
            return
        if task is asyncio.current_task():
            return
        task.cancel()

    def _handle_normal_close(self, generation: int, error: TransportClosed) -> None:
        with self.lock:
            prior = self._state
            if generation != self._generation or prior not in ACTIVE_STATES:
                return
            transport, task = self._release_transport_locked()
            self._generation += 1
            self._attempt = 0
            version = self._set_state_locked(ConnectionState.DISCONNECTED)

        self._stop_receive_task(task)
        if transport is not None:
            self._spawn_close(transport, "server_closed")
        self._emit_transition(
            prior,
            ConnectionState.DISCONNECTED,
            version,
            reason="server_closed",
            close_code=error.code,
        )

    def _handle_abnormal_close(self, generation: int, error: TransportError) -> None:
        loop = self._bind_loop()

        with self.lock:
            prior = self._state
            if generation != self._generation or prior not in ACTIVE_STATES:
                return
            transport, task = self._release_transport_locked()
            self._attempt += 1
            decision = self._policy.decide(self._attempt, rng=self._rng)
            if decision.give_up:
                version = self._set_state_locked(ConnectionState.FAILED)
            else:
                version = self._set_state_locked(ConnectionState.RECONNECTING)
                self._reconnect_task = self._track(
                    loop.create_task(self._reconnect_after(decision.delay_ms, generation))
                )
            new_state = self._state

        self._stop_receive_task(task)
        if transport is not None:
            self._spawn_close(transport, "abnormal_closure")

        close_code = error.code if isinstance(error, TransportClosed) else None
        self._log(
            "TRANSPORT_LOST",
            level="warning",
            error_type=type(error).__name__,
            error=str(error),
            close_code=close_code,
            attempt=decision.attempt,
        )

        if decision.give_up:
            self._log(
                "MAX_RECONNECT_EXCEEDED",
                level="error",
                attempt=decision.attempt,
                max_attempts=self._policy.max_attempts,
            )
        else:
            self._log(
                "RECONNECT_SCHEDULED",
                attempt=decision.attempt,
                delay_ms=decision.delay_ms,
            )

        self._emit_transition(prior, new_state, version, close_code=close_code)

    async def _reconnect_after(self, delay_ms: int, generation: int) -> None:
        """
        Wait out the backoff delay, then start a fresh attempt.

        Runs on its own task so it never blocks a producer or a receive loop.
        """
        try:
            await self._sleep(delay_ms / 1000.0)
        except asyncio.CancelledError:
            return

        with self.lock:
            if generation != self._generation or self._state is not ConnectionState.RECONNECTING:
                return
            self._reconnect_task = None
            new_generation = self._begin_attempt_locked()
            version = self._state_version

        self._emit_transition(ConnectionState.RECONNECTING, ConnectionState.CONNECTING, version)
        self._spawn_transport(new_generation)

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    def _emit_transition(
        self,
        prior: ConnectionState,
        new: ConnectionState,
        version: int,
        **details: object,
    ) -> None:
        """
        Log and publish one transition.

        `version` is taken under the lock together with the state change,
        so a publish that lost a race with a newer transition is dropped.
        """
        self._log(
            "CONNECTION_STATE_CHANGED",
            previous=prior.value,
            connection_state=new.value,
            attempt=self.attempt,
            **details,
        )
        self.states.publish(new, version=version)

    def _log(self, event_type: str, *, level: str = "info", **fields: object) -> None:
        log_event({
            "ts_ms": _now_ms(),
            "event_type": event_type,
            "session_id": self._session_id,
            **fields,
        }, level=level)
