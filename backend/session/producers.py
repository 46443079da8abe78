"""
Producer lifecycle.

A producer is anything that generates chunks (microphone, camera, screen
capture, a WAV file). The session knows nothing about how bytes are made;
it only hands the producer an `on_chunk_ready(bytes)` callback.

Each producer kind owns one ProducerSlot. The producer instance exists
only while the slot is active: it is constructed on activation and
dropped on deactivation.
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import Callable, Protocol

from observability.logger import log_event


ChunkCallback = Callable[[bytes], None]


class ProducerKind(str, Enum):
    MICROPHONE = "microphone"
    CAMERA = "camera"
    SCREEN = "screen"


class ChunkProducer(Protocol):
    """
    Source of outbound chunks.

    start() must return promptly; production happens on the producer's
    own thread or task. stop() must be idempotent.
    """

    def start(self, on_chunk_ready: ChunkCallback) -> None:
        ...

    def stop(self) -> None:
        ...


ProducerFactory = Callable[[], ChunkProducer]


class ProducerSlot:
    """Explicit optional producer owned by the session."""

    def __init__(
        self,
        kind: ProducerKind,
        factory: ProducerFactory,
        on_chunk_ready: ChunkCallback,
        *,
        session_id: str | None = None,
    ) -> None:
        self.kind = kind
        self._factory = factory
        self._on_chunk_ready = on_chunk_ready
        self._session_id = session_id
        self._producer: ChunkProducer | None = None
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        with self._lock:
            return self._producer is not None

    def activate(self) -> bool:
        """
        Construct and start the producer.

        Returns False when already active. A factory or start() failure
        leaves the slot inactive and propagates.
        """
        with self._lock:
            if self._producer is not None:
                return False
            producer = self._factory()
            producer.start(self._on_chunk_ready)
            self._producer = producer

        self._log("PRODUCER_STARTED")
        return True

    def deactivate(self) -> bool:
        """Stop and drop the producer. Returns False when already inactive."""
        with self._lock:
            producer = self._producer
            self._producer = None

        if producer is None:
            return False

        try:
            producer.stop()
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._log("PRODUCER_STOP_ERROR", level="error", error=repr(e))

        self._log("PRODUCER_STOPPED")
        return True

    def _log(self, event_type: str, *, level: str = "info", **fields: object) -> None:
        log_event({
            "event_type": event_type,
            "session_id": self._session_id,
            "producer": self.kind.value,
            **fields,
        }, level=level)
