"""
Transport contract (one physical duplex connection).

A transport handle lives for exactly one connection attempt. The state
machine mints a new one on every (re)connect through a TransportFactory.

Contract:
- receive() returns the next text frame, or raises TransportClosed when
  the peer closed with a close code, or TransportIOFailure when the
  connection broke without one.
- send() raises TransportIOFailure (or TransportClosed) on failure.
- close() is idempotent and never raises.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Protocol

from constants import CLOSE_CODE_NORMAL


# -------------------------
# Exceptions
# -------------------------

class TransportError(Exception):
    """Base class for transport errors."""


class TransportOpenFailure(TransportError):
    """DNS, TCP, TLS or WebSocket handshake failure (or open timeout)."""


class TransportIOFailure(TransportError):
    """The connection broke mid-session."""


class TransportClosed(TransportError):
    """
    The peer closed the connection.

    code == 1000 is a normal closure; anything else is abnormal.
    """

    def __init__(self, code: int, reason: str = "") -> None:
        super().__init__(f"closed with code {code}: {reason}" if reason else f"closed with code {code}")
        self.code = code
        self.reason = reason


# -------------------------
# Protocols
# -------------------------

class Transport(Protocol):
    """One live connection."""

    async def send(self, frame: str) -> None:
        ...

    async def receive(self) -> str | bytes:
        ...

    async def close(self, code: int = CLOSE_CODE_NORMAL, reason: str = "") -> None:
        ...


TransportFactory = Callable[[], Awaitable[Transport]]
