"""
WebSocket transport built on the `websockets` asyncio client.

Responsibilities:
- Open one secure WebSocket to the BidiGenerateContent endpoint
- Translate library exceptions into the transport error taxonomy
- Report the close code the peer sent (1006 when there was none)

Non-responsibilities:
- No reconnect logic (ConnectionStateMachine owns it)
- No JSON handling (protocol.codec owns it)
"""

from __future__ import annotations

import asyncio
import time

from websockets.asyncio.client import ClientConnection, connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from constants import (
    CLOSE_CODE_ABNORMAL,
    CLOSE_CODE_NORMAL,
    CONNECT_TIMEOUT_S,
    MAX_INBOUND_FRAME_BYTES,
)
from observability.logger import log_event
from transport.base import (
    Transport,
    TransportClosed,
    TransportFactory,
    TransportIOFailure,
    TransportOpenFailure,
)


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _closed_from(exc: ConnectionClosed) -> TransportClosed:
    if exc.rcvd is not None:
        return TransportClosed(exc.rcvd.code, exc.rcvd.reason)
    return TransportClosed(CLOSE_CODE_ABNORMAL, "no close frame received")


class WebSocketTransport:
    """
    Thin adapter over a websockets ClientConnection.

    Created only through open_websocket_transport().
    """

    def __init__(self, ws: ClientConnection) -> None:
        self._ws = ws
        self._closed = False

    async def send(self, frame: str) -> None:
        try:
            await self._ws.send(frame)
        except ConnectionClosed as e:
            raise _closed_from(e) from e
        except (OSError, WebSocketException) as e:
            raise TransportIOFailure(f"send failed: {e!r}") from e

    async def receive(self) -> str | bytes:
        try:
            return await self._ws.recv()
        except ConnectionClosed as e:
            raise _closed_from(e) from e
        except (OSError, WebSocketException) as e:
            raise TransportIOFailure(f"receive failed: {e!r}") from e

    async def close(self, code: int = CLOSE_CODE_NORMAL, reason: str = "") -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._ws.close(code=code, reason=reason)
        except (OSError, WebSocketException) as e:
            # Peer is already gone; nothing left to release
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "TRANSPORT_CLOSE_ERROR",
                "error": repr(e),
            }, level="debug")


async def open_websocket_transport(
    url: str,
    *,
    open_timeout_s: float = CONNECT_TIMEOUT_S,
    max_size: int = MAX_INBOUND_FRAME_BYTES,
) -> Transport:
    """
    Open a WebSocket and wrap it.

    Raises:
        TransportOpenFailure on any failure before the handshake completes.
    """
    try:
        ws = await ws_connect(
            url,
            open_timeout=open_timeout_s,
            max_size=max_size,
        )
    except (OSError, asyncio.TimeoutError, WebSocketException) as e:
        raise TransportOpenFailure(f"{type(e).__name__}: {e}") from e

    return WebSocketTransport(ws)


def websocket_transport_factory(
    url: str,
    *,
    open_timeout_s: float = CONNECT_TIMEOUT_S,
) -> TransportFactory:
    """Bind the endpoint URL so the state machine can mint handles."""

    async def _open() -> Transport:
        return await open_websocket_transport(url, open_timeout_s=open_timeout_s)

    return _open
