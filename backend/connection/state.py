"""
Connection lifecycle states for a live session.

Rules:
- This enum defines ONLY the states.
- Transitions are owned exclusively by ConnectionStateMachine.
- The outbound multiplexer reads the state to gate admission.
"""

from __future__ import annotations

from enum import Enum


class ConnectionState(str, Enum):
    """
    Lifecycle of the single logical connection.

    DISCONNECTED / FAILED are terminal for the current attempt.
    FAILED additionally means automatic retry was given up; only an
    explicit connect() leaves it.
    """

    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"        # Transport open in flight
    CONNECTED = "CONNECTED"          # Transport open, Setup not yet acknowledged
    SETUP_COMPLETE = "SETUP_COMPLETE"  # Server acknowledged Setup; media flows
    RECONNECTING = "RECONNECTING"    # Waiting out the backoff delay
    FAILED = "FAILED"                # Max reconnect attempts exceeded


# States in which connect() must not open another transport
ACTIVE_STATES: frozenset[ConnectionState] = frozenset({
    ConnectionState.CONNECTING,
    ConnectionState.CONNECTED,
    ConnectionState.SETUP_COMPLETE,
})
