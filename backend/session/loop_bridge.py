"""
Helpers for calling into the session's event loop from any thread.

Producers (capture threads) and UI code may call the session from outside
the loop. asyncio objects are not thread-safe, so work that touches tasks
or asyncio.Event is marshalled onto the owning loop.
"""

from __future__ import annotations

import asyncio
from typing import Callable


def on_loop_thread(loop: asyncio.AbstractEventLoop) -> bool:
    """True when called from a coroutine/callback running on `loop`."""
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False


def call_on_loop(loop: asyncio.AbstractEventLoop, fn: Callable[[], None]) -> None:
    """
    Run fn on loop: immediately when already there, otherwise scheduled.

    Calls targeting a closed loop are dropped; the session is gone.
    """
    if on_loop_thread(loop):
        fn()
        return
    if loop.is_closed():
        return
    loop.call_soon_threadsafe(fn)
