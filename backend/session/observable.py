"""
Replay-latest observable values.

Several collaborators (UI, status/notification updaters) read connection
and text state independently, so:
- subscribe() immediately replays the current value to the new subscriber
- publish() notifies every subscriber in registration order
- publishes are delivered one at a time; a versioned publish older than
  the last delivered version is dropped
- callbacks run on the publishing thread, outside the internal lock

A subscriber that raises is logged and skipped; it never breaks the
publisher.
"""

from __future__ import annotations

import threading
from typing import Callable, Generic, TypeVar

from observability.logger import log_event

T = TypeVar("T")

Subscriber = Callable[[T], None]
Unsubscribe = Callable[[], None]


class Observable(Generic[T]):
    """A value holder with explicit subscribe/unsubscribe."""

    def __init__(self, initial: T, *, name: str) -> None:
        self._name = name
        self._value = initial
        self._subscribers: list[Subscriber[T]] = []
        self._version = 0
        self._lock = threading.Lock()
        self._delivery = threading.RLock()

    @property
    def value(self) -> T:
        """Latest published value."""
        with self._lock:
            return self._value

    def subscribe(self, callback: Subscriber[T]) -> Unsubscribe:
        """
        Register a callback and replay the latest value to it.

        Returns a function that removes the subscription (idempotent).
        """
        with self._lock:
            self._subscribers.append(callback)
            current = self._value

        self._notify(callback, current)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def publish(self, value: T, *, version: int | None = None) -> bool:
        """
        Store value and notify all current subscribers.

        With `version`, publishers racing on different threads cannot leave
        an older value behind a newer one: a version at or below the last
        delivered one is dropped and False is returned.
        """
        with self._delivery:
            with self._lock:
                if version is not None:
                    if version <= self._version:
                        return False
                    self._version = version
                self._value = value
                delivered = self._version
                subscribers = tuple(self._subscribers)

            for callback in subscribers:
                # A subscriber published something newer from inside its callback
                if self._version != delivered:
                    break
                self._notify(callback, value)
        return True

    def _notify(self, callback: Subscriber[T], value: T) -> None:
        try:
            callback(value)
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "OBSERVER_ERROR",
                "observable": self._name,
                "error": repr(e),
            }, level="error")
