"""Lifecycle event registry.

The worker pool fires these events at fixed points of its life. Callbacks
are registered against members of the closed ``LifecycleEvent`` enum; plain
strings and foreign values are rejected at registration time.
"""

import threading
from collections.abc import Callable
from enum import Enum
from typing import Any

from grimjob.core.errors import ContractError
from grimjob.core.logging import get_logger

LifecycleCallback = Callable[[], Any]


class LifecycleEvent(Enum):
    """Points in the worker pool's life at which callbacks fire."""

    STARTUP = "startup"
    QUIET = "quiet"
    SHUTDOWN = "shutdown"
    EXIT = "exit"
    HEARTBEAT = "heartbeat"
    BEAT = "beat"
    LEADER = "leader"
    FOLLOWER = "follower"


class LifecycleRegistry:
    """Ordered callbacks per lifecycle event, safe for concurrent use."""

    def __init__(self) -> None:
        self._callbacks: dict[LifecycleEvent, list[LifecycleCallback]] = {
            event: [] for event in LifecycleEvent
        }
        self._lock = threading.Lock()
        self._log = get_logger("grimjob.lifecycle")

    @staticmethod
    def _validate(event: Any) -> LifecycleEvent:
        if isinstance(event, LifecycleEvent):
            return event
        if isinstance(event, str):
            raise ContractError(
                f"Identifiers only please: use a LifecycleEvent member, not the string {event!r}"
            )
        raise ContractError(f"Invalid event name: {event!r}")

    def on(self, event: LifecycleEvent, callback: LifecycleCallback | None = None):
        """Register ``callback`` for ``event``.

        The event name is validated immediately. Without a callback this
        returns a decorator.

        Raises:
            ContractError: If ``event`` is a string or not a LifecycleEvent.
        """
        event = self._validate(event)

        def register(fn: LifecycleCallback) -> LifecycleCallback:
            with self._lock:
                self._callbacks[event].append(fn)
            return fn

        if callback is None:
            return register
        return register(callback)

    def callbacks(self, event: LifecycleEvent) -> list[LifecycleCallback]:
        """Return a copy of the callbacks registered for ``event``."""
        event = self._validate(event)
        with self._lock:
            return list(self._callbacks[event])

    def as_dict(self) -> dict[LifecycleEvent, list[LifecycleCallback]]:
        with self._lock:
            return {event: list(cbs) for event, cbs in self._callbacks.items()}

    def clear(self, event: LifecycleEvent | None = None) -> None:
        with self._lock:
            if event is None:
                for cbs in self._callbacks.values():
                    cbs.clear()
            else:
                self._callbacks[self._validate(event)].clear()

    def fire(
        self, event: LifecycleEvent, *, reverse: bool = False, oneshot: bool = True
    ) -> list[Any]:
        """Run the callbacks for ``event`` synchronously, in registration order.

        Exceptions from a callback propagate to the caller; the remaining
        callbacks do not run, and a oneshot event keeps its callbacks.

        Args:
            event: The event to fire.
            reverse: Run callbacks in reverse registration order (shutdown).
            oneshot: Drop the fired callbacks once all of them have run.
                Repeating events such as HEARTBEAT pass False.

        Returns:
            The callbacks' return values, in invocation order.
        """
        event = self._validate(event)
        with self._lock:
            fired = list(self._callbacks[event])

        ordered = list(reversed(fired)) if reverse else fired
        self._log.debug(
            f"Firing {event.value} ({len(ordered)} callbacks)",
            extra={"lifecycle_event": event.value},
        )
        results = [callback() for callback in ordered]

        if oneshot:
            with self._lock:
                # Callbacks registered while firing stay for the next fire
                remaining = self._callbacks[event]
                if remaining[: len(fired)] == fired:
                    del remaining[: len(fired)]
        return results
