"""Fault-isolated error handler chain.

Error handlers are observers: they are told about an exception (plus a
context mapping) and may report it somewhere, but they never change the
caller's control flow. A handler that raises is logged and skipped; the
remaining handlers still run and the original error is never re-raised.
"""

import threading
from collections.abc import Callable, Iterable, Iterator, Mapping, MutableSequence
from typing import Any

from grimjob.core.logging import get_logger

ErrorHandler = Callable[[BaseException, Mapping[str, Any]], Any]

logger = get_logger("grimjob.handlers")


def _handler_name(handler: ErrorHandler) -> str:
    return getattr(handler, "__qualname__", None) or type(handler).__name__


def default_error_handler(error: BaseException, context: Mapping[str, Any]) -> None:
    """Log the error and its context at warning level."""
    logger.warning(
        f"{type(error).__name__}: {error}",
        exc_info=(type(error), error, error.__traceback__),
        extra={"context": dict(context)},
    )


class ErrorHandlerChain(MutableSequence):
    """Ordered, thread-safe list of error handlers.

    The chain is the live list exposed as ``Config.error_handlers``; callers
    append and pop handlers directly. Dispatch iterates over a snapshot taken
    under the lock, so registering a handler while another thread is handling
    an exception never corrupts the in-progress dispatch.
    """

    def __init__(self, handlers: Iterable[ErrorHandler] = ()) -> None:
        self._handlers: list[ErrorHandler] = list(handlers)
        self._lock = threading.RLock()

    def __getitem__(self, index):
        with self._lock:
            return self._handlers[index]

    def __setitem__(self, index, handler) -> None:
        with self._lock:
            self._handlers[index] = handler

    def __delitem__(self, index) -> None:
        with self._lock:
            del self._handlers[index]

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)

    def __iter__(self) -> Iterator[ErrorHandler]:
        return iter(self.snapshot())

    def __repr__(self) -> str:
        return f"ErrorHandlerChain({self.snapshot()!r})"

    def insert(self, index: int, handler: ErrorHandler) -> None:
        with self._lock:
            self._handlers.insert(index, handler)

    # Compound operations from MutableSequence are overridden so each is atomic

    def append(self, handler: ErrorHandler) -> None:
        with self._lock:
            self._handlers.append(handler)

    def remove(self, handler: ErrorHandler) -> None:
        with self._lock:
            self._handlers.remove(handler)

    def pop(self, index: int = -1) -> ErrorHandler:
        with self._lock:
            return self._handlers.pop(index)

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()

    def snapshot(self) -> list[ErrorHandler]:
        """Return a copy of the handlers in registration order."""
        with self._lock:
            return list(self._handlers)

    def handle_exception(
        self, error: BaseException, context: Mapping[str, Any] | None = None
    ) -> None:
        """Pass ``error`` to every handler in order.

        Never raises: a failing handler is logged at error level and the next
        handler runs.
        """
        context = dict(context or {})
        handlers = self.snapshot()

        if not handlers:
            logger.warning(
                f"No error handlers registered, dropping {type(error).__name__}: {error}",
                extra={"context": context},
            )
            return

        for handler in handlers:
            try:
                handler(error, context)
            except Exception as e:
                name = _handler_name(handler)
                logger.error(
                    f"!!! ERROR HANDLER THREW AN ERROR !!! {name}: {e}",
                    exc_info=True,
                    extra={"handler": name, "context": context},
                )
