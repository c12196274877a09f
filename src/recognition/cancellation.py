"""Cooperative cancellation for a single recognition run.

A run started from async code carries a :class:`Cancellation`. Blocking
work inside the run registers callbacks with it, such as closing the live
HTTP session or deleting a derived image, and those callbacks fire as soon
as the awaiting caller is cancelled rather than when the worker thread
eventually returns.
"""

import threading
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager, nullcontext
from contextvars import ContextVar

from .errors import EngineError, EngineErrorCode

_current: ContextVar["Cancellation | None"] = ContextVar(
    "recognition_cancellation", default=None
)


class Cancellation:
    """Cancel flag plus the callbacks to fire when it is set."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancelled = False
        self._callbacks: dict[int, Callable[[], None]] = {}
        self._next_key = 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Set the flag and fire every registered callback once."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()
        for callback in callbacks:
            callback()

    def raise_if_cancelled(self) -> None:
        """Raise an ``EngineError`` with code ``CANCELLED`` once cancelled."""
        if self._cancelled:
            raise EngineError(EngineErrorCode.CANCELLED, "Run was cancelled")

    @contextmanager
    def on_cancel(self, callback: Callable[[], None]) -> Iterator[None]:
        """Fire ``callback`` if the run is cancelled while the block is active.

        Args:
            callback: Release action, called at most once.

        Raises:
            EngineError: With code ``CANCELLED`` if the run was already
                cancelled on entry. ``callback`` has been called by then.
        """
        with self._lock:
            cancelled = self._cancelled
            key = self._next_key
            self._next_key += 1
            if not cancelled:
                self._callbacks[key] = callback
        if cancelled:
            callback()
            self.raise_if_cancelled()
        try:
            yield
        finally:
            with self._lock:
                self._callbacks.pop(key, None)


@contextmanager
def cancellation_scope(cancellation: Cancellation | None) -> Iterator[None]:
    """Make ``cancellation`` the active one for code run inside the block."""
    token = _current.set(cancellation)
    try:
        yield
    finally:
        _current.reset(token)


def current_cancellation() -> Cancellation | None:
    return _current.get()


def on_cancel(callback: Callable[[], None]) -> AbstractContextManager[None]:
    """Register ``callback`` with the active cancellation, if there is one."""
    cancellation = _current.get()
    if cancellation is None:
        return nullcontext()
    return cancellation.on_cancel(callback)
