"""Cooperative cancellation tokens.

Every run/publisher effect gets one. The ledger holds the token; cancelling it
flips the flag and fires the callbacks the runtime attached (Task.cancel,
stream unsubscribe). Bodies see it as ``send.cancelled`` / ``send.token``.

Nothing is interrupted mid-statement: an async body notices at its next
await, a thread body when it polls.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Callable


class CancellationToken:
    """Flag plus one-shot callbacks. Safe to share across threads."""

    __slots__ = ("_cancelled", "_callbacks", "_lock", "__weakref__")

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def add_callback(self, fn: Callable[[], None]) -> None:
        """Run fn on cancel. Runs immediately if already cancelled."""
        with self._lock:
            if not self._cancelled:
                self._callbacks.append(fn)
                return
        fn()

    def cancel(self) -> None:
        """Cancel once. Later calls are no-ops."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            callbacks, self._callbacks = self._callbacks, []
        for fn in callbacks:
            fn()

    def raise_if_cancelled(self) -> None:
        """Check point for bodies that do not otherwise suspend.

        Usage:
            def crunch(send):
                for chunk in chunks:
                    send.token.raise_if_cancelled()
                    process(chunk)
        """
        if self._cancelled:
            raise asyncio.CancelledError()

    def __repr__(self) -> str:
        return f"CancellationToken({'cancelled' if self._cancelled else 'active'})"
