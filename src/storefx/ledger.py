"""Cancellation ledger — in-flight effect handles grouped by id.

One ledger per store. Effects without an id land in an anonymous bucket that
cancel_all() can never name; only store teardown (cancel_everything) reaches
it.

Every handle removes itself when its effect ends. A leftover handle is a leak,
not a bug in behaviour, and tests check for it via len().
"""

from __future__ import annotations

import logging
import threading
from typing import Iterator, Protocol

logger = logging.getLogger("storefx.ledger")


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class _Anonymous:
    __slots__ = ()

    def __repr__(self) -> str:
        return "<anonymous>"


ANONYMOUS = _Anonymous()


class CancellationLedger:
    """Map of effect id -> set of cancellable handles."""

    def __init__(self) -> None:
        self._handles: dict[object, set[Cancellable]] = {}
        self._lock = threading.Lock()

    def register(self, id: str | None, handle: Cancellable) -> None:
        key = ANONYMOUS if id is None else id
        with self._lock:
            self._handles.setdefault(key, set()).add(handle)

    def unregister(self, id: str | None, handle: Cancellable) -> None:
        """Remove one handle. Unknown id or handle is a no-op."""
        key = ANONYMOUS if id is None else id
        with self._lock:
            bucket = self._handles.get(key)
            if bucket is None:
                return
            bucket.discard(handle)
            if not bucket:
                del self._handles[key]

    def cancel_all(self, id: str) -> None:
        """Cancel every handle under id and forget the id. Absent id is a no-op."""
        with self._lock:
            bucket = self._handles.pop(id, None)
        if not bucket:
            return
        logger.debug("Cancelling %d effect(s) with id %r", len(bucket), id)
        for handle in bucket:
            handle.cancel()

    def cancel_everything(self) -> None:
        """Teardown: cancel every handle, anonymous ones included."""
        with self._lock:
            buckets = list(self._handles.values())
            self._handles.clear()
        for bucket in buckets:
            for handle in bucket:
                handle.cancel()

    def count(self, id: str | None) -> int:
        key = ANONYMOUS if id is None else id
        with self._lock:
            return len(self._handles.get(key, ()))

    def ids(self) -> list[str]:
        """Named ids with at least one live handle."""
        with self._lock:
            return [key for key in self._handles if key is not ANONYMOUS]

    def __contains__(self, id: object) -> bool:
        with self._lock:
            return id in self._handles

    def __len__(self) -> int:
        with self._lock:
            return sum(len(bucket) for bucket in self._handles.values())

    def __iter__(self) -> Iterator[str]:
        return iter(self.ids())

    def __repr__(self) -> str:
        return f"CancellationLedger({len(self)} handles, ids={self.ids()!r})"
