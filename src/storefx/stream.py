"""Push-based event stream with operator chaining.

Two jobs in storefx: a Store publishes its committed states on one, and a
Publisher effect can subscribe to one and forward every value as an action.
dispose() is the stream's completion signal: subscribers registered with
``on_dispose`` hear about it, which is how a publisher effect knows to drop
its cancellation handle.
"""

from __future__ import annotations

import threading
from typing import Callable, Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")

Disposer = Callable[[], None]


class _Subscription(Generic[T]):
    __slots__ = ("callback", "on_dispose")

    def __init__(self, callback: Callable[[T], None], on_dispose: Callable[[], None] | None) -> None:
        self.callback = callback
        self.on_dispose = on_dispose


class EventStream(Generic[T]):
    """Push-based event stream with operator chaining."""

    def __init__(self) -> None:
        self._subscriptions: list[_Subscription[T]] = []
        self._children: list[EventStream] = []
        self._disposed = False
        self._parent_disposer: Disposer | None = None
        self._on_teardown: Disposer | None = None
        self._lock = threading.Lock()

    @property
    def disposed(self) -> bool:
        return self._disposed

    def emit(self, value: T) -> None:
        """Push a value to all subscribers."""
        if self._disposed:
            return
        with self._lock:
            subscriptions = list(self._subscriptions)
        for sub in subscriptions:
            sub.callback(value)

    def subscribe(
        self,
        callback: Callable[[T], None],
        on_dispose: Callable[[], None] | None = None,
    ) -> Disposer:
        """Register a callback. Returns a function that removes it.

        ``on_dispose`` runs once if the stream is disposed while the
        subscription is live. Subscribing to a disposed stream calls it
        right away.
        """
        sub = _Subscription(callback, on_dispose)
        if self._disposed:
            if on_dispose is not None:
                on_dispose()
            return lambda: None

        with self._lock:
            self._subscriptions.append(sub)

        def _unsubscribe() -> None:
            with self._lock:
                try:
                    self._subscriptions.remove(sub)
                except ValueError:
                    pass  # already removed

        return _unsubscribe

    def debounce(self, seconds: float) -> EventStream[T]:
        """Coalesce rapid events — emit after quiet period.

        Uses threading.Timer (daemon=True), so the child emits from the timer
        thread. Each new event cancels the previous timer.
        """
        child: EventStream[T] = EventStream()
        timer_lock = threading.Lock()
        timer_ref: list[threading.Timer | None] = [None]

        def _on_event(value: T) -> None:
            with timer_lock:
                if timer_ref[0] is not None:
                    timer_ref[0].cancel()
                t = threading.Timer(seconds, child.emit, args=[value])
                t.daemon = True
                timer_ref[0] = t
                t.start()

        def _cancel_timer() -> None:
            with timer_lock:
                if timer_ref[0] is not None:
                    timer_ref[0].cancel()
                    timer_ref[0] = None

        self._attach(child, _on_event)
        child._on_teardown = _cancel_timer
        return child

    def map(self, fn: Callable[[T], U]) -> EventStream[U]:
        """Transform events through fn."""
        child: EventStream[U] = EventStream()
        self._attach(child, lambda v: child.emit(fn(v)))
        return child

    def filter(self, fn: Callable[[T], bool]) -> EventStream[T]:
        """Only pass events where fn returns True."""
        child: EventStream[T] = EventStream()
        self._attach(child, lambda v: child.emit(v) if fn(v) else None)
        return child

    def dispose(self) -> None:
        """Tear down this stream and all downstream children.

        Live subscribers' ``on_dispose`` callbacks run after the teardown.
        """
        if self._disposed:
            return
        self._disposed = True
        if self._on_teardown is not None:
            self._on_teardown()
        with self._lock:
            subscriptions = list(self._subscriptions)
            self._subscriptions.clear()
        for child in list(self._children):
            child.dispose()
        self._children.clear()
        if self._parent_disposer is not None:
            self._parent_disposer()
            self._parent_disposer = None
        for sub in subscriptions:
            if sub.on_dispose is not None:
                sub.on_dispose()

    def _attach(self, child: EventStream, forward: Callable[[T], None]) -> None:
        """Wire child downstream of self; disposing self disposes child."""
        self._children.append(child)
        unsubscribe = self.subscribe(forward)

        def _detach() -> None:
            unsubscribe()
            try:
                self._children.remove(child)
            except ValueError:
                pass

        child._parent_disposer = _detach

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else f"{len(self._subscriptions)} subscribers"
        return f"EventStream({state})"
