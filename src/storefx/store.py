"""Store — owns state, runs the reducer, hands effects to the runtime.

A Store is parameterised by a reducer ``reducer(state, action) -> (state, effect)``.
There is no base class to extend: compose a state type, an action type and a
reducer function.

send() is the only way in. Actions are processed one at a time on the
store's loop; a send that arrives while another action is being processed
(from a subscriber, a delegate, or a synchronous cascade) is queued and runs
afterwards in arrival order. Sends from other threads are marshalled onto the
loop.

Subscribers hear about a transition when the reducer returns a different,
unequal state, or returns the same object and that object is mutable (it may
have been changed in place). Frozen dataclasses, tuples and other immutable
values returned unchanged do not notify.

An action whose effect needs an event loop (run, publisher, or a merge that
contains one) raises StoreError when no loop is running, before its state is
committed. Stores whose initial_action starts async work must therefore be
built inside a running loop.

Usage:
    @dataclass(frozen=True)
    class Counter:
        count: int = 0

    def reduce(state, action):
        if isinstance(action, Increment):
            return replace(state, count=state.count + 1), NONE
        if isinstance(action, IncrementLater):
            async def body(send):
                await asyncio.sleep(1)
                send(Increment())
            return state, run(body)
        unhandled(action)

    store = Store(Counter(), reduce)
    store.subscribe(lambda s: print(s.count))
    store.send(Increment())
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections import deque
from enum import Enum
from typing import Callable, Generic, Protocol, TypeVar, runtime_checkable

from storefx.effect import Effect
from storefx.errors import StoreDisposedError
from storefx.ledger import CancellationLedger
from storefx.runtime import EffectRuntime
from storefx.stream import Disposer, EventStream

logger = logging.getLogger("storefx.store")

S = TypeVar("S")
A = TypeVar("A")
CA = TypeVar("CA")

Reducer = Callable[[S, A], "tuple[S, Effect[A]]"]


@runtime_checkable
class Snapshot(Protocol):
    """State types implement this to control what debug logging prints."""

    def snapshot(self) -> object: ...


_IMMUTABLE = (int, float, complex, str, bytes, tuple, frozenset, Enum, type(None))


def _is_frozen(state: object) -> bool:
    if isinstance(state, _IMMUTABLE):
        return True
    params = getattr(type(state), "__dataclass_params__", None)
    return params is not None and params.frozen


def _changed(old: object, new: object) -> bool:
    """Same object: changed unless frozen (it may have been mutated). Otherwise by value."""
    if old is new:
        return not _is_frozen(new)
    return old != new


def _describe(state: object) -> object:
    if isinstance(state, Snapshot):
        return state.snapshot()
    return repr(state)


class StoreRef(Generic[A]):
    """Non-owning handle to a store.

    Effects and delegates hold one of these instead of the store, so a
    long-lived subscription never keeps a dropped store alive. Sending
    through a ref whose store is gone or disposed does nothing.
    """

    __slots__ = ("_ref",)

    def __init__(self, store: Store[object, A]) -> None:
        self._ref = weakref.ref(store)

    def get(self) -> Store[object, A] | None:
        store = self._ref()
        if store is None or store.disposed:
            return None
        return store

    @property
    def alive(self) -> bool:
        return self.get() is not None

    def send(self, action: A) -> None:
        store = self.get()
        if store is None:
            logger.debug("Dropped %r: store released", action)
            return
        store.send(action)

    __call__ = send

    def __repr__(self) -> str:
        store = self._ref()
        return f"StoreRef({store!r})" if store is not None else "StoreRef(<released>)"


class Store(Generic[S, A]):
    """State container driven by a reducer and an effect runtime."""

    def __init__(
        self,
        initial_state: S,
        reducer: Reducer,
        initial_action: A | None = None,
        *,
        debug: bool = False,
        name: str | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._initial_state = initial_state
        self._state = initial_state
        self._reducer = reducer
        self._debug = debug
        self._name = name or f"Store[{type(initial_state).__name__}]"
        self._changes: EventStream[S] = EventStream()
        self._delegate: Callable[[A], None] | None = None
        self._queue: deque[A] = deque()
        self._processing = False
        self._disposed = False
        self._ref: StoreRef[A] = StoreRef(self)
        self._ledger = CancellationLedger()

        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None  # bound on the first async effect
        self._runtime: EffectRuntime[A] = EffectRuntime(
            self._ledger, self._ref, name=self._name, loop=loop
        )
        # Runs at dispose() or when the store is garbage collected, whichever is first.
        self._finalizer = weakref.finalize(self, self._runtime.shutdown)
        self._finalizer.atexit = False

        if initial_action is not None:
            self.send(initial_action)

    # ─── Read side ───────────────────────────────────────────────────────────

    @property
    def state(self) -> S:
        return self._state

    @property
    def initial_state(self) -> S:
        return self._initial_state

    @property
    def name(self) -> str:
        return self._name

    @property
    def ledger(self) -> CancellationLedger:
        return self._ledger

    @property
    def ref(self) -> StoreRef[A]:
        return self._ref

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def id(self) -> object:
        """Identity from the initial state: its ``id`` if it has one."""
        return getattr(self._initial_state, "id", self._initial_state)

    def subscribe(self, callback: Callable[[S], None]) -> Disposer:
        """Call callback(state) after every committed change. Returns a disposer."""
        return self._changes.subscribe(callback)

    # ─── Write side ──────────────────────────────────────────────────────────

    def send(self, action: A) -> None:
        """Process action, or queue it if an action is already in progress."""
        if self._disposed:
            raise StoreDisposedError(f"{self._name}: send({action!r}) after dispose()")
        if self._runtime.needs_marshal():
            self._runtime.loop.call_soon_threadsafe(self._ref.send, action)
            return

        self._queue.append(action)
        if self._processing:
            return
        self._processing = True
        try:
            while self._queue and not self._disposed:
                self._process(self._queue.popleft())
        finally:
            self._processing = False
            self._queue.clear()

    def _process(self, action: A) -> None:
        if self._debug:
            logger.info("%s received action %r", self._name, action)

        result = self._reducer(self._state, action)
        if not (isinstance(result, tuple) and len(result) == 2 and isinstance(result[1], Effect)):
            raise TypeError(f"{self._name}: reducer must return (state, effect), got {result!r}")
        state, effect = result
        # An effect that cannot start must fail before anything is committed.
        self._runtime.prepare(effect)

        old = self._state
        self._state = state
        if self._debug:
            logger.info("%s state changes to %s", self._name, _describe(state))
        try:
            if _changed(old, state):
                self._changes.emit(state)
        finally:
            # A failing subscriber still propagates, after the transition's effect and delegate ran.
            self._runtime.perform(effect)
            if self._delegate is not None:
                self._delegate(action)

    # ─── Delegation ──────────────────────────────────────────────────────────

    @property
    def delegated_action_handler(self) -> Callable[[A], None] | None:
        return self._delegate

    @delegated_action_handler.setter
    def delegated_action_handler(self, handler: Callable[[A], None] | None) -> None:
        self._delegate = handler

    def delegate(self, handler: Callable[[A], None] | None) -> Store[S, A]:
        """Set the one delegate that sees every processed action. Returns self."""
        self._delegate = handler
        return self

    def handle_actions(
        self,
        child: Store[object, CA],
        convert: Callable[[CA], A | None],
    ) -> Store[S, A]:
        """Route child's actions into this store through convert. Returns self.

        Actions convert maps to None are ignored. The child holds only a
        StoreRef to this store.

        Usage:
            parent = Store(Parent(), reduce_parent).handle_actions(
                child, lambda a: ChildChanged(a.value) if isinstance(a, ValueUpdated) else None
            )
        """
        parent = self._ref

        def _forward(child_action: CA) -> None:
            action = convert(child_action)
            if action is not None:
                parent.send(action)

        child.delegate(_forward)
        return self

    # ─── Lifecycle ───────────────────────────────────────────────────────────

    def dispose(self) -> None:
        """Cancel all in-flight effects and stop notifications. Idempotent."""
        if self._disposed:
            return
        self._disposed = True
        self._queue.clear()
        self._delegate = None
        self._finalizer()
        self._changes.dispose()
        logger.debug("%s disposed", self._name)

    # ─── Identity ────────────────────────────────────────────────────────────

    def __eq__(self, other: object) -> bool:
        # Initial state, not current: a parent re-rendering a list of child
        # stores keeps the same child identity while the child's state evolves.
        if not isinstance(other, Store):
            return NotImplemented
        return self._initial_state == other._initial_state

    def __hash__(self) -> int:
        try:
            return hash(self.id)
        except TypeError:
            # Unhashable initial state: equal stores still share a hash.
            return hash(type(self._initial_state))

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else repr(self._state)
        return f"{self._name}({state})"
