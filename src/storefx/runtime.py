"""Effect runtime — interprets Effect values for one store.

The runtime owns the store's binding to an asyncio event loop, which is the
store's serialisation domain: reducers run there, and effect bodies reach the
store only through a Sender that marshals back onto that loop.

Bookkeeping goes through the store's CancellationLedger. Every launched
run/publisher gets a CancellationToken; the token is registered under the
effect id (or the anonymous bucket) and removes itself when the work ends,
whether it completed, failed or was cancelled.

Errors raised by a body are logged and dropped. Turning a failure into an
action is the body's job; the runtime never retries.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from dataclasses import replace
from typing import Any, Callable, Generic, Protocol, TypeVar

from storefx.cancellation import CancellationToken
from storefx.effect import Cancel, Effect, Merge, NoEffect, Publisher, Run
from storefx.errors import StoreError
from storefx.ledger import CancellationLedger
from storefx.stream import EventStream

logger = logging.getLogger("storefx.runtime")

A = TypeVar("A")


class SendTarget(Protocol[A]):
    def send(self, action: A) -> None: ...


def _on_loop(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False


def _identity(value: Any) -> Any:
    return value


def _needs_loop(effect: Effect[Any]) -> bool:
    if isinstance(effect, (Run, Publisher)):
        return True
    if isinstance(effect, Merge):
        return any(_needs_loop(child) for child in effect.effects)
    return False


class Sender(Generic[A]):
    """The ``send`` handed to effect bodies.

    Calls made after the effect was cancelled are dropped, including calls
    that were already queued for the loop when the cancel happened. Calls
    from another thread are marshalled onto the store's loop.
    """

    __slots__ = ("_target", "_token", "_loop")

    def __init__(self, target: SendTarget[A], token: CancellationToken, loop: asyncio.AbstractEventLoop) -> None:
        self._target = target
        self._token = token
        self._loop = loop

    @property
    def token(self) -> CancellationToken:
        return self._token

    @property
    def cancelled(self) -> bool:
        return self._token.cancelled

    def __call__(self, action: A) -> None:
        if self._token.cancelled:
            logger.debug("Dropped %r from cancelled effect", action)
            return
        if self._loop.is_running() and not _on_loop(self._loop):
            self._loop.call_soon_threadsafe(self.deliver, action)
        else:
            self.deliver(action)

    def deliver(self, action: A) -> None:
        """Hand action to the store now. Must run on the store's loop."""
        if self._token.cancelled:
            logger.debug("Dropped %r from cancelled effect", action)
            return
        self._target.send(action)


class EffectRuntime(Generic[A]):
    """Runs effects against one ledger, sending results to one target."""

    def __init__(
        self,
        ledger: CancellationLedger,
        target: SendTarget[A],
        *,
        name: str = "store",
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._ledger = ledger
        self._target = target
        self._name = name
        self._loop = loop
        self._tasks: set[asyncio.Task[Any]] = set()

    # ─── Loop binding ────────────────────────────────────────────────────────

    @property
    def loop(self) -> asyncio.AbstractEventLoop | None:
        return self._loop

    def bind_loop(self, loop: asyncio.AbstractEventLoop | None = None) -> asyncio.AbstractEventLoop:
        """Bind to loop, or to the loop running in this thread."""
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError as exc:
                raise StoreError(
                    f"{self._name}: async effects need a running asyncio event loop"
                ) from exc
        self._loop = loop
        return loop

    def ensure_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None or self._loop.is_closed():
            return self.bind_loop()
        return self._loop

    def needs_marshal(self) -> bool:
        """True when called off the thread of a running bound loop."""
        loop = self._loop
        return loop is not None and loop.is_running() and not _on_loop(loop)

    # ─── Interpretation ──────────────────────────────────────────────────────

    def perform(self, effect: Effect[A]) -> None:
        if isinstance(effect, NoEffect):
            return
        if isinstance(effect, Cancel):
            self._ledger.cancel_all(effect.id)
        elif isinstance(effect, Run):
            self._start_run(effect)
        elif isinstance(effect, Publisher):
            self._start_publisher(effect)
        elif isinstance(effect, Merge):
            self._start_merge(effect)
        else:
            raise TypeError(f"{self._name}: not an Effect: {effect!r}")

    def prepare(self, effect: Effect[A]) -> None:
        """Bind the loop effect will run on. Raises StoreError if there is none."""
        if _needs_loop(effect):
            self.ensure_loop()

    def shutdown(self) -> None:
        """Cancel every in-flight effect."""
        self._ledger.cancel_everything()

    def _pre_cancel(self, effect: Run[A] | Publisher[A] | Merge[A]) -> None:
        if effect.cancel_in_flight and effect.id is not None:
            self._ledger.cancel_all(effect.id)

    def _start_run(self, effect: Run[A]) -> None:
        self._pre_cancel(effect)
        loop = self.ensure_loop()
        token = CancellationToken()
        send = Sender(self._target, token, loop)
        if effect.in_thread:
            work = asyncio.to_thread(effect.body, send)
        else:
            work = self._drive(effect.body, send)
        task = loop.create_task(work, name=self._task_name("run", effect.id))
        self._track(effect.id, token, task, loop)

    @staticmethod
    async def _drive(body: Callable[[Sender[A]], Any], send: Sender[A]) -> None:
        result = body(send)
        if inspect.isawaitable(result):
            await result

    def _start_publisher(self, effect: Publisher[A]) -> None:
        self._pre_cancel(effect)
        loop = self.ensure_loop()
        token = CancellationToken()
        send = Sender(self._target, token, loop)
        transform = effect.transform or _identity

        if isinstance(effect.source, EventStream):
            self._subscribe_stream(effect, effect.source, token, send, transform, loop)
            return

        async def _consume() -> None:
            async for value in effect.source:
                loop.call_soon(send.deliver, transform(value))

        task = loop.create_task(_consume(), name=self._task_name("publisher", effect.id))
        self._track(effect.id, token, task, loop)

    def _subscribe_stream(
        self,
        effect: Publisher[A],
        stream: EventStream[Any],
        token: CancellationToken,
        send: Sender[A],
        transform: Callable[[Any], A],
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        def _forward(value: Any) -> None:
            if token.cancelled or loop.is_closed():
                return
            try:
                action = transform(value)
            except Exception:
                logger.exception("%s: publisher transform failed for %r", self._name, value)
                return
            loop.call_soon_threadsafe(send.deliver, action)

        def _finished() -> None:
            self._ledger.unregister(effect.id, token)
            logger.debug("%s: publisher %r completed", self._name, effect.id)

        # Register before subscribing: a disposed stream completes immediately.
        self._ledger.register(effect.id, token)
        unsubscribe = stream.subscribe(_forward, on_dispose=_finished)
        token.add_callback(unsubscribe)
        logger.debug("%s: subscribed publisher %r", self._name, effect.id)

    def _start_merge(self, effect: Merge[A]) -> None:
        # Cancel the previous generation before any child of this one starts.
        self._pre_cancel(effect)
        for child in effect.effects:
            if effect.id is not None and child.id is None:
                child = self._adopt(child, effect.id)
            self.perform(child)

    @staticmethod
    def _adopt(child: Effect[A], group_id: str) -> Effect[A]:
        """Give an anonymous child the group id, without pre-cancel."""
        if isinstance(child, Merge):
            # Nested merges pass the id on as a default, keeping explicit grandchild ids.
            return replace(child, id=group_id, cancel_in_flight=False)
        return child.cancellable(group_id)

    # ─── Task bookkeeping ────────────────────────────────────────────────────

    def _track(
        self,
        id: str | None,
        token: CancellationToken,
        task: asyncio.Task[Any],
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        def _cancel_task() -> None:
            if task.done() or loop.is_closed():
                return
            if loop.is_running() and not _on_loop(loop):
                loop.call_soon_threadsafe(task.cancel)
            else:
                task.cancel()

        self._tasks.add(task)
        self._ledger.register(id, token)
        token.add_callback(_cancel_task)
        task.add_done_callback(functools.partial(self._on_done, id, token))
        logger.debug("%s: started %s", self._name, task.get_name())

    def _on_done(self, id: str | None, token: CancellationToken, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        self._ledger.unregister(id, token)
        if task.cancelled():
            logger.debug("%s: %s cancelled", self._name, task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "%s: unhandled exception in %s", self._name, task.get_name(), exc_info=exc
            )

    def _task_name(self, kind: str, id: str | None) -> str:
        return f"{self._name}:{kind}:{id if id is not None else '<anonymous>'}"

    def __repr__(self) -> str:
        return f"EffectRuntime({self._name!r}, {len(self._tasks)} tasks)"
