"""Effects — side effects described as data.

A reducer returns an Effect next to the new state instead of doing work
itself, so reducers stay synchronous and can be tested by asserting on the
shape of what they return. Nothing here executes anything; the runtime
interprets these values after the store has committed the new state.

Five variants:
- NONE: nothing to do.
- Run: an async body (or a thread body) that may send actions back.
- Publisher: a stream of values, each forwarded as an action.
- Cancel: cancel everything registered under an id.
- Merge: several effects at once, optionally sharing one id.

Usage:
    def reduce(state, action):
        if isinstance(action, SearchChanged):
            async def body(send):
                await asyncio.sleep(0.3)
                send(ResultsLoaded(await search(action.text)))
            return replace(state, text=action.text), run(body, id="search", cancel_in_flight=True)
        if isinstance(action, ResultsLoaded):
            return replace(state, results=action.results), NONE
        unhandled(action)
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Generic, TypeVar

from storefx.stream import EventStream

if TYPE_CHECKING:
    from storefx.runtime import Sender

A = TypeVar("A")


class Effect(Generic[A]):
    """Base class of the closed set of effect variants."""

    __slots__ = ()

    id: str | None

    def cancellable(self, id: str, cancel_in_flight: bool = False) -> Effect[A]:
        """Return a copy carrying ``id`` and ``cancel_in_flight``.

        Same as passing ``id=`` to the factory. NONE and Cancel come back
        unchanged.
        """
        return self

    def __bool__(self) -> bool:
        return True


@dataclass(frozen=True)
class NoEffect(Effect[A]):
    id = None

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NONE"


NONE: NoEffect[Any] = NoEffect()


@dataclass(frozen=True)
class Run(Effect[A]):
    """Async body that receives a Sender and may call it any number of times."""

    body: Callable[[Sender[A]], Any]
    id: str | None = None
    cancel_in_flight: bool = False
    in_thread: bool = False

    def cancellable(self, id: str, cancel_in_flight: bool = False) -> Run[A]:
        return replace(self, id=id, cancel_in_flight=cancel_in_flight)


@dataclass(frozen=True)
class Publisher(Effect[A]):
    """Multi-value source: an EventStream or an async iterable."""

    source: Any
    id: str | None = None
    cancel_in_flight: bool = False
    transform: Callable[[Any], A] | None = None

    def cancellable(self, id: str, cancel_in_flight: bool = False) -> Publisher[A]:
        return replace(self, id=id, cancel_in_flight=cancel_in_flight)


@dataclass(frozen=True)
class Cancel(Effect[A]):
    id: str


@dataclass(frozen=True)
class Merge(Effect[A]):
    """Run every child effect. A group id is the default id of each child."""

    effects: tuple[Effect[A], ...] = field(default_factory=tuple)
    id: str | None = None
    cancel_in_flight: bool = False

    def cancellable(self, id: str, cancel_in_flight: bool = False) -> Merge[A]:
        # Children never pre-cancel: the merge cancels its group once, before any child starts.
        return Merge(
            tuple(child.cancellable(id) for child in self.effects),
            id=id,
            cancel_in_flight=cancel_in_flight,
        )


def run(
    body: Callable[[Sender[A]], Awaitable[None] | None],
    *,
    id: str | None = None,
    cancel_in_flight: bool = False,
    in_thread: bool = False,
) -> Run[A]:
    """Describe an async body to run after the transition commits.

    ``body(send)`` must return an awaitable. With ``in_thread=True`` it is a
    plain function run in a worker thread instead; poll ``send.cancelled`` to
    stop early.
    """
    return Run(body, id=id, cancel_in_flight=cancel_in_flight, in_thread=in_thread)


def publisher(
    source: Any,
    transform: Callable[[Any], A] | None = None,
    *,
    id: str | None = None,
    cancel_in_flight: bool = False,
) -> Publisher[A]:
    """Forward every value of ``source`` to the store, mapped by ``transform``.

    ``source`` is an EventStream or an async iterable.
    """
    if not isinstance(source, EventStream) and not hasattr(source, "__aiter__"):
        raise TypeError(
            f"publisher source must be an EventStream or async iterable, got {type(source).__name__}"
        )
    return Publisher(source, id=id, cancel_in_flight=cancel_in_flight, transform=transform)


def cancel(id: str) -> Cancel[Any]:
    """Cancel every in-flight effect registered under ``id``."""
    return Cancel(id)


def merge(*effects: Effect[A], id: str | None = None, cancel_in_flight: bool = False) -> Merge[A]:
    """Run several effects concurrently."""
    return Merge(tuple(effects), id=id, cancel_in_flight=cancel_in_flight)
