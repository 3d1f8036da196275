"""Textual integration for storefx. Opt-in — requires textual.

// [LAW:single-enforcer] Guard + NoMatches + thread-marshal enforced here, not at callsites.
// [LAW:locality-or-seam] Textual coupling isolated in this module — the store stays agnostic.
// [LAW:no-shared-mutable-globals] _paused_apps has single owner (this module), explicit API
//   (pause/is_safe), documented invariant (id present ↔ inside pause context).
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Callable, TypeVar

from textual.css.query import NoMatches

from storefx.store import Store
from storefx.stream import Disposer

S = TypeVar("S")

# Module-owned pause state — keyed by id(app) so multiple apps work in tests.
_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Suspend bound callbacks during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def bind(app, store: Store[S, object], fn: Callable[[S], None], *, fire_immediately: bool = True) -> Disposer:
    """Render store state into widgets with fn(state).

    fn runs now (unless fire_immediately=False) and after every committed
    state change. Calls are skipped while the app is paused or not running,
    NoMatches from widget queries is swallowed, and calls arriving off the
    app's thread go through call_from_thread. Returns a disposer.

    Usage:
        def on_mount(self):
            self._unbind = stx.bind(self, self.store, self._render_counter)
    """
    _main = threading.get_ident()

    def _guarded(state: S) -> None:
        if not is_safe(app):
            return
        if threading.get_ident() != _main:
            app.call_from_thread(_safe, state)
        else:
            _safe(state)

    def _safe(state: S) -> None:
        try:
            fn(state)
        except NoMatches:
            pass

    dispose = store.subscribe(_guarded)
    if fire_immediately:
        _guarded(store.state)
    return dispose
