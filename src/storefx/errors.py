"""Exceptions raised by storefx.

Only programmer errors surface here. Failures inside effect bodies are the
body's business: catch them and send an action describing the failure.
"""

from __future__ import annotations

from typing import NoReturn


class StoreError(Exception):
    """Base class for storefx errors."""


class StoreDisposedError(StoreError):
    """An action was sent to a store after dispose()."""


class UnhandledActionError(StoreError):
    """A reducer received an action it has no branch for."""

    def __init__(self, action: object) -> None:
        super().__init__(f"unhandled action: {action!r}")
        self.action = action


def unhandled(action: object) -> NoReturn:
    """Fail loudly from the last branch of a reducer.

    Usage:
        def reduce(state, action):
            if isinstance(action, Increment):
                return replace(state, count=state.count + 1), NONE
            unhandled(action)
    """
    raise UnhandledActionError(action)
