"""storefx: unidirectional state management with cancellable async effects."""

from importlib.metadata import version as _version

__version__ = _version("storefx")

from storefx.cancellation import CancellationToken
from storefx.effect import (
    NONE,
    Cancel,
    Effect,
    Merge,
    NoEffect,
    Publisher,
    Run,
    cancel,
    merge,
    publisher,
    run,
)
from storefx.errors import StoreDisposedError, StoreError, UnhandledActionError, unhandled
from storefx.ledger import CancellationLedger
from storefx.reconcile import update_in_place
from storefx.runtime import EffectRuntime, Sender
from storefx.store import Snapshot, Store, StoreRef
from storefx.stream import EventStream
# textual NOT auto-imported — opt-in only

__all__ = [
    "Store",
    "StoreRef",
    "Snapshot",
    "Effect",
    "NONE",
    "NoEffect",
    "Run",
    "Publisher",
    "Cancel",
    "Merge",
    "run",
    "publisher",
    "cancel",
    "merge",
    "EffectRuntime",
    "Sender",
    "CancellationLedger",
    "CancellationToken",
    "EventStream",
    "update_in_place",
    "StoreError",
    "StoreDisposedError",
    "UnhandledActionError",
    "unhandled",
]
