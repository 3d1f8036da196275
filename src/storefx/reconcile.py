"""List reconciliation — refresh a list in place, reusing what survives.

Typical use is a parent store whose state holds a list of child stores. When
a fresh list of item states arrives, children whose id is still present are
kept (same object, in-flight effects intact), new ids get a new child, and
missing ids are dropped.
"""

from __future__ import annotations

from operator import attrgetter
from typing import Callable, Hashable, MutableSequence, Sequence, TypeVar

T = TypeVar("T")
N = TypeVar("N")

_default_id = attrgetter("id")


def update_in_place(
    items: MutableSequence[T],
    new_items: Sequence[N],
    create: Callable[[int, N], T],
    *,
    item_id: Callable[[T], Hashable] | None = None,
    new_item_id: Callable[[N], Hashable] | None = None,
    include: Callable[[T], bool] | None = None,
) -> None:
    """Make the included part of ``items`` follow ``new_items``, reusing by id.

    ``create(index, new_item)`` is called only for ids not already present;
    ``index`` is where the new element lands. ``include`` limits the update
    to a subset (say, one section of a sectioned list); other elements are
    never moved or removed. Remaining new items are inserted right after the
    last included element.

    Usage:
        rows = [Row("a"), Row("b"), Row("d")]
        update_in_place(rows, ["b", "c", "a"], lambda i, key: Row(key), new_item_id=lambda key: key)
        # rows == [<same b>, Row("c"), <same a>]
    """
    item_id = item_id or _default_id
    new_item_id = new_item_id or _default_id
    include = include or (lambda item: True)

    known_ids = {item_id(item) for item in items if include(item)}
    i = 0
    j = 0
    while i < len(items) and j < len(new_items):
        if not include(items[i]):
            i += 1
            continue

        new_item = new_items[j]
        new_id = new_item_id(new_item)
        if item_id(items[i]) != new_id:
            found = _find(items, i + 1, new_id, item_id, include) if new_id in known_ids else None
            if found is not None:
                items.insert(i, items.pop(found))
            else:
                items.insert(i, create(i, new_item))
        i += 1
        j += 1

    for k in range(len(items) - 1, i - 1, -1):
        if include(items[k]):
            del items[k]

    if j < len(new_items):
        last = max((k for k, item in enumerate(items) if include(item)), default=len(items) - 1)
        at = last + 1
        items[at:at] = [create(at + n, new_item) for n, new_item in enumerate(new_items[j:])]


def _find(
    items: Sequence[T],
    start: int,
    id: Hashable,
    item_id: Callable[[T], Hashable],
    include: Callable[[T], bool],
) -> int | None:
    for k in range(start, len(items)):
        if include(items[k]) and item_id(items[k]) == id:
            return k
    return None
