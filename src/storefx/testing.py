"""Helpers for testing stores whose effects resolve asynchronously."""

from __future__ import annotations

import asyncio
from typing import Callable


async def wait_for(predicate: Callable[[], bool], timeout: float = 1.0, interval: float = 0.01) -> bool:
    """Poll predicate on the running loop until it holds or timeout passes.

    Usage:
        store.send(IncrementLater())
        assert await wait_for(lambda: store.state.count == 1)
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        if predicate():
            return True
        if loop.time() >= deadline:
            return False
        await asyncio.sleep(interval)
