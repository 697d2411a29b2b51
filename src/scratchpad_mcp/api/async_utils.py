"""Helpers for calling the synchronous note service from async routes."""

import asyncio
from typing import Callable, TypeVar

T = TypeVar("T")


async def run_sync(func: Callable[..., T], *args, **kwargs) -> T:
    """Run a blocking function in a worker thread so the event loop stays free.

    Example:
        notes = await run_sync(service.list, ListQuery(category="ideas"))
    """
    return await asyncio.to_thread(func, *args, **kwargs)
