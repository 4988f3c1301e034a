"""Bridge blocking HTTP and file calls onto the asyncio event loop."""

import asyncio
from typing import Any, Callable, TypeVar

T = TypeVar("T")


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a blocking function in the default thread pool.

    Every call is an await point for the sync orchestrator; the
    orchestrator still issues these calls one at a time.

    Example:
        items = await run_sync(client.fetch_item_children, "ABCD1234")
    """
    return await asyncio.to_thread(func, *args, **kwargs)
