"""
Helpers for calling blocking client libraries from async code.

The MinIO SDK and smtplib are synchronous; their calls go through
`run_blocking` so a slow storage or mail server never stalls the event loop.

Usage:
    from core.async_utils import run_blocking

    await run_blocking(client.remove_object, bucket, key)
"""

import asyncio
from functools import partial
from typing import Any, Callable, TypeVar

T = TypeVar("T")


async def run_blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """
    Run `func(*args, **kwargs)` on the default thread pool and await the result.

    Exceptions raised by `func` propagate to the awaiting coroutine.
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(func, *args, **kwargs))
