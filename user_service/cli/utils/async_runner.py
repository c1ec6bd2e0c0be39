"""Run async click commands on a fresh event loop."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Coroutine
from functools import wraps
from typing import Any, TypeVar

T = TypeVar("T")


def coro(f: Callable[..., Coroutine[Any, Any, T]]) -> Callable[..., T]:
    """Turn an async click callback into a synchronous one.

    Each invocation gets its own loop through ``asyncio.run``. The
    process-wide database engine is disposed before that loop closes,
    because pooled connections are bound to the loop that opened them.

    Usage:
        @outbox.command()
        @coro
        async def stats() -> None:
            ...
    """

    @wraps(f)
    def wrapper(*args: Any, **kwargs: Any) -> T:
        return asyncio.run(_dispose_after(f(*args, **kwargs)))

    return wrapper


async def _dispose_after(command: Awaitable[T]) -> T:
    from user_service.infra.database.session import close_database

    try:
        return await command
    finally:
        await close_database()
