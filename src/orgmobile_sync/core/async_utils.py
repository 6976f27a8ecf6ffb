"""Async utilities for running the synchronous phases from MCP handlers."""

import asyncio
import logging
from typing import Any, Callable, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

# Module-level lock, initialized at server startup
_phase_lock: asyncio.Lock | None = None


def init_phase_lock() -> None:
    """Initialize the phase lock. Call once at server startup."""
    global _phase_lock
    _phase_lock = asyncio.Lock()
    logger.info("Phase lock initialized")


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Does NOT take the phase lock; use it for read-only calls such as
    ``MobileSync.status``.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def run_phase(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a push/pull/apply phase in a thread, one phase at a time.

    Phases assume exclusive access to the canonical and staging
    directories, so concurrent tool calls are serialized.  Falls back to
    unserialized if the lock was not initialized.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)
    """
    if _phase_lock is None:
        return await asyncio.to_thread(func, *args, **kwargs)
    async with _phase_lock:
        return await asyncio.to_thread(func, *args, **kwargs)
