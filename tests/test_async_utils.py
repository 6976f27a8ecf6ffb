"""
Tests for async_utils module.

Covers run_sync, run_phase and init_phase_lock.
"""

import asyncio
import threading
import time

import pytest

import orgmobile_sync.core.async_utils as mod
from orgmobile_sync.core.async_utils import init_phase_lock, run_phase, run_sync


@pytest.fixture
def phase_lock():
    original = mod._phase_lock
    init_phase_lock()
    yield mod._phase_lock
    mod._phase_lock = original


async def test_run_sync_forwards_arguments():
    def _join(a, b, *, sep):
        return f"{a}{sep}{b}"

    assert await run_sync(_join, "push", "pull", sep="/") == "push/pull"


async def test_run_sync_runs_off_the_event_loop():
    main = threading.get_ident()
    worker = await run_sync(threading.get_ident)
    assert worker != main


async def test_init_phase_lock(phase_lock):
    assert isinstance(phase_lock, asyncio.Lock)
    assert not phase_lock.locked()


async def test_run_phase_serializes(phase_lock):
    active = 0
    peak = 0
    guard = threading.Lock()

    def _phase():
        nonlocal active, peak
        with guard:
            active += 1
            peak = max(peak, active)
        time.sleep(0.02)
        with guard:
            active -= 1
        return "done"

    results = await asyncio.gather(*(run_phase(_phase) for _ in range(4)))
    assert results == ["done"] * 4
    assert peak == 1


async def test_run_phase_without_lock():
    original = mod._phase_lock
    mod._phase_lock = None
    try:
        assert await run_phase(sum, [1, 2, 3]) == 6
    finally:
        mod._phase_lock = original


async def test_run_phase_propagates_errors(phase_lock):
    def _boom():
        raise RuntimeError("hook failed")

    with pytest.raises(RuntimeError, match="hook failed"):
        await run_phase(_boom)
    assert not phase_lock.locked()
