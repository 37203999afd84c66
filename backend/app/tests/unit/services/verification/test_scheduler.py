"""Test the in-process batch scheduler."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

from src.models.guard_models import BatchSummary
from src.services.verification.models import Trigger
from src.services.verification.scheduler import BatchScheduler


def _coordinator() -> MagicMock:
    coordinator = MagicMock()
    coordinator.verify_all = AsyncMock(return_value=BatchSummary(attempted=2, verified=2))
    coordinator.warm_deeplinks = AsyncMock(return_value={"converted": 2, "failed": 0})
    return coordinator


def test_run_once_verifies_then_warms_deeplinks() -> None:
    coordinator = _coordinator()

    asyncio.run(BatchScheduler(coordinator).run_once())

    coordinator.verify_all.assert_awaited_once_with(trigger=Trigger.BATCH, force=True)
    coordinator.warm_deeplinks.assert_awaited_once_with()


def test_run_once_swallows_cycle_errors() -> None:
    coordinator = _coordinator()
    coordinator.verify_all.side_effect = RuntimeError("database gone")

    asyncio.run(BatchScheduler(coordinator).run_once())

    coordinator.warm_deeplinks.assert_not_awaited()


def test_start_and_stop() -> None:
    coordinator = _coordinator()

    async def scenario():
        scheduler = BatchScheduler(coordinator, interval_hours=24, initial_delay_sec=0)
        scheduler.start()
        scheduler.start()
        await asyncio.sleep(0.01)
        running = scheduler.running
        await scheduler.stop()
        return running, scheduler.running

    running, after_stop = asyncio.run(scenario())

    assert running
    assert not after_stop
    assert coordinator.verify_all.await_count == 1
