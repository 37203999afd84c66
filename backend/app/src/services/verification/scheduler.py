"""Periodic batch verification running inside the API process."""

from __future__ import annotations

import asyncio
from typing import Optional

from src.logger_config import get_logger

from .coordinator import VerificationCoordinator
from .models import Trigger

logger = get_logger("verification.scheduler")


class BatchScheduler:
    """Run ``verify_all`` then deeplink warm-up every ``interval_hours``."""

    def __init__(
        self,
        coordinator: VerificationCoordinator,
        interval_hours: float = 24,
        initial_delay_sec: float = 30,
    ) -> None:
        self.coordinator = coordinator
        self.interval_sec = max(1.0, interval_hours * 3600)
        self.initial_delay_sec = max(0.0, initial_delay_sec)
        self._task: Optional["asyncio.Task[None]"] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        logger.info(
            "Scheduled verification enabled (every %.1fh)", self.interval_sec / 3600
        )
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def run_once(self) -> None:
        """One scheduled cycle; errors are logged and the loop keeps going."""
        try:
            summary = await self.coordinator.verify_all(trigger=Trigger.BATCH, force=True)
            links = await self.coordinator.warm_deeplinks()
            logger.info(
                "Scheduled cycle done: verified=%d failed=%d, deeplinks converted=%d failed=%d",
                summary.verified,
                summary.failed,
                links["converted"],
                links["failed"],
            )
        except Exception:
            logger.exception("Scheduled verification cycle failed")

    async def _loop(self) -> None:
        await asyncio.sleep(self.initial_delay_sec)
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval_sec)
