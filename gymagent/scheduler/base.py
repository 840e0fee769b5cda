"""Background task scheduling."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gymagent.agents import Agent

logger = logging.getLogger(__name__)


class Schedule:
    """Decides when its agent is due. Subclasses override both hooks."""

    agent: Agent

    def should_run(self) -> bool:
        return False

    def mark_complete(self) -> None:
        """Called once the agent has run, whether it succeeded or raised."""


class BackgroundScheduler:
    """Polls its schedules and runs at most one due agent per tick.

    Schedules are checked in list order, so earlier entries take priority
    whenever several are due together.
    """

    def __init__(self, schedules: list[Schedule], tick_interval: float = 1.0):
        self._schedules = schedules
        self._tick_interval = tick_interval
        self._running = True
        self._finished_at: dict[str, float] = {}

    @property
    def agent_names(self) -> list[str]:
        return [schedule.agent.name for schedule in self._schedules]

    def stop(self) -> None:
        self._running = False

    def seconds_since_last_run(self) -> dict[str, float | None]:
        """Age of each agent's most recent run, or None for agents that have not run yet."""
        now = time.monotonic()
        return {
            name: (now - self._finished_at[name]) if name in self._finished_at else None
            for name in self.agent_names
        }

    async def tick(self) -> bool:
        """Run the first due schedule. Returns False when nothing was due."""
        due = next((s for s in self._schedules if s.should_run()), None)
        if due is None:
            return False
        await self._run(due)
        return True

    async def _run(self, schedule: Schedule) -> None:
        name = schedule.agent.name
        logger.debug("Running background task: %s", name)
        try:
            if await schedule.agent.execute():
                logger.info("Background task did work: %s", name)
        except Exception:
            logger.exception("Background task %s failed", name)
        finally:
            schedule.mark_complete()
            self._finished_at[name] = time.monotonic()

    async def run(self) -> None:
        logger.info("Background scheduler started: %s", ", ".join(self.agent_names))
        while self._running:
            await self.tick()
            await asyncio.sleep(self._tick_interval)
        logger.info("Background scheduler stopped")
