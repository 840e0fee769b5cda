"""Concrete schedule implementations."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from gymagent.scheduler.base import Schedule

if TYPE_CHECKING:
    from gymagent.agents import Agent

logger = logging.getLogger(__name__)

Interval = float | Callable[[], float]


class PeriodicSchedule(Schedule):
    """Due on the first check, then again once ``interval`` seconds have passed.

    ``interval`` may be a callable so the period follows runtime config
    without a restart.
    """

    def __init__(self, agent: Agent, interval: Interval):
        self.agent = agent
        self._interval = interval
        self._completed_at: float | None = None
        logger.debug("Periodic schedule for %s", agent.name)

    @property
    def interval(self) -> float:
        value = self._interval() if callable(self._interval) else self._interval
        return float(value)

    def should_run(self) -> bool:
        if self._completed_at is None:
            return True
        return time.monotonic() >= self._completed_at + self.interval

    def mark_complete(self) -> None:
        self._completed_at = time.monotonic()
