"""Background scheduler for periodic agent tasks."""

from gymagent.scheduler.base import BackgroundScheduler, Schedule
from gymagent.scheduler.schedules import PeriodicSchedule

__all__ = ["BackgroundScheduler", "PeriodicSchedule", "Schedule"]
