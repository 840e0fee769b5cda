"""Operator-tunable parameters, readable while the service runs."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from gymagent.constants import GymConstants

if TYPE_CHECKING:
    from gymagent.database import Database


@dataclass(frozen=True)
class ConfigParam:
    """One tunable value: its default and how to parse an override."""

    key: str
    description: str
    default: int | float
    validator: Callable[[str], int | float]


def _ranged(
    kind: type[int] | type[float],
    low: float,
    high: float | None,
    message: str,
    exclusive_low: bool = False,
) -> Callable[[str], int | float]:
    """Parser accepting ``kind`` values in [low, high] (or (low, high] when exclusive_low)."""

    def parse(value: str) -> int | float:
        try:
            parsed = kind(value)
        except ValueError as e:
            raise ValueError(message) from e
        too_low = parsed <= low if exclusive_low else parsed < low
        if too_low or (high is not None and parsed > high):
            raise ValueError(message)
        return parsed

    return parse


_hour = _ranged(int, 0, 23, "must be an hour between 0 and 23")
_score = _ranged(int, 0, 100, "must be a score between 0 and 100")
_importance = _ranged(int, 1, 5, "must be an importance between 1 and 5")
_positive_int = _ranged(int, 0, None, "must be a positive integer", exclusive_low=True)
_seconds = _ranged(float, 0, None, "must be a positive number", exclusive_low=True)


RUNTIME_CONFIG_PARAMS: dict[str, ConfigParam] = {
    param.key: param
    for param in (
        ConfigParam(
            "QUIET_HOUR_START",
            "Local hour when quiet hours begin (inclusive)",
            GymConstants.QUIET_HOUR_START,
            _hour,
        ),
        ConfigParam(
            "QUIET_HOUR_END",
            "Local hour when quiet hours end (exclusive)",
            GymConstants.QUIET_HOUR_END,
            _hour,
        ),
        ConfigParam(
            "SMART_MIN_OUTCOME_SCORE",
            "Lowest outcome score a smart account sends without approval",
            GymConstants.SMART_MIN_OUTCOME_SCORE,
            _score,
        ),
        ConfigParam(
            "SKILL_MAX_MATCHES",
            "Skills layered into one prompt",
            GymConstants.SKILL_MAX_MATCHES,
            _positive_int,
        ),
        ConfigParam(
            "MEMORY_PROMPT_MIN_IMPORTANCE",
            "Lowest memory importance injected into prompts",
            GymConstants.MEMORY_PROMPT_MIN_IMPORTANCE,
            _importance,
        ),
        ConfigParam(
            "MEMORY_EXTRACTION_INTERVAL",
            "Seconds between memory extraction runs",
            3600.0,
            _seconds,
        ),
        ConfigParam(
            "MEMORY_EXTRACTION_LOOKBACK_HOURS",
            "Hours of thread activity each memory extraction run considers",
            24.0,
            _seconds,
        ),
        ConfigParam(
            "OUTBOX_FLUSH_INTERVAL",
            "Seconds between sweeps for deferred and interrupted messages",
            60.0,
            _seconds,
        ),
    )
}


class RuntimeParams:
    """Current value of each tunable parameter.

    A value stored in the database wins over an environment override, which
    wins over the built-in default. Stored values that fail validation are
    ignored. Read as attributes: ``config.runtime.QUIET_HOUR_START``.
    """

    def __init__(
        self,
        db: Database | None = None,
        env_overrides: dict[str, int | float] | None = None,
    ) -> None:
        self._db = db
        self._env_overrides = dict(env_overrides or {})

    def attach(self, db: Database) -> None:
        """Start honoring overrides stored in ``db``."""
        self._db = db

    def get(self, key: str) -> int | float:
        param = RUNTIME_CONFIG_PARAMS.get(key.upper())
        if param is None:
            raise AttributeError(f"No runtime config param: {key}")

        stored = self._db.get_runtime_config(param.key) if self._db is not None else None
        if stored is not None:
            try:
                return param.validator(stored)
            except ValueError:
                pass
        return self._env_overrides.get(param.key, param.default)

    def __getattr__(self, name: str) -> int | float:
        if name.startswith("_"):
            raise AttributeError(name)
        return self.get(name)
