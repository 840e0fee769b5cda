"""Process configuration: .env file and environment variables, plus logging setup."""

from __future__ import annotations

import contextlib
import logging
import logging.handlers
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from dotenv import load_dotenv

from gymagent.config_params import RUNTIME_CONFIG_PARAMS, RuntimeParams

if TYPE_CHECKING:
    from gymagent.database import Database

DEFAULT_SKILLS_DIR = Path(__file__).parent / "skills" / "catalog"
CONTAINER_DOTENV = Path("/gymagent/.env")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
QUIET_LOGGERS = ("httpcore", "httpx")


def _optional(value: str) -> str | None:
    return value or None


# Config field -> (environment variable, parser). Unset variables keep the dataclass default.
ENV_FIELDS: dict[str, tuple[str, Callable[[str], Any]]] = {
    "ollama_api_url": ("OLLAMA_API_URL", str),
    "ollama_model": ("OLLAMA_MODEL", str),
    "db_path": ("DB_PATH", str),
    "skills_dir": ("SKILLS_DIR", str),
    "log_level": ("LOG_LEVEL", str),
    "log_file": ("LOG_FILE", _optional),
    "log_max_bytes": ("LOG_MAX_BYTES", int),
    "log_backup_count": ("LOG_BACKUP_COUNT", int),
    "ollama_max_retries": ("OLLAMA_MAX_RETRIES", int),
    "ollama_retry_delay": ("OLLAMA_RETRY_DELAY", float),
    "dispatch_webhook_url": ("DISPATCH_WEBHOOK_URL", _optional),
    "dispatch_timeout": ("DISPATCH_TIMEOUT", float),
    "scheduler_tick_interval": ("SCHEDULER_TICK_INTERVAL", float),
}


@dataclass
class Config:
    """Settings fixed for the lifetime of the process.

    Values that operators may tune while the service runs live in ``runtime``.
    """

    ollama_api_url: str = "http://host.docker.internal:11434"
    ollama_model: str = "gpt-oss:20b"
    log_level: str = "INFO"
    db_path: str = "/gymagent/data/gymagent.db"
    skills_dir: str = str(DEFAULT_SKILLS_DIR)

    log_file: str | None = None
    log_max_bytes: int = 10 * 1024 * 1024
    log_backup_count: int = 5

    ollama_max_retries: int = 3
    ollama_retry_delay: float = 0.5

    # Relay for outbound messages; without it messages are only logged
    dispatch_webhook_url: str | None = None
    dispatch_timeout: float = 15.0

    scheduler_tick_interval: float = 1.0

    runtime: RuntimeParams = field(default_factory=RuntimeParams)

    @classmethod
    def load(cls, db: Database | None = None) -> Config:
        """Build a Config from the first .env file found and the process environment."""
        for path in (Path.cwd() / ".env", CONTAINER_DOTENV):
            if path.exists():
                load_dotenv(path)
                break

        values: dict[str, Any] = {}
        for name, (env_var, parse) in ENV_FIELDS.items():
            raw = os.getenv(env_var)
            if raw is not None:
                values[name] = parse(raw)
        return cls(**values, runtime=RuntimeParams(db=db, env_overrides=_runtime_env_overrides()))


def _runtime_env_overrides() -> dict[str, int | float]:
    """Runtime parameters set in the environment. Invalid values are ignored."""
    overrides: dict[str, int | float] = {}
    for key, param in RUNTIME_CONFIG_PARAMS.items():
        raw = os.getenv(key)
        if raw is None:
            continue
        with contextlib.suppress(ValueError):
            overrides[key] = param.validator(raw)
    return overrides


def setup_logging(
    log_level: str,
    log_file: str | None = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """
    Route all loggers to the console and, optionally, a rotating file.

    Args:
        log_level: Root level name (DEBUG, INFO, WARNING, ERROR)
        log_file: Log file path; its directory is created if missing
        max_bytes: Size at which the file rotates
        backup_count: Rotated files kept
    """
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                log_file, maxBytes=max_bytes, backupCount=backup_count
            )
        )

    root = logging.getLogger()
    root.setLevel(log_level.upper())
    root.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if log_file:
        root.info("Logging to file: %s", log_file)
