"""Pytest fixtures for gymagent tests."""

from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime
from typing import Any, cast

import pytest

from gymagent.app import GymAgent
from gymagent.channels import DispatchChannel, DispatchResult
from gymagent.config import Config
from gymagent.constants import GymConstants
from gymagent.database import ConversationThread, Database

# Re-export mock fixtures so they can be used directly in tests
from gymagent.tests.mocks.ollama_patches import mock_ollama  # noqa: F401

# Configure pytest-asyncio
pytest_plugins = ("pytest_asyncio",)

TEST_ACCOUNT = "gym-1"
TEST_MEMBER = "member-42"
TEST_DESTINATION = "sam@example.com"

# 12:00 and 22:30 in America/New_York (EDT) on 2026-03-10
DAYTIME = datetime(2026, 3, 10, 16, 0, tzinfo=UTC)
NIGHT = datetime(2026, 3, 11, 2, 30, tzinfo=UTC)
# 08:00 EDT the following morning
NEXT_MORNING = datetime(2026, 3, 11, 12, 0, tzinfo=UTC)

# Default config values for tests
DEFAULT_TEST_CONFIG = {
    "ollama_api_url": "http://localhost:11434",
    "ollama_model": "test-model",
    "log_level": "DEBUG",
    # Fast scheduler ticks for tests
    "scheduler_tick_interval": 0.05,
    # Fast retries for tests
    "ollama_max_retries": 1,
    "ollama_retry_delay": 0.01,
}


def decision(action: str, outcome_score: int = 70, **fields: Any) -> dict:
    """Model response payload for one evaluation."""
    return {
        "reasoning": "test reasoning",
        "action": action,
        "outcomeScore": outcome_score,
        "scoreReason": "test score",
        **fields,
    }


class RecordingChannel(DispatchChannel):
    """Channel that records sends and can be told to fail."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail_with: str | None = None
        self.raise_with: Exception | None = None
        self.closed = False

    async def send(self, destination: str, text: str) -> DispatchResult:
        if self.raise_with is not None:
            raise self.raise_with
        if self.fail_with is not None:
            return DispatchResult(ok=False, error=self.fail_with)
        self.sent.append((destination, text))
        return DispatchResult(ok=True, external_id=str(len(self.sent)))

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def test_db(tmp_path):
    """Create a temporary test database path."""
    return str(tmp_path / "test.db")


@pytest.fixture
def make_config(test_db, tmp_path) -> Callable[..., Config]:
    """
    Factory fixture for creating test configs with custom overrides.

    Usage:
        config = make_config()  # defaults
        config = make_config(skills_dir=str(path))  # with override
    """

    def _make_config(**overrides: Any) -> Config:
        config_kwargs: dict[str, Any] = {
            **DEFAULT_TEST_CONFIG,
            "db_path": test_db,
            **overrides,
        }
        return Config(**cast(Any, config_kwargs))

    return _make_config


@pytest.fixture
def test_config(make_config) -> Config:
    """Default test Config using the shipped skill catalog."""
    return make_config()


@pytest.fixture
def db(test_db) -> Database:
    """Fresh database with tables created."""
    database = Database(test_db)
    database.create_tables()
    return database


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
async def gym(mock_ollama, test_config, channel) -> AsyncIterator[GymAgent]:  # noqa: F811
    """
    Fully wired service with a mocked model and a recording channel.

    A full_auto account in America/New_York is created as TEST_ACCOUNT.
    """
    agent = GymAgent(test_config, channel=channel)
    agent.db.accounts.upsert(
        TEST_ACCOUNT,
        "Iron Temple",
        timezone="America/New_York",
        automation_level=GymConstants.AutomationLevel.FULL_AUTO,
    )
    yield agent
    await agent.shutdown()


@pytest.fixture
def make_thread(gym) -> Callable[..., ConversationThread]:
    """Factory fixture opening a thread on TEST_ACCOUNT."""

    def _make_thread(
        goal: str = "Get Sam back to two visits a week",
        task_type: str | None = "churn_risk",
        **overrides: Any,
    ) -> ConversationThread:
        kwargs: dict[str, Any] = {
            "account_id": TEST_ACCOUNT,
            "member_id": TEST_MEMBER,
            "destination": TEST_DESTINATION,
            "goal": goal,
            "task_type": task_type,
            "member_name": "Sam",
            **overrides,
        }
        return gym.db.conversations.create_thread(**kwargs)

    return _make_thread
