"""Shared base for the retention agents."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from gymagent.agents.models import ChatMessage, MessageRole
from gymagent.config import Config
from gymagent.database import Database
from gymagent.datetime_utils import format_for_display
from gymagent.ollama import OllamaClient

logger = logging.getLogger(__name__)


class Agent:
    """Holds the shared model client, database and config.

    The service owns those objects and hands the same instances to every
    agent. Agents driven by the background scheduler override ``execute()``
    and report whether they did any work.
    """

    def __init__(self, model_client: OllamaClient, db: Database, config: Config):
        self.model_client = model_client
        self.db = db
        self.config = config

    @property
    def name(self) -> str:
        return type(self).__name__

    async def execute(self) -> bool:
        return False

    def _build_messages(
        self,
        system_prompt: str,
        prompt: str,
        timezone: str | None = None,
        now: datetime | None = None,
    ) -> list[dict]:
        """System and user messages for one exchange.

        With a ``timezone`` the system message opens with the gym's local time.
        """
        if timezone:
            local_time = format_for_display(now or datetime.now(UTC), timezone)
            system_prompt = f"Current local time at the gym: {local_time}\n\n{system_prompt}"
        return [
            ChatMessage(role=MessageRole.SYSTEM, content=system_prompt).to_dict(),
            ChatMessage(role=MessageRole.USER, content=prompt).to_dict(),
        ]

    async def _ask(
        self,
        system_prompt: str,
        prompt: str,
        timezone: str | None = None,
        now: datetime | None = None,
    ) -> str:
        """Stripped reply text. Errors from the model client propagate."""
        response = await self.model_client.chat(
            self._build_messages(system_prompt, prompt, timezone, now)
        )
        logger.debug("%s got %d characters back", self.name, len(response.content))
        return response.content.strip()
