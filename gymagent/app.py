"""Service wiring for the retention agents."""

import logging
import signal
from typing import Any

from gymagent.agents import (
    ConversationAgent,
    EvaluationResult,
    MemoryExtractionAgent,
    OutboxAgent,
    OutreachAgent,
    OutreachResult,
)
from gymagent.channels import DispatchChannel, LoggingChannel, WebhookChannel
from gymagent.config import Config, setup_logging
from gymagent.database import Database
from gymagent.ollama import OllamaClient
from gymagent.scheduler import BackgroundScheduler, PeriodicSchedule
from gymagent.skills import PromptComposer, SkillIndex

logger = logging.getLogger(__name__)


def create_channel(config: Config) -> DispatchChannel:
    """Webhook channel when a relay URL is configured, otherwise a log-only channel."""
    if config.dispatch_webhook_url:
        return WebhookChannel(config.dispatch_webhook_url, timeout=config.dispatch_timeout)
    return LoggingChannel()


class GymAgent:
    """Owns the database, model client, skill index, agents and background scheduler."""

    def __init__(self, config: Config, channel: DispatchChannel | None = None):
        self.config = config
        self.db = Database(config.db_path)
        self.db.create_tables()

        config.runtime.attach(self.db)

        self.model_client = OllamaClient(
            config.ollama_api_url,
            config.ollama_model,
            self.db,
            max_retries=config.ollama_max_retries,
            retry_delay=config.ollama_retry_delay,
        )

        self.skill_index = SkillIndex(config.skills_dir)
        self.composer = PromptComposer(self.skill_index, self.db, config)
        self.channel = channel or create_channel(config)

        self.outbox_agent = OutboxAgent(self.model_client, self.db, config, self.channel)
        self.conversation_agent = ConversationAgent(
            self.model_client, self.db, config, self.composer, self.outbox_agent
        )
        self.outreach_agent = OutreachAgent(
            self.model_client, self.db, config, self.composer, self.outbox_agent
        )
        self.memory_agent = MemoryExtractionAgent(self.model_client, self.db, config)

        self.scheduler = BackgroundScheduler(
            schedules=[
                PeriodicSchedule(
                    agent=self.outbox_agent,
                    interval=lambda: config.runtime.OUTBOX_FLUSH_INTERVAL,
                ),
                PeriodicSchedule(
                    agent=self.memory_agent,
                    interval=lambda: config.runtime.MEMORY_EXTRACTION_INTERVAL,
                ),
            ],
            tick_interval=config.scheduler_tick_interval,
        )

    # --- Operations exposed to the surrounding application ---

    async def handle_inbound(self, thread_id: int, text: str) -> EvaluationResult:
        return await self.conversation_agent.handle_inbound(thread_id, text)

    async def start_thread(
        self,
        account_id: str,
        member_id: str,
        destination: str,
        goal: str,
        task_type: str | None = None,
        member_name: str | None = None,
    ) -> OutreachResult | None:
        return await self.outreach_agent.start_thread(
            account_id, member_id, destination, goal, task_type, member_name
        )

    def reload_skills(self) -> int:
        """Re-read the skill catalog. Returns the number of skills indexed."""
        return len(self.skill_index.reload())

    # --- Lifecycle ---

    def _on_signal(self, signum: int, frame: Any) -> None:
        logger.info("Got %s, stopping the scheduler", signal.Signals(signum).name)
        self.scheduler.stop()

    async def run(self) -> None:
        """Run the background scheduler until SIGINT or SIGTERM, then shut down."""
        for signum in (signal.SIGINT, signal.SIGTERM):
            signal.signal(signum, self._on_signal)

        logger.info("Retention agents running with %d skills", len(self.skill_index.load()))
        try:
            await self.scheduler.run()
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        """Stop the scheduler and close the dispatch channel."""
        self.scheduler.stop()
        await self.channel.close()
        logger.info("Retention agents stopped")


async def run_service() -> None:
    """Load configuration and run the service."""
    config = Config.load()
    setup_logging(
        config.log_level,
        log_file=config.log_file,
        max_bytes=config.log_max_bytes,
        backup_count=config.log_backup_count,
    )
    logger.info(
        "Starting gymagent: model=%s at %s, skills=%s, dispatch=%s",
        config.ollama_model,
        config.ollama_api_url,
        config.skills_dir,
        config.dispatch_webhook_url or "log only",
    )
    await GymAgent(config).run()
