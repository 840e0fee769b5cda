"""Outreach agent: drafts the first message of a new conversation."""

from __future__ import annotations

import logging
import re
from datetime import datetime

from pydantic import BaseModel

from gymagent.agents.base import Agent
from gymagent.agents.models import DispatchOutcome
from gymagent.agents.outbox import OutboxAgent
from gymagent.config import Config
from gymagent.constants import GymConstants
from gymagent.database import ConversationThread, Database
from gymagent.ollama import OllamaClient
from gymagent.prompts import Prompt
from gymagent.skills import PromptComposer

logger = logging.getLogger(__name__)

_SPACED_DASH = re.compile(r"\s*[—–]\s*")


def clean_draft(text: str) -> str:
    """Normalize a drafted message: trim, unquote, and replace em/en dashes with commas."""
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        text = text[1:-1].strip()
    return _SPACED_DASH.sub(", ", text)


class OutreachResult(BaseModel):
    """A newly opened thread and what happened to its first message."""

    thread: ConversationThread
    draft: str
    dispatch: DispatchOutcome


class OutreachAgent(Agent):
    """Opens threads with a drafted first message, dispatched under the account's policy."""

    def __init__(
        self,
        model_client: OllamaClient,
        db: Database,
        config: Config,
        composer: PromptComposer,
        outbox: OutboxAgent,
    ):
        super().__init__(model_client, db, config)
        self.composer = composer
        self.outbox = outbox

    async def draft(
        self,
        account_id: str,
        goal: str,
        member: str,
        task_type: str | None = None,
        member_id: str | None = None,
        now: datetime | None = None,
    ) -> str:
        """Draft a first message. Returns an empty string if the model produced nothing."""
        system_prompt = self.composer.build_drafting_prompt(
            account_id, goal, task_type=task_type, member_id=member_id
        )
        prompt = Prompt.DRAFTING_USER.format(goal=goal, member=member)
        timezone = self.db.accounts.get_timezone(account_id)
        return clean_draft(await self._ask(system_prompt, prompt, timezone=timezone, now=now))

    async def start_thread(
        self,
        account_id: str,
        member_id: str,
        destination: str,
        goal: str,
        task_type: str | None = None,
        member_name: str | None = None,
        now: datetime | None = None,
    ) -> OutreachResult | None:
        """
        Draft and queue the opening message of a new thread.

        ``full_auto`` and ``smart`` accounts send right away (or at the next send
        window during quiet hours); ``draft_only`` accounts get the draft queued
        for approval.

        Returns:
            OutreachResult, or None when the model returned an empty draft (no
            thread is created)
        """
        text = await self.draft(
            account_id,
            goal,
            member_name or member_id,
            task_type=task_type,
            member_id=member_id,
            now=now,
        )
        if not text:
            logger.warning("Empty outreach draft for member %s, no thread opened", member_id)
            return None

        thread = self.db.conversations.create_thread(
            account_id,
            member_id,
            destination,
            goal,
            task_type=task_type,
            member_name=member_name,
        )
        assert thread.id is not None

        level = self.db.accounts.get_automation_level(account_id)
        auto_send = level != GymConstants.AutomationLevel.DRAFT_ONLY
        status, not_before = self.outbox.plan(account_id, auto_send, now)
        queued = self.db.outbox.add(thread.id, destination, text, status, not_before=not_before)
        assert queued.id is not None

        if status == GymConstants.OutboxStatus.PENDING:
            outcome = await self.outbox.deliver(queued.id, now)
        elif status == GymConstants.OutboxStatus.DEFERRED:
            outcome = DispatchOutcome(
                status=GymConstants.DispatchStatus.DEFERRED, outbox_id=queued.id
            )
        else:
            outcome = DispatchOutcome(
                status=GymConstants.DispatchStatus.WITHHELD, outbox_id=queued.id
            )

        logger.info("Opened thread %d for %s: outreach %s", thread.id, member_id, outcome.status)
        return OutreachResult(thread=thread, draft=text, dispatch=outcome)
