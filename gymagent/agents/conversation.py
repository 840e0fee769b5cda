"""Conversation agent: turns each inbound member reply into one recorded decision."""

from __future__ import annotations

import asyncio
import logging
import weakref
from datetime import datetime

from gymagent.agents.base import Agent
from gymagent.agents.models import (
    AgentDecision,
    DecisionParseError,
    DispatchOutcome,
    EvaluationResult,
    parse_decision,
    serialize_decision,
)
from gymagent.agents.outbox import OutboxAgent
from gymagent.config import Config
from gymagent.constants import GymConstants
from gymagent.database import ConversationMessage, ConversationThread, Database, OutboxMessage
from gymagent.ollama import OllamaClient
from gymagent.prompts import Prompt
from gymagent.sentiment import sentiment_score
from gymagent.skills import PromptComposer

logger = logging.getLogger(__name__)

_TRANSCRIPT_LABELS = {
    GymConstants.ConversationRole.OUTBOUND: "gym",
    GymConstants.ConversationRole.INBOUND: "member",
}


def should_auto_dispatch(
    level: GymConstants.AutomationLevel,
    outcome_score: int,
    min_score: int = GymConstants.SMART_MIN_OUTCOME_SCORE,
    action: GymConstants.AgentAction = GymConstants.AgentAction.REPLY,
) -> bool:
    """
    Whether an agent-written message may be sent without owner approval.

    ``full_auto`` always sends and ``draft_only`` never does. Under ``smart``
    a closing message always sends, while a reply sends only when the
    decision's outcome score reaches ``min_score``.
    """
    if level == GymConstants.AutomationLevel.FULL_AUTO:
        return True
    if level == GymConstants.AutomationLevel.SMART:
        return action == GymConstants.AgentAction.CLOSE or outcome_score >= min_score
    return False


def format_transcript(messages: list[ConversationMessage]) -> str:
    """Render thread rows as ``[gym]: ...`` / ``[member]: ...`` lines."""
    return "\n\n".join(
        f"[{_TRANSCRIPT_LABELS.get(GymConstants.ConversationRole(m.role), m.role)}]: {m.content}"
        for m in messages
    )


class ConversationAgent(Agent):
    """
    Bounded state machine for member conversations.

    A thread is active until a close decision resolves it. Each inbound
    message on an active thread produces exactly one decision row; the row,
    the thread-state change and any outbound message are committed together
    before anything is sent. Inbound messages on one thread are handled in
    arrival order.
    """

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
        self._locks: weakref.WeakValueDictionary[int, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, thread_id: int) -> asyncio.Lock:
        lock = self._locks.get(thread_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[thread_id] = lock
        return lock

    def _require_thread(self, thread_id: int) -> ConversationThread:
        thread = self.db.conversations.get(thread_id)
        if thread is None:
            raise ValueError(f"Unknown conversation thread: {thread_id}")
        return thread

    async def handle_inbound(
        self, thread_id: int, text: str, now: datetime | None = None
    ) -> EvaluationResult:
        """
        Record an inbound reply and act on it.

        Args:
            thread_id: Thread the reply belongs to
            text: Reply text
            now: Evaluation instant used for quiet-hours gating (defaults to now)

        Returns:
            EvaluationResult with the decision and what happened to its message

        Raises:
            ValueError: If the thread does not exist
            Exception: Model transport errors after the client's retries
        """
        lock = self._lock_for(thread_id)
        async with lock:
            return await self._handle_inbound(thread_id, text, now)

    async def _handle_inbound(
        self, thread_id: int, text: str, now: datetime | None
    ) -> EvaluationResult:
        thread = self._require_thread(thread_id)
        inbound = self.db.conversations.append_message(
            thread_id, GymConstants.ConversationRole.INBOUND, text
        )

        if thread.resolved:
            logger.info("Thread %d is resolved, recorded inbound without evaluation", thread_id)
            return EvaluationResult(status=GymConstants.EvaluationStatus.SKIPPED_RESOLVED)

        raw = await self._evaluate(thread, now)

        try:
            decision = parse_decision(raw)
        except DecisionParseError as e:
            logger.warning("Thread %d: unusable model response: %s", thread_id, e)
            self.db.conversations.record_failure(
                thread_id,
                error=str(e),
                inbound_message_id=inbound.id,
                raw_response=e.raw,
                sentiment_hint=sentiment_score(text),
            )
            return EvaluationResult(status=GymConstants.EvaluationStatus.FAILED, error=str(e))

        return await self._apply(thread, decision, now)

    async def _evaluate(self, thread: ConversationThread, now: datetime | None) -> str:
        assert thread.id is not None
        system_prompt = self.composer.build_evaluation_prompt(
            thread.account_id,
            thread.goal,
            task_type=thread.task_type,
            member_id=thread.member_id,
        )
        prompt = Prompt.EVALUATION_USER.format(
            goal=thread.goal,
            member=thread.member_name or thread.member_id,
            transcript=format_transcript(self.db.conversations.get_thread(thread.id)),
        )
        timezone = self.db.accounts.get_timezone(thread.account_id)
        return await self._ask(system_prompt, prompt, timezone=timezone, now=now)

    def _auto_send(self, thread: ConversationThread, decision: AgentDecision) -> bool:
        if decision.action == GymConstants.AgentAction.REOPEN:
            return False
        level = self.db.accounts.get_automation_level(thread.account_id)
        return should_auto_dispatch(
            level,
            decision.outcome_score,
            int(self.config.runtime.SMART_MIN_OUTCOME_SCORE),
            action=GymConstants.AgentAction(decision.action),
        )

    async def _apply(
        self, thread: ConversationThread, decision: AgentDecision, now: datetime | None
    ) -> EvaluationResult:
        assert thread.id is not None
        action = GymConstants.AgentAction(decision.action)

        pending: OutboxMessage | None = None
        text = decision.outbound_text
        if text:
            status, not_before = self.outbox.plan(
                thread.account_id, self._auto_send(thread, decision), now
            )
            pending = OutboxMessage(
                thread_id=thread.id,
                destination=thread.destination,
                content=text,
                status=status.value,
                not_before=not_before,
            )

        _, queued = self.db.conversations.record_decision(
            thread.id,
            serialize_decision(decision),
            resolve=action == GymConstants.AgentAction.CLOSE,
            needs_review=action == GymConstants.AgentAction.ESCALATE,
            new_goal=getattr(decision, "new_goal", None),
            outbox=pending,
        )
        logger.info(
            "Thread %d decision: %s (score %d)", thread.id, action, decision.outcome_score
        )

        if queued is None:
            return EvaluationResult(status=GymConstants.EvaluationStatus.APPLIED, decision=decision)

        assert queued.id is not None
        if queued.status == GymConstants.OutboxStatus.PENDING:
            outcome = await self.outbox.deliver(queued.id, now)
        else:
            held = (
                GymConstants.DispatchStatus.DEFERRED
                if queued.status == GymConstants.OutboxStatus.DEFERRED
                else GymConstants.DispatchStatus.WITHHELD
            )
            logger.info("Thread %d: message %s (outbox %d)", thread.id, held, queued.id)
            outcome = DispatchOutcome(status=held, outbox_id=queued.id)

        return EvaluationResult(
            status=GymConstants.EvaluationStatus.APPLIED,
            decision=decision,
            reply_sent=outcome.status == GymConstants.DispatchStatus.SENT,
            dispatch=outcome.status,
            dispatch_error=outcome.error,
            outbox_id=queued.id,
        )

    async def reopen_thread(self, thread_id: int, new_goal: str) -> ConversationThread:
        """Make a resolved thread active again with a new goal. Caller-initiated only."""
        if not new_goal.strip():
            raise ValueError("new_goal must not be empty")
        async with self._lock_for(thread_id):
            self._require_thread(thread_id)
            return self.db.conversations.reopen(thread_id, new_goal.strip())
