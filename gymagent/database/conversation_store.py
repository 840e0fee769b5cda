"""Conversation store: threads, their append-only messages, and evaluation failures."""

import logging
from datetime import UTC, datetime

from sqlmodel import Session, select

from gymagent.constants import GymConstants
from gymagent.database.models import (
    ConversationMessage,
    ConversationThread,
    EvaluationFailure,
    OutboxMessage,
)

logger = logging.getLogger(__name__)


class ConversationStore:
    """Manages ConversationThread, ConversationMessage and EvaluationFailure records."""

    def __init__(self, engine):
        self.engine = engine

    def _session(self) -> Session:
        return Session(self.engine)

    def _require_thread(self, session: Session, thread_id: int) -> ConversationThread:
        thread = session.get(ConversationThread, thread_id)
        if thread is None:
            raise ValueError(f"Unknown conversation thread: {thread_id}")
        return thread

    # --- Threads ---

    def create_thread(
        self,
        account_id: str,
        member_id: str,
        destination: str,
        goal: str,
        task_type: str | None = None,
        member_name: str | None = None,
    ) -> ConversationThread:
        """Open a new unresolved thread toward ``goal``."""
        with self._session() as session:
            thread = ConversationThread(
                account_id=account_id,
                member_id=member_id,
                member_name=member_name,
                destination=destination,
                goal=goal,
                task_type=task_type,
            )
            session.add(thread)
            session.commit()
            session.refresh(thread)
            logger.info("Created thread %d for member %s: %s", thread.id, member_id, goal[:60])
            return thread

    def get(self, thread_id: int) -> ConversationThread | None:
        with self._session() as session:
            return session.get(ConversationThread, thread_id)

    def get_updated_since(self, since: datetime) -> list[ConversationThread]:
        """Threads with activity at or after ``since``, oldest first."""
        with self._session() as session:
            return list(
                session.exec(
                    select(ConversationThread)
                    .where(ConversationThread.updated_at >= since)
                    .order_by(ConversationThread.updated_at.asc())  # type: ignore[union-attr]
                ).all()
            )

    def get_pending_extraction(self, since: datetime) -> list[ConversationThread]:
        """Threads active since ``since`` with activity after their last memory extraction."""
        return [
            thread
            for thread in self.get_updated_since(since)
            if thread.memories_extracted_at is None
            or thread.updated_at > thread.memories_extracted_at
        ]

    def mark_memories_extracted(self, thread_id: int, at: datetime | None = None) -> None:
        with self._session() as session:
            thread = self._require_thread(session, thread_id)
            thread.memories_extracted_at = at or datetime.now(UTC)
            session.add(thread)
            session.commit()

    def reopen(self, thread_id: int, new_goal: str) -> ConversationThread:
        """Mark a resolved thread unresolved again with a new goal."""
        with self._session() as session:
            thread = self._require_thread(session, thread_id)
            thread.resolved = False
            thread.goal = new_goal
            thread.updated_at = datetime.now(UTC)
            session.add(thread)
            session.commit()
            session.refresh(thread)
            logger.info("Reopened thread %d: %s", thread_id, new_goal[:60])
            return thread

    # --- Messages ---

    def append_message(self, thread_id: int, role: str, content: str) -> ConversationMessage:
        """Append one row to a thread and bump its activity timestamp."""
        with self._session() as session:
            thread = self._require_thread(session, thread_id)
            message = ConversationMessage(
                thread_id=thread_id,
                role=GymConstants.ConversationRole(role).value,
                content=content,
            )
            thread.updated_at = datetime.now(UTC)
            session.add(message)
            session.add(thread)
            session.commit()
            session.refresh(message)
            return message

    def get_thread(
        self, thread_id: int, exclude_decisions: bool = True
    ) -> list[ConversationMessage]:
        """Thread rows in chronological order, optionally without decision rows."""
        with self._session() as session:
            query = select(ConversationMessage).where(ConversationMessage.thread_id == thread_id)
            if exclude_decisions:
                query = query.where(
                    ConversationMessage.role != GymConstants.ConversationRole.AGENT_DECISION
                )
            return list(
                session.exec(
                    query.order_by(
                        ConversationMessage.timestamp.asc(),  # type: ignore[union-attr]
                        ConversationMessage.id.asc(),  # type: ignore[union-attr]
                    )
                ).all()
            )

    def get_decisions(self, thread_id: int) -> list[ConversationMessage]:
        """Decision rows of a thread in chronological order."""
        return [
            message
            for message in self.get_thread(thread_id, exclude_decisions=False)
            if message.role == GymConstants.ConversationRole.AGENT_DECISION
        ]

    def record_decision(
        self,
        thread_id: int,
        decision_json: str,
        *,
        resolve: bool = False,
        needs_review: bool = False,
        new_goal: str | None = None,
        outbox: OutboxMessage | None = None,
    ) -> tuple[ConversationMessage, OutboxMessage | None]:
        """
        Persist a decision and its effects in one transaction.

        Args:
            thread_id: Thread the decision belongs to
            decision_json: Serialized decision stored as the audit row
            resolve: Mark the thread resolved
            needs_review: Flag the thread for human review
            new_goal: Replace the thread goal
            outbox: Optional outbound message to queue, linked to the decision row

        Returns:
            The stored decision row and the stored outbox row (if any)
        """
        with self._session() as session:
            thread = self._require_thread(session, thread_id)
            decision = ConversationMessage(
                thread_id=thread_id,
                role=GymConstants.ConversationRole.AGENT_DECISION.value,
                content=decision_json,
            )
            session.add(decision)
            session.flush()

            if resolve:
                thread.resolved = True
            if needs_review:
                thread.needs_review = True
            if new_goal:
                thread.goal = new_goal
            thread.updated_at = datetime.now(UTC)
            session.add(thread)

            if outbox is not None:
                outbox.decision_message_id = decision.id
                session.add(outbox)

            session.commit()
            session.refresh(decision)
            if outbox is not None:
                session.refresh(outbox)
            return decision, outbox

    # --- Failures ---

    def record_failure(
        self,
        thread_id: int,
        error: str,
        inbound_message_id: int | None = None,
        raw_response: str | None = None,
        sentiment_hint: int | None = None,
    ) -> EvaluationFailure:
        """Store a failed evaluation for later triage."""
        with self._session() as session:
            failure = EvaluationFailure(
                thread_id=thread_id,
                inbound_message_id=inbound_message_id,
                error=error,
                raw_response=raw_response,
                sentiment_hint=sentiment_hint,
            )
            session.add(failure)
            session.commit()
            session.refresh(failure)
            return failure

    def get_failures(self, thread_id: int) -> list[EvaluationFailure]:
        with self._session() as session:
            return list(
                session.exec(
                    select(EvaluationFailure)
                    .where(EvaluationFailure.thread_id == thread_id)
                    .order_by(EvaluationFailure.created_at.asc())  # type: ignore[union-attr]
                ).all()
            )
