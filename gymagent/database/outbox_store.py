"""Outbox store: queued outbound messages and their dispatch state."""

import logging
from datetime import UTC, datetime

from sqlmodel import Session, col, select

from gymagent.constants import GymConstants
from gymagent.database.models import ConversationMessage, ConversationThread, OutboxMessage

logger = logging.getLogger(__name__)


class OutboxStore:
    """Manages OutboxMessage records.

    A message only becomes part of its thread's transcript once it is marked
    sent; queued, withheld and failed messages live here alone.
    """

    def __init__(self, engine):
        self.engine = engine

    def _session(self) -> Session:
        return Session(self.engine)

    def add(
        self,
        thread_id: int,
        destination: str,
        content: str,
        status: str,
        not_before: datetime | None = None,
    ) -> OutboxMessage:
        """Queue a message outside of a decision (e.g. a thread's opening message)."""
        with self._session() as session:
            row = OutboxMessage(
                thread_id=thread_id,
                destination=destination,
                content=content,
                status=GymConstants.OutboxStatus(status).value,
                not_before=not_before,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return row

    def get(self, outbox_id: int) -> OutboxMessage | None:
        with self._session() as session:
            return session.get(OutboxMessage, outbox_id)

    def get_due(self, now: datetime | None = None) -> list[OutboxMessage]:
        """Pending messages, plus deferred messages whose send window has opened."""
        now = now or datetime.now(UTC)
        with self._session() as session:
            pending = col(OutboxMessage.status) == GymConstants.OutboxStatus.PENDING
            deferred_due = (col(OutboxMessage.status) == GymConstants.OutboxStatus.DEFERRED) & (
                col(OutboxMessage.not_before) <= now
            )
            return list(
                session.exec(
                    select(OutboxMessage)
                    .where(pending | deferred_due)
                    .order_by(col(OutboxMessage.created_at).asc())
                ).all()
            )

    def get_awaiting_approval(self, thread_id: int | None = None) -> list[OutboxMessage]:
        """Messages withheld for owner approval, optionally for one thread."""
        with self._session() as session:
            query = select(OutboxMessage).where(
                OutboxMessage.status == GymConstants.OutboxStatus.AWAITING_APPROVAL
            )
            if thread_id is not None:
                query = query.where(OutboxMessage.thread_id == thread_id)
            return list(session.exec(query.order_by(col(OutboxMessage.created_at).asc())).all())

    def set_status(
        self, outbox_id: int, status: str, not_before: datetime | None = None
    ) -> OutboxMessage:
        """Move a message to a new queue state."""
        with self._session() as session:
            row = session.get(OutboxMessage, outbox_id)
            if row is None:
                raise ValueError(f"Unknown outbox message: {outbox_id}")
            row.status = GymConstants.OutboxStatus(status).value
            row.not_before = not_before
            session.add(row)
            session.commit()
            session.refresh(row)
            return row

    def mark_sent(self, outbox_id: int) -> ConversationMessage:
        """Mark a message sent and append it to its thread as an outbound row."""
        with self._session() as session:
            row = session.get(OutboxMessage, outbox_id)
            if row is None:
                raise ValueError(f"Unknown outbox message: {outbox_id}")
            now = datetime.now(UTC)
            row.status = GymConstants.OutboxStatus.SENT.value
            row.attempts += 1
            row.sent_at = now
            row.last_error = None
            session.add(row)

            outbound = ConversationMessage(
                thread_id=row.thread_id,
                role=GymConstants.ConversationRole.OUTBOUND.value,
                content=row.content,
                timestamp=now,
            )
            session.add(outbound)

            thread = session.get(ConversationThread, row.thread_id)
            if thread is not None:
                thread.updated_at = now
                session.add(thread)

            session.commit()
            session.refresh(outbound)
            logger.debug("Outbox message %d sent on thread %d", outbox_id, row.thread_id)
            return outbound

    def mark_failed(self, outbox_id: int, error: str) -> OutboxMessage:
        """Record a failed delivery attempt."""
        with self._session() as session:
            row = session.get(OutboxMessage, outbox_id)
            if row is None:
                raise ValueError(f"Unknown outbox message: {outbox_id}")
            row.status = GymConstants.OutboxStatus.FAILED.value
            row.attempts += 1
            row.last_error = error
            session.add(row)
            session.commit()
            session.refresh(row)
            return row
