"""Outbox agent: the only place messages leave the system."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from gymagent.agents.base import Agent
from gymagent.agents.models import DispatchOutcome
from gymagent.channels import DispatchChannel
from gymagent.config import Config
from gymagent.constants import GymConstants
from gymagent.database import Database
from gymagent.datetime_utils import is_quiet_hours, next_send_window
from gymagent.ollama import OllamaClient

logger = logging.getLogger(__name__)

_ROW_TO_DISPATCH = {
    GymConstants.OutboxStatus.SENT: GymConstants.DispatchStatus.SENT,
    GymConstants.OutboxStatus.FAILED: GymConstants.DispatchStatus.FAILED,
    GymConstants.OutboxStatus.DEFERRED: GymConstants.DispatchStatus.DEFERRED,
    GymConstants.OutboxStatus.AWAITING_APPROVAL: GymConstants.DispatchStatus.WITHHELD,
}

_DELIVERABLE = (GymConstants.OutboxStatus.PENDING, GymConstants.OutboxStatus.DEFERRED)


class OutboxAgent(Agent):
    """
    Queues, gates and delivers outbound messages.

    Every message is checked against the account's quiet hours immediately
    before it is handed to the channel. Messages that may not go out yet are
    deferred to the next send window and picked up by ``execute()``, which the
    background scheduler runs periodically.
    """

    def __init__(
        self,
        model_client: OllamaClient,
        db: Database,
        config: Config,
        channel: DispatchChannel,
    ):
        super().__init__(model_client, db, config)
        self.channel = channel
        self._in_flight: set[int] = set()

    @property
    def name(self) -> str:
        return "outbox"

    def _quiet_until(self, account_id: str, now: datetime | None) -> datetime | None:
        """Next send window if ``now`` falls in the account's quiet hours, else None."""
        tz = self.db.accounts.get_timezone(account_id)
        start = int(self.config.runtime.QUIET_HOUR_START)
        end = int(self.config.runtime.QUIET_HOUR_END)
        if not is_quiet_hours(tz, now, start, end):
            return None
        return next_send_window(tz, now, start, end)

    def plan(
        self, account_id: str, auto_send: bool, now: datetime | None = None
    ) -> tuple[GymConstants.OutboxStatus, datetime | None]:
        """
        Initial queue state for a new message.

        Returns:
            ``(AWAITING_APPROVAL, None)`` when policy withholds it,
            ``(DEFERRED, not_before)`` during quiet hours, otherwise ``(PENDING, None)``
        """
        if not auto_send:
            return GymConstants.OutboxStatus.AWAITING_APPROVAL, None
        not_before = self._quiet_until(account_id, now)
        if not_before is not None:
            return GymConstants.OutboxStatus.DEFERRED, not_before
        return GymConstants.OutboxStatus.PENDING, None

    async def deliver(self, outbox_id: int, now: datetime | None = None) -> DispatchOutcome:
        """
        Send one queued message through the channel.

        Pending and due deferred messages are sent unless quiet hours started in
        the meantime, in which case they are deferred again. Channel failures are
        recorded on the row and reported, never raised.
        """
        if outbox_id in self._in_flight:
            logger.debug("Outbox message %d already being delivered", outbox_id)
            return DispatchOutcome(status=GymConstants.DispatchStatus.NONE, outbox_id=outbox_id)

        self._in_flight.add(outbox_id)
        try:
            row = self.db.outbox.get(outbox_id)
            if row is None:
                raise ValueError(f"Unknown outbox message: {outbox_id}")

            status = GymConstants.OutboxStatus(row.status)
            if status not in _DELIVERABLE:
                return DispatchOutcome(
                    status=_ROW_TO_DISPATCH.get(status, GymConstants.DispatchStatus.NONE),
                    outbox_id=outbox_id,
                    error=row.last_error,
                )

            thread = self.db.conversations.get(row.thread_id)
            account_id = thread.account_id if thread else ""
            not_before = self._quiet_until(account_id, now)
            if not_before is not None:
                self.db.outbox.set_status(
                    outbox_id, GymConstants.OutboxStatus.DEFERRED, not_before=not_before
                )
                logger.info("Outbox message %d deferred until %s", outbox_id, not_before)
                return DispatchOutcome(
                    status=GymConstants.DispatchStatus.DEFERRED, outbox_id=outbox_id
                )

            try:
                result = await self.channel.send(row.destination, row.content)
            except Exception as e:
                logger.exception("Channel %s raised while sending %d", self.channel.name, outbox_id)
                self.db.outbox.mark_failed(outbox_id, str(e) or e.__class__.__name__)
                return DispatchOutcome(
                    status=GymConstants.DispatchStatus.FAILED, outbox_id=outbox_id, error=str(e)
                )

            if not result.ok:
                error = result.error or "dispatch failed"
                self.db.outbox.mark_failed(outbox_id, error)
                logger.warning("Outbox message %d failed: %s", outbox_id, error)
                return DispatchOutcome(
                    status=GymConstants.DispatchStatus.FAILED, outbox_id=outbox_id, error=error
                )

            self.db.outbox.mark_sent(outbox_id)
            logger.info("Outbox message %d sent on thread %d", outbox_id, row.thread_id)
            return DispatchOutcome(status=GymConstants.DispatchStatus.SENT, outbox_id=outbox_id)
        finally:
            self._in_flight.discard(outbox_id)

    async def approve(self, outbox_id: int, now: datetime | None = None) -> DispatchOutcome:
        """
        Release a withheld message for sending.

        Raises:
            ValueError: If the message does not exist or is not awaiting approval
        """
        row = self.db.outbox.get(outbox_id)
        if row is None:
            raise ValueError(f"Unknown outbox message: {outbox_id}")
        if row.status != GymConstants.OutboxStatus.AWAITING_APPROVAL:
            raise ValueError(f"Outbox message {outbox_id} is not awaiting approval ({row.status})")

        self.db.outbox.set_status(outbox_id, GymConstants.OutboxStatus.PENDING)
        logger.info("Outbox message %d approved", outbox_id)
        return await self.deliver(outbox_id, now)

    async def flush(self, now: datetime | None = None) -> list[DispatchOutcome]:
        """Deliver every message that is due. Returns one outcome per attempted message."""
        now = now or datetime.now(UTC)
        outcomes = []
        for row in self.db.outbox.get_due(now):
            assert row.id is not None
            outcomes.append(await self.deliver(row.id, now))
        return outcomes

    async def execute(self) -> bool:
        """Scheduled flush of deferred and interrupted messages."""
        outcomes = await self.flush()
        return any(o.status == GymConstants.DispatchStatus.SENT for o in outcomes)
