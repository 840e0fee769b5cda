"""Base abstractions for outbound dispatch channels."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class DispatchResult(BaseModel):
    """Outcome of handing one message to a transport."""

    ok: bool
    external_id: str | None = None  # Transport-assigned id, when the transport returns one
    error: str | None = None


class DispatchChannel(ABC):
    """Delivers agent-written messages to members.

    Implementations report failures through ``DispatchResult`` and do not raise.
    """

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    async def send(self, destination: str, text: str) -> DispatchResult:
        """
        Send a message.

        Args:
            destination: Channel-agnostic member address (email, phone, member id)
            text: Message body

        Returns:
            DispatchResult describing the delivery attempt
        """

    async def close(self) -> None:
        """Release transport resources."""
        return None


class LoggingChannel(DispatchChannel):
    """Channel that only logs messages. Used when no transport is configured."""

    def __init__(self) -> None:
        logger.warning("No dispatch transport configured; outbound messages will only be logged")

    async def send(self, destination: str, text: str) -> DispatchResult:
        logger.info("Dispatch to %s (length: %d): %s", destination, len(text), text[:200])
        return DispatchResult(ok=True)
