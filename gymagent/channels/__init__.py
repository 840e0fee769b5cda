"""Outbound dispatch channels."""

from gymagent.channels.base import DispatchChannel, DispatchResult, LoggingChannel
from gymagent.channels.webhook import WebhookChannel

__all__ = ["DispatchChannel", "DispatchResult", "LoggingChannel", "WebhookChannel"]
