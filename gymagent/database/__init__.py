"""Persistence layer for gymagent."""

from gymagent.database.database import Database
from gymagent.database.models import (
    Account,
    ConversationMessage,
    ConversationThread,
    EvaluationFailure,
    Memory,
    MemorySuggestion,
    OutboxMessage,
    PromptLog,
    SkillCustomization,
)

__all__ = [
    "Account",
    "ConversationMessage",
    "ConversationThread",
    "Database",
    "EvaluationFailure",
    "Memory",
    "MemorySuggestion",
    "OutboxMessage",
    "PromptLog",
    "SkillCustomization",
]
