"""Retention agents."""

from gymagent.agents.base import Agent
from gymagent.agents.conversation import ConversationAgent, should_auto_dispatch
from gymagent.agents.memory import MemoryExtractionAgent, MemoryExtractor
from gymagent.agents.models import (
    AgentDecision,
    ConsolidatedCandidate,
    DecisionParseError,
    DispatchOutcome,
    EvaluationResult,
    ExtractedMemory,
    parse_decision,
)
from gymagent.agents.outbox import OutboxAgent
from gymagent.agents.outreach import OutreachAgent, OutreachResult

__all__ = [
    "Agent",
    "AgentDecision",
    "ConsolidatedCandidate",
    "ConversationAgent",
    "DecisionParseError",
    "DispatchOutcome",
    "EvaluationResult",
    "ExtractedMemory",
    "MemoryExtractionAgent",
    "MemoryExtractor",
    "OutboxAgent",
    "OutreachAgent",
    "OutreachResult",
    "parse_decision",
    "should_auto_dispatch",
]
