"""SQLModel models for gymagent's persistence layer."""

import json
from datetime import UTC, datetime

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class PromptLog(SQLModel, table=True):
    """One model exchange, stored as JSON text."""

    id: int | None = Field(default=None, primary_key=True)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC), index=True)
    model: str
    messages: str
    response: str
    thinking: str | None = None
    duration_ms: int | None = None

    def exchange(self) -> tuple[list[dict], dict]:
        """Decoded (messages, response) pair."""
        return json.loads(self.messages), json.loads(self.response)


class Account(SQLModel, table=True):
    """A gym account and its agent settings."""

    id: str = Field(primary_key=True)
    name: str
    timezone: str | None = None  # IANA timezone (e.g., "America/Chicago")
    automation_level: str = Field(default="draft_only")  # AutomationLevel enum value
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ConversationThread(SQLModel, table=True):
    """One conversation between the gym and a member toward a single goal."""

    __tablename__ = "conversation_thread"

    id: int | None = Field(default=None, primary_key=True)
    account_id: str = Field(foreign_key="account.id", index=True)
    member_id: str = Field(index=True)
    member_name: str | None = None
    destination: str  # Channel-agnostic address handed to the dispatch channel
    goal: str
    task_type: str | None = None  # Legacy task type used for skill fallback
    resolved: bool = Field(default=False, index=True)
    needs_review: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC), index=True)
    memories_extracted_at: datetime | None = None  # Last memory extraction pass


class ConversationMessage(SQLModel, table=True):
    """One append-only row of a thread: outbound, inbound, or an agent decision."""

    __tablename__ = "conversation_message"

    id: int | None = Field(default=None, primary_key=True)
    thread_id: int = Field(foreign_key="conversation_thread.id", index=True)
    role: str = Field(index=True)  # ConversationRole enum value
    content: str  # Message text, or a JSON-serialized AgentDecision
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC), index=True)


class EvaluationFailure(SQLModel, table=True):
    """A model response that could not be turned into a decision."""

    __tablename__ = "evaluation_failure"

    id: int | None = Field(default=None, primary_key=True)
    thread_id: int = Field(foreign_key="conversation_thread.id", index=True)
    inbound_message_id: int | None = Field(default=None, foreign_key="conversation_message.id")
    error: str
    raw_response: str | None = None
    sentiment_hint: int | None = None  # Heuristic triage score for the inbound text
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC), index=True)


class OutboxMessage(SQLModel, table=True):
    """A message the agent wants to send, with its dispatch state."""

    __tablename__ = "outbox_message"

    id: int | None = Field(default=None, primary_key=True)
    thread_id: int = Field(foreign_key="conversation_thread.id", index=True)
    decision_message_id: int | None = Field(default=None, foreign_key="conversation_message.id")
    destination: str
    content: str
    status: str = Field(index=True)  # OutboxStatus enum value
    not_before: datetime | None = None  # Earliest send time for deferred messages
    attempts: int = Field(default=0)
    last_error: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    sent_at: datetime | None = None


class Memory(SQLModel, table=True):
    """A durable fact reused in future prompts."""

    id: int | None = Field(default=None, primary_key=True)
    account_id: str = Field(foreign_key="account.id", index=True)
    member_id: str | None = Field(default=None, index=True)  # None = account-wide
    category: str  # MemoryCategory enum value
    content: str
    importance: int = Field(default=3)  # 1-5
    scope: str = Field(default="global")  # MemoryScope enum value
    source: str = Field(default="agent")  # MemorySource enum value
    active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class MemorySuggestion(SQLModel, table=True):
    """An extracted memory candidate waiting for owner review."""

    __tablename__ = "memory_suggestion"

    id: int | None = Field(default=None, primary_key=True)
    account_id: str = Field(foreign_key="account.id", index=True)
    member_id: str | None = None
    member_name: str | None = None
    content: str  # Merged content when target_memory_id is set
    original_content: str | None = None  # Candidate text before merging
    category: str
    scope: str
    importance: int
    evidence: str
    confidence: float
    target_memory_id: int | None = Field(default=None, foreign_key="memory.id")
    status: str = Field(default="pending", index=True)  # SuggestionStatus enum value
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class SkillCustomization(SQLModel, table=True):
    """Owner-written notes appended to one skill for one account."""

    __tablename__ = "skill_customization"
    __table_args__ = (UniqueConstraint("account_id", "skill_id"),)

    id: int | None = Field(default=None, primary_key=True)
    account_id: str = Field(foreign_key="account.id", index=True)
    skill_id: str
    notes: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class RuntimeConfig(SQLModel, table=True):
    """Operator override for one runtime parameter."""

    __tablename__ = "runtime_config"

    key: str = Field(primary_key=True)
    value: str  # raw text, validated on read
    description: str
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
