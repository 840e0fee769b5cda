"""Pydantic models and enums for the agents."""

from __future__ import annotations

import json
import re
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from gymagent.constants import GymConstants


class MessageRole(StrEnum):
    """Valid message roles in chat conversations."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """A message in a chat conversation."""

    role: MessageRole
    content: str

    def to_dict(self) -> dict:
        """Convert to dict for Ollama API."""
        return {"role": self.role.value, "content": self.content}


# --- Decisions ---


class DecisionParseError(ValueError):
    """Model output that does not describe a valid decision."""

    def __init__(self, message: str, raw: str):
        super().__init__(message)
        self.raw = raw


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class _DecisionBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    reasoning: str = ""
    score_reason: str = Field(default="", alias="scoreReason")
    outcome_score: int = Field(alias="outcomeScore", ge=0, le=100)
    resolved: bool = False

    @property
    def outbound_text(self) -> str | None:
        """Message this decision wants sent to the member, if any."""
        return None


class ReplyDecision(_DecisionBase):
    """Continue the conversation with a message."""

    action: Literal["reply"]
    reply: str = Field(min_length=1)

    @field_validator("reply", mode="before")
    @classmethod
    def _strip_reply(cls, value):
        return value.strip() if isinstance(value, str) else value

    @property
    def outbound_text(self) -> str | None:
        return self.reply


class CloseDecision(_DecisionBase):
    """The goal is met or declined; an optional last message."""

    action: Literal["close"]
    reply: str | None = None

    _blank_reply = field_validator("reply", mode="before")(_blank_to_none)

    @property
    def outbound_text(self) -> str | None:
        return self.reply


class EscalateDecision(_DecisionBase):
    """Hand the thread to a human."""

    action: Literal["escalate"]


class ReopenDecision(_DecisionBase):
    """The member raised a new goal worth pursuing."""

    action: Literal["reopen"]
    new_goal: str = Field(alias="newGoal", min_length=1)
    reply: str | None = None

    _blank_reply = field_validator("reply", mode="before")(_blank_to_none)

    @property
    def outbound_text(self) -> str | None:
        return self.reply


class WaitDecision(_DecisionBase):
    """Nothing to say yet."""

    action: Literal["wait"]


AgentDecision = Annotated[
    ReplyDecision | CloseDecision | EscalateDecision | ReopenDecision | WaitDecision,
    Field(discriminator="action"),
]

_decision_adapter: TypeAdapter[AgentDecision] = TypeAdapter(AgentDecision)

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)


def extract_json(raw: str) -> str:
    """Pull the JSON payload out of a model response.

    Accepts bare JSON, JSON inside a ```json fence, or JSON wrapped in prose.
    """
    text = raw.strip()
    fenced = _FENCE_PATTERN.search(text)
    if fenced:
        text = fenced.group(1).strip()
    if text[:1] in ("{", "["):
        return text
    start = min((i for i in (text.find("{"), text.find("[")) if i != -1), default=-1)
    if start == -1:
        return text
    end = max(text.rfind("}"), text.rfind("]"))
    return text[start : end + 1] if end > start else text[start:]


def parse_decision(raw: str) -> AgentDecision:
    """
    Parse a model response into an AgentDecision.

    Args:
        raw: Raw model output

    Returns:
        The validated decision

    Raises:
        DecisionParseError: If the output is not JSON or violates a decision's shape
    """
    try:
        data = json.loads(extract_json(raw))
    except json.JSONDecodeError as e:
        raise DecisionParseError(f"Response is not valid JSON: {e}", raw) from e
    if not isinstance(data, dict):
        raise DecisionParseError("Response JSON is not an object", raw)

    action = data.get("action")
    if isinstance(action, str):
        data["action"] = action.strip().lower()

    try:
        return _decision_adapter.validate_python(data)
    except ValidationError as e:
        raise DecisionParseError(f"Invalid decision: {e}", raw) from e


def serialize_decision(decision: AgentDecision) -> str:
    """JSON form stored in the thread's decision row."""
    return decision.model_dump_json(by_alias=True, exclude_none=True)


class DispatchOutcome(BaseModel):
    """What happened when an outbox message was handed to the channel (or held back)."""

    status: GymConstants.DispatchStatus
    outbox_id: int | None = None
    error: str | None = None


class EvaluationResult(BaseModel):
    """Outcome of handling one inbound message."""

    status: GymConstants.EvaluationStatus
    decision: AgentDecision | None = None
    reply_sent: bool = False
    dispatch: GymConstants.DispatchStatus = GymConstants.DispatchStatus.NONE
    dispatch_error: str | None = None
    outbox_id: int | None = None
    error: str | None = None


# --- Memories ---


class ExtractedMemory(BaseModel):
    """A durable fact proposed by the extraction pass."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    content: str = Field(min_length=1)
    category: GymConstants.MemoryCategory
    scope: GymConstants.MemoryScope = GymConstants.MemoryScope.GLOBAL
    importance: int = Field(default=GymConstants.MEMORY_DEFAULT_IMPORTANCE, ge=1, le=5)
    evidence: str = ""
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    member_name: str | None = Field(default=None, alias="memberName")


class ConsolidatedCandidate(ExtractedMemory):
    """An extracted memory with its create-or-update classification."""

    target_memory_id: int | None = None
    merged_content: str | None = None

    @property
    def action(self) -> GymConstants.ConsolidationAction:
        """UPDATE when both a target and merged text are present, otherwise CREATE."""
        if self.target_memory_id is not None and self.merged_content:
            return GymConstants.ConsolidationAction.UPDATE
        return GymConstants.ConsolidationAction.CREATE


class ConsolidationDecision(BaseModel):
    """One entry of the consolidation model's answer."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    idx: int
    action: str
    target_id: str | None = Field(default=None, alias="targetId")
    merged_content: str | None = Field(default=None, alias="mergedContent")

    @field_validator("target_id", mode="before")
    @classmethod
    def _coerce_target_id(cls, value):
        if value is None:
            return None
        return str(value).strip() or None

    _blank_merged = field_validator("merged_content", mode="before")(_blank_to_none)
