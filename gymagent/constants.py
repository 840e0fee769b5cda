"""Constants and enums for the retention agents."""

from enum import StrEnum


class GymConstants:
    """Shared enums and fixed values, grouped by feature area."""

    class ConversationRole(StrEnum):
        """Role of a row in a conversation thread."""

        OUTBOUND = "outbound"
        INBOUND = "inbound"
        AGENT_DECISION = "agent_decision"

    class AgentAction(StrEnum):
        """Actions the model can choose for one inbound turn."""

        REPLY = "reply"
        CLOSE = "close"
        ESCALATE = "escalate"
        REOPEN = "reopen"
        WAIT = "wait"

    class AutomationLevel(StrEnum):
        """Per-account policy for dispatching agent-written messages."""

        FULL_AUTO = "full_auto"
        SMART = "smart"
        DRAFT_ONLY = "draft_only"

    class EvaluationStatus(StrEnum):
        """Outcome of evaluating one inbound message."""

        APPLIED = "applied"
        SKIPPED_RESOLVED = "skipped_resolved"
        FAILED = "failed"

    class DispatchStatus(StrEnum):
        """What happened to the message a decision wanted to send."""

        NONE = "none"
        SENT = "sent"
        WITHHELD = "withheld"
        DEFERRED = "deferred"
        FAILED = "failed"

    class OutboxStatus(StrEnum):
        """Lifecycle of a queued outbound message."""

        PENDING = "pending"
        AWAITING_APPROVAL = "awaiting_approval"
        DEFERRED = "deferred"
        SENT = "sent"
        FAILED = "failed"

    class MemoryCategory(StrEnum):
        """Category of a durable memory."""

        PREFERENCE = "preference"
        MEMBER_FACT = "member_fact"
        GYM_CONTEXT = "gym_context"
        LEARNED_PATTERN = "learned_pattern"

    class MemoryScope(StrEnum):
        """Whether a memory applies to the whole account or one member."""

        GLOBAL = "global"
        MEMBER = "member"

    class MemorySource(StrEnum):
        """Who created a memory."""

        OWNER = "owner"
        AGENT = "agent"
        SYSTEM = "system"

    class ConsolidationAction(StrEnum):
        """Create a new memory card or update an existing one."""

        CREATE = "create"
        UPDATE = "update"

    class SuggestionStatus(StrEnum):
        """Owner review state of a memory suggestion."""

        PENDING = "pending"
        APPLIED = "applied"
        DISMISSED = "dismissed"

    # Time gating
    DEFAULT_TIMEZONE = "America/New_York"
    QUIET_HOUR_START = 21
    QUIET_HOUR_END = 8

    # Smart automation auto-sends at or above this outcome score
    SMART_MIN_OUTCOME_SCORE = 60

    # Skill matching weights
    SKILL_TRIGGER_WEIGHT = 10
    SKILL_APPLIES_WHEN_WEIGHT = 1
    SKILL_DOMAIN_BONUS = 3
    SKILL_MIN_WORD_LENGTH = 4
    SKILL_MAX_MATCHES = 2
    SKILL_DEFAULT_DOMAIN = "general"
    SKILL_BASE_FILENAME = "_base.md"

    # Separator placed between prompt layers
    LAYER_DIVIDER = "\n\n---\n\n"

    # Only memories at or above this importance are injected into prompts
    MEMORY_PROMPT_MIN_IMPORTANCE = 3
    MEMORY_DEFAULT_IMPORTANCE = 3

    # Legacy task type -> skill filename. Keeps every known task type resolvable
    # even when the keyword matcher finds nothing.
    TASK_TYPE_TO_SKILL = {
        "churn_risk": "churn-risk.md",
        "renewal_at_risk": "churn-risk.md",
        "at_risk_detector": "churn-risk.md",
        "win_back": "win-back.md",
        "lead_going_cold": "lead-followup.md",
        "lead_followup": "lead-followup.md",
        "lead_nurture": "lead-followup.md",
        "lead_reactivation": "lead-reactivation.md",
        "lead_re_activation": "lead-reactivation.md",
        "payment_failed": "payment-recovery.md",
        "payment_recovery": "payment-recovery.md",
        "new_member_onboarding": "onboarding.md",
        "onboarding": "onboarding.md",
        "no_show": "staff-call-member.md",
        "monthly_analysis": "monthly-churn-analysis.md",
        "ad_hoc": "ad-hoc.md",
        "renewal": "renewal.md",
        "membership_renewal": "renewal.md",
        "referral": "referral.md",
        "member_referral": "referral.md",
        "milestone": "milestone.md",
        "member_milestone": "milestone.md",
        "anniversary": "milestone.md",
    }

    MEMORY_CATEGORY_LABELS = {
        "preference": "Owner Preferences",
        "member_fact": "Member Notes",
        "gym_context": "Business Profile",
        "learned_pattern": "Learned Patterns",
    }
