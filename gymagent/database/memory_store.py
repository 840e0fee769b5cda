"""Memory store: durable memories and the suggestions that feed them."""

import logging
from datetime import UTC, datetime

from sqlmodel import Session, col, or_, select

from gymagent.constants import GymConstants
from gymagent.database.models import Memory, MemorySuggestion

logger = logging.getLogger(__name__)


class MemoryStore:
    """Manages Memory and MemorySuggestion records."""

    def __init__(self, engine):
        self.engine = engine

    def _session(self) -> Session:
        return Session(self.engine)

    # --- Memories ---

    def add(
        self,
        account_id: str,
        category: str,
        content: str,
        importance: int = GymConstants.MEMORY_DEFAULT_IMPORTANCE,
        scope: str = GymConstants.MemoryScope.GLOBAL,
        member_id: str | None = None,
        source: str = GymConstants.MemorySource.OWNER,
    ) -> Memory:
        """Create an active memory."""
        with self._session() as session:
            memory = Memory(
                account_id=account_id,
                member_id=member_id,
                category=GymConstants.MemoryCategory(category).value,
                content=content,
                importance=importance,
                scope=GymConstants.MemoryScope(scope).value,
                source=GymConstants.MemorySource(source).value,
            )
            session.add(memory)
            session.commit()
            session.refresh(memory)
            logger.debug("Added memory %d for %s: %s", memory.id, account_id, content[:50])
            return memory

    def get_active(
        self,
        account_id: str,
        member_id: str | None = None,
        min_importance: int = 1,
        include_member: bool = False,
    ) -> list[Memory]:
        """
        Active memories for an account, most important first.

        Args:
            account_id: Account to read
            member_id: Include this member's memories alongside account-wide ones
            include_member: Include every member's memories (ignores ``member_id``)
            min_importance: Drop memories below this importance

        Returns:
            Memories ordered by importance (desc), then most recently updated
        """
        with self._session() as session:
            query = select(Memory).where(
                Memory.account_id == account_id,
                Memory.active == True,  # noqa: E712
                Memory.importance >= min_importance,
            )
            if member_id is not None and not include_member:
                query = query.where(
                    or_(col(Memory.member_id).is_(None), Memory.member_id == member_id)
                )
            elif not include_member:
                query = query.where(col(Memory.member_id).is_(None))
            return list(
                session.exec(
                    query.order_by(
                        col(Memory.importance).desc(),
                        col(Memory.updated_at).desc(),
                    )
                ).all()
            )

    def get_for_prompt(
        self,
        account_id: str,
        member_id: str | None = None,
        min_importance: int = GymConstants.MEMORY_PROMPT_MIN_IMPORTANCE,
    ) -> str:
        """
        Render active memories as a prompt section grouped by category.

        Returns an empty string when nothing qualifies.
        """
        memories = self.get_active(account_id, member_id, min_importance)
        if not memories:
            return ""

        grouped: dict[str, list[str]] = {}
        for memory in memories:
            grouped.setdefault(memory.category, []).append(memory.content)

        lines = ["## Gym Context & Memories"]
        for category, contents in grouped.items():
            label = GymConstants.MEMORY_CATEGORY_LABELS.get(category, category)
            lines.append("")
            lines.append(f"### {label}")
            lines.extend(f"- {content}" for content in contents)
        return "\n".join(lines)

    def update_content(self, memory_id: int, content: str, importance: int | None = None) -> Memory:
        """Replace a memory's text (and optionally its importance)."""
        with self._session() as session:
            memory = session.get(Memory, memory_id)
            if memory is None:
                raise ValueError(f"Unknown memory: {memory_id}")
            memory.content = content
            if importance is not None:
                memory.importance = importance
            memory.updated_at = datetime.now(UTC)
            session.add(memory)
            session.commit()
            session.refresh(memory)
            return memory

    def deactivate(self, memory_id: int) -> bool:
        """Soft-delete a memory. Returns True if it was active."""
        with self._session() as session:
            memory = session.get(Memory, memory_id)
            if memory is None or not memory.active:
                return False
            memory.active = False
            memory.updated_at = datetime.now(UTC)
            session.add(memory)
            session.commit()
            return True

    # --- Suggestions ---

    def add_suggestion(
        self,
        account_id: str,
        content: str,
        category: str,
        scope: str,
        importance: int,
        evidence: str,
        confidence: float,
        member_id: str | None = None,
        member_name: str | None = None,
        target_memory_id: int | None = None,
        original_content: str | None = None,
    ) -> MemorySuggestion | None:
        """
        Queue a memory suggestion for owner review.

        Returns None when a pending suggestion with the same text (ignoring case)
        already exists for the account.
        """
        with self._session() as session:
            pending = session.exec(
                select(MemorySuggestion.content).where(
                    MemorySuggestion.account_id == account_id,
                    MemorySuggestion.status == GymConstants.SuggestionStatus.PENDING,
                )
            ).all()
            key = content.strip().lower()
            if any(existing.strip().lower() == key for existing in pending):
                logger.debug("Skipping duplicate suggestion for %s: %s", account_id, content[:50])
                return None

            suggestion = MemorySuggestion(
                account_id=account_id,
                member_id=member_id,
                member_name=member_name,
                content=content,
                original_content=original_content,
                category=GymConstants.MemoryCategory(category).value,
                scope=GymConstants.MemoryScope(scope).value,
                importance=importance,
                evidence=evidence,
                confidence=confidence,
                target_memory_id=target_memory_id,
            )
            session.add(suggestion)
            session.commit()
            session.refresh(suggestion)
            return suggestion

    def get_pending_suggestions(self, account_id: str) -> list[MemorySuggestion]:
        with self._session() as session:
            return list(
                session.exec(
                    select(MemorySuggestion)
                    .where(
                        MemorySuggestion.account_id == account_id,
                        MemorySuggestion.status == GymConstants.SuggestionStatus.PENDING,
                    )
                    .order_by(col(MemorySuggestion.created_at).asc())
                ).all()
            )

    def apply_suggestion(self, suggestion_id: int) -> Memory | None:
        """
        Accept a pending suggestion.

        Update suggestions rewrite their target memory; all others create a new
        agent-sourced memory. Returns the affected memory, or None if the
        suggestion is missing or no longer pending.
        """
        with self._session() as session:
            suggestion = session.get(MemorySuggestion, suggestion_id)
            if suggestion is None or suggestion.status != GymConstants.SuggestionStatus.PENDING:
                return None

            now = datetime.now(UTC)
            memory = None
            if suggestion.target_memory_id is not None:
                memory = session.get(Memory, suggestion.target_memory_id)
            if memory is not None and memory.active:
                memory.content = suggestion.content
                memory.importance = max(memory.importance, suggestion.importance)
                memory.updated_at = now
            else:
                memory = Memory(
                    account_id=suggestion.account_id,
                    member_id=suggestion.member_id,
                    category=suggestion.category,
                    content=suggestion.content,
                    importance=suggestion.importance,
                    scope=suggestion.scope,
                    source=GymConstants.MemorySource.AGENT.value,
                )
            session.add(memory)

            suggestion.status = GymConstants.SuggestionStatus.APPLIED.value
            session.add(suggestion)
            session.commit()
            session.refresh(memory)
            logger.info("Applied memory suggestion %d -> memory %d", suggestion_id, memory.id)
            return memory

    def dismiss_suggestion(self, suggestion_id: int) -> bool:
        """Reject a pending suggestion. Returns True if it was pending."""
        with self._session() as session:
            suggestion = session.get(MemorySuggestion, suggestion_id)
            if suggestion is None or suggestion.status != GymConstants.SuggestionStatus.PENDING:
                return False
            suggestion.status = GymConstants.SuggestionStatus.DISMISSED.value
            session.add(suggestion)
            session.commit()
            return True
