"""Memory extraction: durable facts from conversations, consolidated against known memories."""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from datetime import UTC, datetime, timedelta

from pydantic import ValidationError

from gymagent.agents.base import Agent
from gymagent.agents.models import (
    ConsolidatedCandidate,
    ConsolidationDecision,
    ExtractedMemory,
    extract_json,
)
from gymagent.constants import GymConstants
from gymagent.database import ConversationMessage, ConversationThread, Memory
from gymagent.prompts import Prompt

logger = logging.getLogger(__name__)


def _load_json_list(raw: str, what: str) -> list | None:
    try:
        data = json.loads(extract_json(raw))
    except json.JSONDecodeError as e:
        logger.warning("Could not parse %s response: %s", what, e)
        return None
    if not isinstance(data, list):
        logger.warning("%s response is not a JSON array", what.capitalize())
        return None
    return data


class MemoryExtractor(Agent):
    """Two model passes: extract candidate memories, then classify them as create or update."""

    async def extract(
        self, messages: list[ConversationMessage], account_name: str | None = None
    ) -> list[ExtractedMemory]:
        """
        Extract durable memory candidates from one conversation.

        Args:
            messages: Thread rows in chronological order
            account_name: Gym name used in the prompt

        Returns:
            Valid candidates. An empty list when there is nothing to extract or the
            response cannot be parsed; individual malformed items are dropped.
        """
        if not messages:
            return []

        transcript = "\n\n".join(f"[{m.role}]: {m.content}" for m in messages)
        prompt = Prompt.MEMORY_EXTRACTION_USER.format(
            at_account=f" at {account_name}" if account_name else "",
            transcript=transcript,
        )
        raw = await self._ask(Prompt.MEMORY_EXTRACTION_SYSTEM, prompt)

        items = _load_json_list(raw, "extraction")
        if items is None:
            return []

        memories = []
        for item in items:
            try:
                memories.append(ExtractedMemory.model_validate(item))
            except ValidationError as e:
                logger.info("Dropping invalid memory candidate %r: %s", item, e.errors()[0]["msg"])
        logger.debug("Extracted %d memory candidates", len(memories))
        return memories

    async def consolidate(
        self, candidates: list[ExtractedMemory], existing: list[Memory]
    ) -> list[ConsolidatedCandidate]:
        """
        Decide for each candidate whether it is new or extends an existing memory.

        Skips the model call when there is nothing to consolidate against. If the
        response cannot be parsed every candidate is treated as new. An update
        naming an unknown memory, or without merged text, is treated as new.

        Returns:
            One ConsolidatedCandidate per input candidate, in input order
        """
        plain = [ConsolidatedCandidate(**c.model_dump()) for c in candidates]
        if not candidates or not existing:
            return plain

        existing_list = "\n".join(
            "  " + json.dumps({"id": str(m.id), "content": m.content, "category": m.category})
            for m in existing
        )
        candidate_list = "\n".join(
            f"  {i}: {json.dumps(c.content)}" for i, c in enumerate(candidates)
        )
        prompt = Prompt.MEMORY_CONSOLIDATION_USER.format(
            existing=existing_list, candidates=candidate_list
        )
        raw = await self._ask(Prompt.MEMORY_CONSOLIDATION_SYSTEM, prompt)

        items = _load_json_list(raw, "consolidation")
        if items is None:
            return plain

        decisions: dict[int, ConsolidationDecision] = {}
        for item in items:
            try:
                decision = ConsolidationDecision.model_validate(item)
            except ValidationError:
                logger.debug("Ignoring malformed consolidation entry: %r", item)
                continue
            decisions.setdefault(decision.idx, decision)

        known_ids = {str(m.id): m.id for m in existing}
        results = []
        for i, candidate in enumerate(plain):
            decision = decisions.get(i)
            if (
                decision is not None
                and decision.action.lower() == GymConstants.ConsolidationAction.UPDATE
                and decision.target_id in known_ids
                and decision.merged_content
            ):
                candidate = candidate.model_copy(
                    update={
                        "target_memory_id": known_ids[decision.target_id],
                        "merged_content": decision.merged_content,
                    }
                )
            results.append(candidate)
        return results


class MemoryExtractionAgent(MemoryExtractor):
    """Periodic job turning recent conversations into memory suggestions for owner review."""

    @property
    def name(self) -> str:
        return "memory_extraction"

    async def process_thread(self, thread: ConversationThread) -> list[ExtractedMemory]:
        """Extract memory candidates from one thread's conversation."""
        assert thread.id is not None
        messages = self.db.conversations.get_thread(thread.id)
        account = self.db.accounts.get(thread.account_id)
        return await self.extract(messages, account.name if account else None)

    async def process_account(
        self, account_id: str, threads: list[ConversationThread]
    ) -> int:
        """
        Extract, consolidate and queue suggestions for one account.

        Returns:
            Number of new suggestions written
        """
        pairs: list[tuple[ExtractedMemory, ConversationThread]] = []
        for thread in threads:
            pairs.extend((memory, thread) for memory in await self.process_thread(thread))

        written = 0
        if pairs:
            existing = self.db.memories.get_active(account_id, include_member=True)
            consolidated = await self.consolidate([memory for memory, _ in pairs], existing)
            for candidate, (_, thread) in zip(consolidated, pairs, strict=True):
                if self._write_suggestion(account_id, candidate, thread):
                    written += 1

        for thread in threads:
            assert thread.id is not None
            self.db.conversations.mark_memories_extracted(thread.id)

        if written:
            logger.info("Queued %d memory suggestions for %s", written, account_id)
        return written

    def _write_suggestion(
        self, account_id: str, candidate: ConsolidatedCandidate, thread: ConversationThread
    ) -> bool:
        is_update = candidate.action == GymConstants.ConsolidationAction.UPDATE
        member_scoped = candidate.scope == GymConstants.MemoryScope.MEMBER
        content = candidate.merged_content if is_update else candidate.content
        suggestion = self.db.memories.add_suggestion(
            account_id=account_id,
            content=content or candidate.content,
            original_content=candidate.content if is_update else None,
            category=candidate.category,
            scope=candidate.scope,
            importance=candidate.importance,
            evidence=candidate.evidence,
            confidence=candidate.confidence,
            member_id=thread.member_id if member_scoped else None,
            member_name=candidate.member_name or (thread.member_name if member_scoped else None),
            target_memory_id=candidate.target_memory_id if is_update else None,
        )
        return suggestion is not None

    async def execute(self) -> bool:
        """Process every thread with new activity inside the lookback window."""
        lookback = float(self.config.runtime.MEMORY_EXTRACTION_LOOKBACK_HOURS)
        since = datetime.now(UTC) - timedelta(hours=lookback)
        threads = self.db.conversations.get_pending_extraction(since)
        if not threads:
            return False

        by_account: dict[str, list[ConversationThread]] = defaultdict(list)
        for thread in threads:
            by_account[thread.account_id].append(thread)

        written = 0
        for account_id, account_threads in by_account.items():
            written += await self.process_account(account_id, account_threads)
        return written > 0
