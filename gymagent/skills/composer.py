"""Layered prompt composition for evaluation and drafting calls."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING

from gymagent.constants import GymConstants
from gymagent.prompts import Prompt
from gymagent.skills.matcher import select_skills

if TYPE_CHECKING:
    from gymagent.config import Config
    from gymagent.database import Database
    from gymagent.skills.index import SkillIndex, SkillMeta

logger = logging.getLogger(__name__)


def _customization_block(notes: str) -> str:
    return f"{Prompt.CUSTOMIZATION_HEADER}\n{notes.strip()}"


def compose_prompt(
    base_layer: str,
    skills: list[SkillMeta],
    customization: str | Mapping[str, str] | None = None,
    memories: str | None = None,
) -> str:
    """
    Join prompt layers in a fixed order: base, skills, memories.

    Owner notes are attached to the skill layer. A plain string attaches to the
    first skill; a mapping attaches each skill's own notes after its body.
    Empty layers are left out entirely, so no divider is ever doubled or left
    dangling at either end.

    Args:
        base_layer: Global identity and tone rules
        skills: Selected skills, best first
        customization: Owner notes for the selected skill(s)
        memories: Rendered memory section

    Returns:
        The composed prompt text
    """
    if isinstance(customization, Mapping):
        notes_by_skill = {skill_id: notes for skill_id, notes in customization.items() if notes}
        loose_notes = None
    else:
        notes_by_skill = {}
        loose_notes = customization if customization and customization.strip() else None

    skill_parts: list[str] = []
    for position, skill in enumerate(skills):
        notes = notes_by_skill.get(skill.id)
        if position == 0 and loose_notes:
            notes = loose_notes
            loose_notes = None
        pieces = [skill.body.strip()]
        if notes:
            pieces.append(_customization_block(notes))
        part = "\n\n".join(piece for piece in pieces if piece)
        if part:
            skill_parts.append(part)
    if loose_notes:
        skill_parts.append(_customization_block(loose_notes))

    layers = [
        base_layer.strip() if base_layer else "",
        GymConstants.LAYER_DIVIDER.join(skill_parts),
        memories.strip() if memories else "",
    ]
    return GymConstants.LAYER_DIVIDER.join(layer for layer in layers if layer)


class PromptComposer:
    """
    Builds the system prompt for one model call.

    Skills come from the shared index; customizations and memories are read
    from the database on every build so owner edits apply to the next turn.
    """

    def __init__(self, index: SkillIndex, db: Database, config: Config):
        self.index = index
        self.db = db
        self.config = config

    def _load_customizations(self, account_id: str, skills: list[SkillMeta]) -> dict[str, str]:
        try:
            stored = self.db.customizations.list_for_account(account_id)
        except Exception as e:
            logger.warning("Could not load customizations for %s: %s", account_id, e)
            return {}
        return {skill.id: stored[skill.id] for skill in skills if skill.id in stored}

    def _load_memories(self, account_id: str, member_id: str | None) -> str:
        try:
            return self.db.memories.get_for_prompt(
                account_id,
                member_id=member_id,
                min_importance=int(self.config.runtime.MEMORY_PROMPT_MIN_IMPORTANCE),
            )
        except Exception as e:
            logger.warning("Could not load memories for %s: %s", account_id, e)
            return ""

    def compose(
        self,
        account_id: str,
        description: str,
        task_type: str | None = None,
        member_id: str | None = None,
    ) -> str:
        """Compose the layered context for a task, without task instructions."""
        skills = select_skills(
            self.index,
            description,
            explicit_type=task_type,
            max_skills=int(self.config.runtime.SKILL_MAX_MATCHES),
        )
        logger.debug("Selected skills for %r: %s", description[:60], [s.id for s in skills])
        return compose_prompt(
            self.index.base_layer(),
            skills,
            customization=self._load_customizations(account_id, skills),
            memories=self._load_memories(account_id, member_id),
        )

    def build_evaluation_prompt(
        self,
        account_id: str,
        description: str,
        task_type: str | None = None,
        member_id: str | None = None,
    ) -> str:
        """System prompt for deciding the next action on an inbound reply."""
        context = self.compose(account_id, description, task_type, member_id)
        return GymConstants.LAYER_DIVIDER.join(
            part for part in (context, Prompt.EVALUATION_TASK) if part
        )

    def build_drafting_prompt(
        self,
        account_id: str,
        description: str,
        task_type: str | None = None,
        member_id: str | None = None,
    ) -> str:
        """System prompt for drafting the first outreach message of a thread."""
        context = self.compose(account_id, description, task_type, member_id)
        return GymConstants.LAYER_DIVIDER.join(
            part for part in (context, Prompt.DRAFTING_TASK) if part
        )
