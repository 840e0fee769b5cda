"""Skill selection: keyword scoring plus the legacy task-type fallback."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from gymagent.constants import GymConstants

if TYPE_CHECKING:
    from gymagent.skills.index import SkillIndex, SkillMeta

logger = logging.getLogger(__name__)


def _words(text: str) -> list[str]:
    return [w for w in text.lower().split() if len(w) >= GymConstants.SKILL_MIN_WORD_LENGTH]


def score(description: str, skill: SkillMeta) -> int:
    """
    Relevance of ``skill`` to a free-text task description.

    +10 for every trigger phrase found in the description, +1 for every
    ``applies_when`` word (longer than three characters) that is also a word of
    the description, and +3 when the skill's domain appears in the description.
    """
    text = description.lower()
    description_words = set(_words(description))

    total = 0
    for trigger in skill.triggers:
        if trigger.lower() in text:
            total += GymConstants.SKILL_TRIGGER_WEIGHT
    for word in _words(skill.applies_when):
        if word in description_words:
            total += GymConstants.SKILL_APPLIES_WHEN_WEIGHT
    if skill.domain and skill.domain.lower() in text:
        total += GymConstants.SKILL_DOMAIN_BONUS
    return total


class SkillMatcher(Protocol):
    """Strategy that scores a skill against a task description."""

    def score(self, description: str, skill: SkillMeta) -> int: ...


class KeywordSkillMatcher:
    """Trigger, word-overlap and domain scoring."""

    def score(self, description: str, skill: SkillMeta) -> int:
        return score(description, skill)


def select_skills(
    index: SkillIndex,
    description: str,
    explicit_type: str | None = None,
    max_skills: int = GymConstants.SKILL_MAX_MATCHES,
    matcher: SkillMatcher | None = None,
) -> list[SkillMeta]:
    """
    Pick the skills that best fit a task description.

    Args:
        index: Skill catalog to search
        description: Free-text goal or context of the task
        explicit_type: Legacy task type, used only when nothing scores
        max_skills: Maximum number of skills returned
        matcher: Scoring strategy (keyword scoring by default)

    Returns:
        Up to ``max_skills`` skills with a positive score, best first. When none
        score, the skill mapped from ``explicit_type``; otherwise an empty list.
    """
    skills = index.load()
    if not skills:
        return []

    matcher = matcher or KeywordSkillMatcher()
    scored = [(matcher.score(description, skill), skill) for skill in skills]
    ranked = sorted((pair for pair in scored if pair[0] > 0), key=lambda pair: -pair[0])
    matches = [skill for _, skill in ranked[:max_skills]]

    if not matches and explicit_type:
        filename = GymConstants.TASK_TYPE_TO_SKILL.get(explicit_type)
        fallback = index.get_by_filename(filename) if filename else None
        if fallback is not None:
            logger.debug("No skill matched, using %s for task type %s", fallback.id, explicit_type)
            return [fallback]
        logger.info("Unknown task type %r, composing with base layer only", explicit_type)

    return matches
