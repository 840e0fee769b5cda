"""Skill catalog, selection and prompt composition."""

from gymagent.skills.composer import PromptComposer, compose_prompt
from gymagent.skills.index import SkillIndex, SkillMeta
from gymagent.skills.matcher import KeywordSkillMatcher, SkillMatcher, score, select_skills

__all__ = [
    "KeywordSkillMatcher",
    "PromptComposer",
    "SkillIndex",
    "SkillMatcher",
    "SkillMeta",
    "compose_prompt",
    "score",
    "select_skills",
]
