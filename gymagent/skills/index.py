"""Skill catalog loading and caching."""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from gymagent.constants import GymConstants

logger = logging.getLogger(__name__)


class SkillMeta(BaseModel):
    """One behavioral playbook parsed from a catalog file."""

    id: str
    applies_when: str = ""
    domain: str = GymConstants.SKILL_DEFAULT_DOMAIN
    triggers: list[str] = Field(default_factory=list)
    body: str
    filename: str


def parse_skill_file(content: str) -> tuple[dict, str]:
    """
    Split a skill file into front matter and body.

    Files without a leading ``---`` block (or with front matter that is not a
    YAML mapping) are returned whole as the body with empty metadata.
    """
    if content.startswith("---"):
        parts = content.split("---", 2)
        if len(parts) >= 3:
            try:
                metadata = yaml.safe_load(parts[1]) or {}
            except yaml.YAMLError as e:
                logger.warning("Malformed skill front matter: %s", e)
                return {}, content
            if isinstance(metadata, dict):
                return metadata, parts[2].strip()
    return {}, content


def _as_trigger_list(value) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [str(item).strip() for item in value if str(item).strip()]


class SkillIndex:
    """
    Cached view of the skill catalog directory.

    The catalog is read on first use and kept until ``invalidate()``. A reload
    builds the new list completely before swapping it in, so readers see either
    the old catalog or the new one, never a partial one.
    """

    def __init__(self, skills_dir: str | Path):
        self.skills_dir = Path(skills_dir)
        self._skills: list[SkillMeta] | None = None
        self._base_layer: str | None = None

    def load(self) -> list[SkillMeta]:
        """Return the indexed skills, reading the catalog if not cached."""
        skills = self._skills
        if skills is None:
            skills = self._read_catalog()
            self._skills = skills
        return skills

    def invalidate(self) -> None:
        """Drop the cached catalog and base layer."""
        self._skills = None
        self._base_layer = None
        logger.info("Skill index invalidated")

    def reload(self) -> list[SkillMeta]:
        self.invalidate()
        return self.load()

    def base_layer(self) -> str:
        """Contents of the global base layer, or an empty string when it is missing."""
        base = self._base_layer
        if base is None:
            path = self.skills_dir / GymConstants.SKILL_BASE_FILENAME
            try:
                base = path.read_text(encoding="utf-8").strip()
            except OSError as e:
                logger.warning("Base layer unavailable at %s: %s", path, e)
                base = ""
            self._base_layer = base
        return base

    def get(self, skill_id: str) -> SkillMeta | None:
        return next((skill for skill in self.load() if skill.id == skill_id), None)

    def get_by_filename(self, filename: str) -> SkillMeta | None:
        return next((skill for skill in self.load() if skill.filename == filename), None)

    def summaries(self) -> str:
        """Markdown overview of every skill (id, when it applies, domain)."""
        return "\n\n".join(
            f"### {skill.id}\n**When:** {skill.applies_when}\n**Domain:** {skill.domain}"
            for skill in self.load()
        )

    def _read_catalog(self) -> list[SkillMeta]:
        if not self.skills_dir.is_dir():
            logger.warning("Skill catalog directory not found: %s", self.skills_dir)
            return []

        skills: list[SkillMeta] = []
        for path in sorted(self.skills_dir.glob("*.md")):
            if path.name == GymConstants.SKILL_BASE_FILENAME:
                continue
            try:
                content = path.read_text(encoding="utf-8")
            except OSError as e:
                logger.warning("Could not read skill file %s: %s", path, e)
                continue
            if not content.strip():
                continue

            metadata, body = parse_skill_file(content)
            skills.append(
                SkillMeta(
                    id=str(metadata.get("id") or path.stem),
                    applies_when=str(metadata.get("applies_when") or ""),
                    domain=str(metadata.get("domain") or GymConstants.SKILL_DEFAULT_DOMAIN),
                    triggers=_as_trigger_list(metadata.get("triggers")),
                    body=body,
                    filename=path.name,
                )
            )

        logger.info("Loaded %d skills from %s", len(skills), self.skills_dir)
        return skills
