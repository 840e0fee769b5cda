"""Customization store: per-account owner notes for individual skills."""

import logging
from datetime import UTC, datetime

from sqlmodel import Session, select

from gymagent.database.models import SkillCustomization

logger = logging.getLogger(__name__)


class CustomizationStore:
    """Manages SkillCustomization records, at most one per (account, skill)."""

    def __init__(self, engine):
        self.engine = engine

    def _session(self) -> Session:
        return Session(self.engine)

    def _find(self, session: Session, account_id: str, skill_id: str) -> SkillCustomization | None:
        return session.exec(
            select(SkillCustomization).where(
                SkillCustomization.account_id == account_id,
                SkillCustomization.skill_id == skill_id,
            )
        ).first()

    def get(self, account_id: str, skill_id: str) -> str | None:
        """Notes for one skill, or None if the owner has not customized it."""
        with self._session() as session:
            row = self._find(session, account_id, skill_id)
            return row.notes if row else None

    def list_for_account(self, account_id: str) -> dict[str, str]:
        """All customizations for an account, keyed by skill id."""
        with self._session() as session:
            rows = session.exec(
                select(SkillCustomization).where(SkillCustomization.account_id == account_id)
            ).all()
            return {row.skill_id: row.notes for row in rows}

    def upsert(self, account_id: str, skill_id: str, notes: str) -> SkillCustomization:
        """Create or replace the notes for a skill."""
        with self._session() as session:
            row = self._find(session, account_id, skill_id)
            if row is None:
                row = SkillCustomization(account_id=account_id, skill_id=skill_id, notes=notes)
            else:
                row.notes = notes
                row.updated_at = datetime.now(UTC)
            session.add(row)
            session.commit()
            session.refresh(row)
            logger.info("Saved customization for %s/%s", account_id, skill_id)
            return row

    def delete(self, account_id: str, skill_id: str) -> bool:
        """Remove a customization. Returns True if one existed."""
        with self._session() as session:
            row = self._find(session, account_id, skill_id)
            if row is None:
                return False
            session.delete(row)
            session.commit()
            logger.info("Deleted customization for %s/%s", account_id, skill_id)
            return True
