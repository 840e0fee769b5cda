"""Account store: gym accounts, their timezone and automation level."""

import logging

from sqlmodel import Session

from gymagent.constants import GymConstants
from gymagent.database.models import Account
from gymagent.datetime_utils import is_valid_timezone

logger = logging.getLogger(__name__)


class AccountStore:
    """Manages Account records."""

    def __init__(self, engine):
        self.engine = engine

    def _session(self) -> Session:
        return Session(self.engine)

    def get(self, account_id: str) -> Account | None:
        with self._session() as session:
            return session.get(Account, account_id)

    def upsert(
        self,
        account_id: str,
        name: str,
        timezone: str | None = None,
        automation_level: str = GymConstants.AutomationLevel.DRAFT_ONLY,
    ) -> Account:
        """Create an account or update its name, timezone and automation level."""
        level = GymConstants.AutomationLevel(automation_level)
        with self._session() as session:
            account = session.get(Account, account_id)
            if account is None:
                account = Account(id=account_id, name=name)
            account.name = name
            account.timezone = timezone
            account.automation_level = level.value
            session.add(account)
            session.commit()
            session.refresh(account)
            logger.debug("Saved account %s (tz=%s, level=%s)", account_id, timezone, level)
            return account

    def get_timezone(self, account_id: str) -> str:
        """Account timezone, or the default zone when unset or unrecognized."""
        account = self.get(account_id)
        if account and is_valid_timezone(account.timezone):
            return account.timezone  # type: ignore[return-value]
        return GymConstants.DEFAULT_TIMEZONE

    def get_automation_level(self, account_id: str) -> GymConstants.AutomationLevel:
        """Account automation level. Unknown accounts and values are treated as draft-only."""
        account = self.get(account_id)
        if account is None:
            return GymConstants.AutomationLevel.DRAFT_ONLY
        try:
            return GymConstants.AutomationLevel(account.automation_level)
        except ValueError:
            logger.warning(
                "Unknown automation level %r for account %s, using draft_only",
                account.automation_level,
                account_id,
            )
            return GymConstants.AutomationLevel.DRAFT_ONLY
