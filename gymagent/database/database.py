"""SQLite engine and the stores built on it."""

import json
import logging
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, create_engine

from gymagent.database.account_store import AccountStore
from gymagent.database.conversation_store import ConversationStore
from gymagent.database.customization_store import CustomizationStore
from gymagent.database.memory_store import MemoryStore
from gymagent.database.models import PromptLog, RuntimeConfig
from gymagent.database.outbox_store import OutboxStore

logger = logging.getLogger(__name__)


class Database:
    """One SQLite file shared by every store.

    Domain reads and writes go through the stores (``accounts``,
    ``conversations``, ``customizations``, ``memories``, ``outbox``). The
    prompt log and runtime config overrides live here.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.engine = create_engine(f"sqlite:///{db_path}")

        self.accounts = AccountStore(self.engine)
        self.conversations = ConversationStore(self.engine)
        self.customizations = CustomizationStore(self.engine)
        self.memories = MemoryStore(self.engine)
        self.outbox = OutboxStore(self.engine)
        logger.info("Opened database %s", db_path)

    def create_tables(self) -> None:
        SQLModel.metadata.create_all(self.engine)

    def get_session(self) -> Session:
        return Session(self.engine)

    def log_prompt(
        self,
        model: str,
        messages: list[dict],
        response: dict,
        thinking: str | None = None,
        duration_ms: int | None = None,
    ) -> None:
        """Store one model exchange. A failed write is logged, never raised."""
        entry = PromptLog(
            model=model,
            messages=json.dumps(messages),
            response=json.dumps(response),
            thinking=thinking,
            duration_ms=duration_ms,
        )
        try:
            with self.get_session() as session:
                session.add(entry)
                session.commit()
        except SQLAlchemyError as e:
            logger.error("Could not write prompt log entry: %s", e)

    def get_runtime_config(self, key: str) -> str | None:
        with self.get_session() as session:
            row = session.get(RuntimeConfig, key)
            return None if row is None else row.value

    def set_runtime_config(self, key: str, value: str, description: str) -> None:
        """Store (or replace) the override for a runtime parameter."""
        with self.get_session() as session:
            row = session.get(RuntimeConfig, key) or RuntimeConfig(
                key=key, value=value, description=description
            )
            row.value = value
            session.add(row)
            session.commit()
        logger.info("Runtime config %s = %s", key, value)
