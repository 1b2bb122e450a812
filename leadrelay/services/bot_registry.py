from sqlalchemy import insert as generic_insert
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from leadrelay.logging_config import get_logger
from leadrelay.models import Bot
from leadrelay.services.errors import StoreError

logger = get_logger("bot_registry")


def _insert_ignoring_duplicates(db: Session, values: dict):
    """INSERT ... ON CONFLICT (instance_name) DO NOTHING for the bound dialect."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(Bot).values(**values)
    elif dialect == "sqlite":
        stmt = sqlite.insert(Bot).values(**values)
    else:
        # No portable upsert: the unique constraint still rejects the loser,
        # which then re-reads below.
        return generic_insert(Bot).values(**values)
    return stmt.on_conflict_do_nothing(index_elements=["instance_name"])


class BotRegistry:
    """Maps an Evolution instance name to its Bot row, creating it on first contact."""

    def __init__(self, session_factory: sessionmaker, default_model: str):
        self.session_factory = session_factory
        self.default_model = default_model

    def _get(self, db: Session, instance_name: str) -> Bot | None:
        return db.execute(select(Bot).where(Bot.instance_name == instance_name)).scalar_one_or_none()

    def resolve(self, instance_name: str) -> Bot:
        """Return the Bot for instance_name, creating it if absent.

        Creation relies on the unique constraint rather than check-then-insert,
        so two first messages racing for the same instance both end up with
        the single winning row.

        Raises:
            StoreError: the database is unreachable
        """
        if not instance_name:
            raise ValueError("instance_name must be a non-empty string")

        db = self.session_factory()
        try:
            bot = self._get(db, instance_name)
            if bot is None:
                stmt = _insert_ignoring_duplicates(
                    db,
                    {"instance_name": instance_name, "model": self.default_model, "context_json": {}},
                )
                try:
                    result = db.execute(stmt)
                    db.commit()
                except SQLAlchemyError as exc:
                    db.rollback()
                    logger.info(
                        "Bot insert lost a race, re-reading",
                        extra={"context": {"instance": instance_name, "error": str(exc)}},
                    )
                    result = None
                if result is not None and result.rowcount:
                    logger.info("Created bot for new instance", extra={"context": {"instance": instance_name}})
                bot = self._get(db, instance_name)
            if bot is None:
                raise StoreError(f"bot for instance '{instance_name}' could not be created")
            db.expunge(bot)
            return bot
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreError(f"bot registry unavailable: {exc}") from exc
        finally:
            db.close()
