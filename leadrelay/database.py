from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, ProgrammingError
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.schema import CreateIndex, CreateTable

from leadrelay.config import settings
from leadrelay.logging_config import get_logger

logger = get_logger("database")

Base = declarative_base()


def build_engine(database_url: str) -> Engine:
    """Create the process-wide engine for the given URL."""
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(database_url, pool_pre_ping=True)


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_schema(bind: Engine) -> None:
    """Create tables and indexes if they do not exist yet.

    Uses CREATE ... IF NOT EXISTS so several workers may run it at the same
    cold start. Postgres can still report a duplicate type when two CREATEs
    interleave; that loser re-runs once and sees the tables in place.
    """
    import leadrelay.models  # noqa: F401

    for attempt in (1, 2):
        try:
            with bind.begin() as conn:
                for table in Base.metadata.sorted_tables:
                    conn.execute(CreateTable(table, if_not_exists=True))
                    for index in table.indexes:
                        conn.execute(CreateIndex(index, if_not_exists=True))
            return
        except (IntegrityError, ProgrammingError) as exc:
            if attempt == 2:
                raise
            logger.warning(
                "Schema creation raced with another worker, retrying",
                extra={"context": {"error": str(exc)}},
            )
