import logging

from sqlalchemy import event
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session

import config

logger = logging.getLogger(__name__)

DATABASE_URL = config.DATABASE_URL

if config.DEMO_MODE:
    # Demo mode: everything lives in memory for the lifetime of the process
    DATABASE_URL = "sqlite://"
elif not DATABASE_URL:
    logger.warning("DATABASE_URL not set, falling back to local SQLite file pos.db")
    DATABASE_URL = "sqlite:///./pos.db"


def enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE rules unless this pragma is set per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str):
    if url.startswith("sqlite"):
        # check_same_thread=False is needed only for SQLite
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, **kwargs)
        event.listen(engine, "connect", enable_sqlite_foreign_keys)
        return engine
    return create_engine(url, pool_pre_ping=True)


engine = build_engine(DATABASE_URL)


def create_db_and_tables():
    # Import registers every table on SQLModel.metadata
    from database import models  # noqa: F401
    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session
