from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from music_upload.settings import settings

# Seconds a SQLite writer waits for a concurrent attempt's lock before failing.
SQLITE_BUSY_TIMEOUT = 30


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str) -> AsyncEngine:
    """Create the async engine; SQLite gets a busy timeout and enforced foreign keys."""
    if not database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=False, pool_pre_ping=True)

    sqlite_engine = create_async_engine(
        database_url,
        echo=False,
        connect_args={"timeout": SQLITE_BUSY_TIMEOUT},
    )
    event.listen(sqlite_engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return sqlite_engine


engine: AsyncEngine = build_engine(settings.database_url)
