"""SQLite schema management (code-first approach)."""

import logging

from src.core.config import Constants


logger = logging.getLogger(__name__)


# Millisecond-precision UTC timestamps keep created_at ordering stable for quick successive inserts
_NOW_SQL = "(strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))"


TABLE_SCHEMAS: dict[str, str] = {
    Constants.USERS_COLLECTION: f"""CREATE TABLE IF NOT EXISTS {Constants.USERS_COLLECTION} (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created_at TEXT NOT NULL DEFAULT {_NOW_SQL},
        email TEXT NOT NULL UNIQUE,
        password_hash TEXT NOT NULL
    )""",
    Constants.TASKS_COLLECTION: f"""CREATE TABLE IF NOT EXISTS {Constants.TASKS_COLLECTION} (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created_at TEXT NOT NULL DEFAULT {_NOW_SQL},
        title TEXT NOT NULL CHECK (length(trim(title)) > 0),
        done INTEGER NOT NULL DEFAULT 0 CHECK (done IN (0, 1)),
        type TEXT CHECK (type IS NULL OR type IN ('lightning', 'cloud', 'question')),
        user_id INTEGER NOT NULL REFERENCES {Constants.USERS_COLLECTION}(id) ON DELETE CASCADE
    )""",
}

INDEXES: list[str] = [
    f"CREATE INDEX IF NOT EXISTS idx_tasks_user_created ON {Constants.TASKS_COLLECTION} (user_id, created_at DESC)",
]

# Column types the db client converts when reading rows back
BOOLEAN_COLUMNS: dict[str, set[str]] = {
    Constants.TASKS_COLLECTION: {"done"},
}


async def init_db(*, db_path: str | None = None) -> None:
    """Create all tables and indexes if they do not exist yet."""
    from src.core.db_client import get_connection  # noqa: PLC0415 - db_client imports this module

    conn = await get_connection(db_path=db_path)

    for table_name, ddl in TABLE_SCHEMAS.items():
        await conn.execute(ddl)
        logger.info("Ensured table", extra={"table": table_name})

    for index in INDEXES:
        await conn.execute(index)

    await conn.commit()
    logger.info("Schema initialized", extra={"tables": list(TABLE_SCHEMAS)})
