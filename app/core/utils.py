"""Core utility functions."""

# Async driver -> sync driver used by Alembic
_SYNC_DRIVERS = {
    "+asyncpg": "+psycopg",
    "+aiosqlite": "",
}


def convert_async_db_url_to_sync(database_url: str) -> str:
    """
    Convert an async database URL to a sync database URL.

    postgresql+asyncpg:// becomes postgresql+psycopg:// (psycopg3) and
    sqlite+aiosqlite:// becomes sqlite:// (stdlib sqlite3 driver). Only the
    scheme is touched, so empty hosts (``sqlite:///./dev.db``) survive.

    Args:
        database_url: The async database URL (e.g., postgresql+asyncpg://...)

    Returns:
        The sync database URL (e.g., postgresql+psycopg://...)
    """
    scheme, separator, rest = database_url.partition("://")
    for async_driver, sync_driver in _SYNC_DRIVERS.items():
        if async_driver in scheme:
            return scheme.replace(async_driver, sync_driver) + separator + rest
    return database_url
