"""Translate database failures into API error codes.

Two steps:

- ``describe_db_error`` reduces a SQLAlchemy ``DBAPIError`` to a ``DatabaseError``
  carrying the SQLSTATE code, constraint name and driver message. PostgreSQL drivers
  expose these directly; SQLite messages are normalised to the same shape.
- ``map_database_error`` resolves any error value to ``{code, message, status}``.
  Rules are checked in a fixed order and the first match wins, because one error
  can match several rules (a unique violation whose message also mentions a quota).
"""

import re
import sqlite3
from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy import UniqueConstraint
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import DatabaseError, ErrorCode, ErrorKind, StoreError
from app.models import Base
from app.models.stop_set import (
    MAX_ITEMS_MARKER,
    MAX_SETS_MARKER,
    SET_ITEM_STOP_UNIQUE_CONSTRAINT,
    SET_NAME_UNIQUE_INDEX,
)

logger = structlog.get_logger(__name__)

UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
CHECK_VIOLATION = "23514"
RAISE_EXCEPTION = "P0001"
INSUFFICIENT_PRIVILEGE = "42501"
NO_ROWS_RETURNED = "PGRST116"

SET_NOT_FOUND_SENTINEL = ErrorCode.SET_NOT_FOUND.value
ITEM_NOT_FOUND_SENTINEL = ErrorCode.ITEM_NOT_FOUND.value

GENERIC_DATABASE_MESSAGE = "An unexpected error occurred"

_SQLITE_INDEX_NAME = re.compile(r"index '([^']+)'")
_SQLITE_CHECK_NAME = re.compile(r"CHECK constraint failed: (\w+)")


@dataclass(frozen=True)
class MappedError:
    """API-facing translation of a database error."""

    code: ErrorCode
    message: str
    status: int


# ==================== Driver Error Extraction ====================


def describe_db_error(exc: DBAPIError) -> DatabaseError:
    """
    Extract SQLSTATE code, constraint name and message from a driver error.

    Args:
        exc: Error raised by SQLAlchemy while talking to the database

    Returns:
        DatabaseError carrying the raw fields
    """
    orig = exc.orig
    message = str(orig) if orig is not None else str(exc)

    if isinstance(orig, sqlite3.Error):
        code, constraint = _describe_sqlite_error(orig, message)
        return DatabaseError(code=code, constraint=constraint, message=message)

    # psycopg exposes sqlstate/diag; SQLAlchemy's asyncpg adapter copies sqlstate
    # onto the wrapper and keeps the asyncpg exception as __cause__
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    diag = getattr(orig, "diag", None)
    constraint = getattr(diag, "constraint_name", None) or getattr(
        getattr(orig, "__cause__", None), "constraint_name", None
    )
    return DatabaseError(code=code, constraint=constraint, message=message)


def _describe_sqlite_error(orig: sqlite3.Error, message: str) -> tuple[str | None, str | None]:
    """Map a SQLite error message onto the matching PostgreSQL SQLSTATE."""
    if message.startswith("UNIQUE constraint failed"):
        return UNIQUE_VIOLATION, _sqlite_unique_constraint_name(message)
    if message.startswith("FOREIGN KEY constraint failed"):
        return FOREIGN_KEY_VIOLATION, None
    if message.startswith("CHECK constraint failed"):
        match = _SQLITE_CHECK_NAME.search(message)
        return CHECK_VIOLATION, match.group(1) if match else None
    if getattr(orig, "sqlite_errorname", None) == "SQLITE_CONSTRAINT_TRIGGER":
        return RAISE_EXCEPTION, None
    return getattr(orig, "sqlite_errorname", None), None


def _sqlite_unique_constraint_name(message: str) -> str | None:
    """
    Resolve the constraint name SQLite omits from UNIQUE failures.

    Expression indexes are reported by name ("index 'x'"); column constraints are
    reported as "table.col, table.col" and looked up in the model metadata.
    """
    if match := _SQLITE_INDEX_NAME.search(message):
        return match.group(1)

    columns = [part.strip() for part in message.split(":", 1)[1].split(",")]
    tables = {column.split(".", 1)[0] for column in columns if "." in column}
    if len(tables) != 1:
        return None
    table = Base.metadata.tables.get(tables.pop())
    if table is None:
        return None

    column_names = {column.split(".", 1)[1] for column in columns}
    for constraint in table.constraints:
        if isinstance(constraint, UniqueConstraint) and {c.name for c in constraint.columns} == column_names:
            return str(constraint.name) if constraint.name else None
    for index in table.indexes:
        if index.unique and {c.name for c in index.columns} == column_names:
            return str(index.name) if index.name else None
    return None


# ==================== Error Mapping ====================


def _raw_fields(error: object) -> tuple[str | None, str | None, str]:
    """Read code, constraint and message from whatever shape the error has."""
    if isinstance(error, str):
        return None, None, error
    if isinstance(error, Mapping):
        return error.get("code"), error.get("constraint"), error.get("message") or ""
    if isinstance(error, StoreError):
        return getattr(error, "code", None), getattr(error, "constraint", None), error.message
    message = getattr(error, "message", None)
    if not isinstance(message, str):
        message = str(error) if isinstance(error, BaseException) else ""
    return getattr(error, "code", None), getattr(error, "constraint", None), message


def map_database_error(error: Any) -> MappedError:  # noqa: ANN401
    """
    Map a database error to an API error code, message and HTTP status.

    Args:
        error: StoreError, mapping or object with code/constraint/message, plain
            string, or any exception

    Returns:
        MappedError with code, user-safe message and HTTP status

    Raises:
        TypeError: If called with None (caller bug, not a database error)
    """
    if error is None:
        msg = "map_database_error() requires an error value, got None"
        raise TypeError(msg)

    kind = error.kind if isinstance(error, StoreError) else None
    code, constraint, message = _raw_fields(error)
    code = str(code) if code is not None else None
    constraint = str(constraint) if constraint is not None else None

    if (
        kind is ErrorKind.SET_NOT_FOUND
        or SET_NOT_FOUND_SENTINEL in (code, message)
        or code == NO_ROWS_RETURNED
    ):
        return MappedError(ErrorCode.SET_NOT_FOUND, "Set not found", 404)

    if code == UNIQUE_VIOLATION and (
        (constraint is not None and "btrim_name_uniq" in constraint) or SET_NAME_UNIQUE_INDEX in message
    ):
        return MappedError(ErrorCode.DUPLICATE_SET_NAME, "A set with this name already exists", 409)

    if MAX_SETS_MARKER in message:
        return MappedError(
            ErrorCode.MAX_SETS_PER_USER_EXCEEDED,
            "Maximum number of sets (6) reached for this user",
            400,
        )

    if code == UNIQUE_VIOLATION and (
        constraint == SET_ITEM_STOP_UNIQUE_CONSTRAINT or SET_ITEM_STOP_UNIQUE_CONSTRAINT in message
    ):
        return MappedError(ErrorCode.SET_ITEM_ALREADY_EXISTS, "This stop is already in the set", 409)

    if MAX_ITEMS_MARKER in message:
        return MappedError(
            ErrorCode.MAX_ITEMS_PER_SET_EXCEEDED,
            "Maximum number of items (6) reached for this set",
            400,
        )

    if kind is ErrorKind.ITEM_NOT_FOUND or ITEM_NOT_FOUND_SENTINEL in (code, message):
        return MappedError(ErrorCode.ITEM_NOT_FOUND, "Item not found", 404)

    # Case-sensitive on purpose: "Permission Denied" falls through to DATABASE_ERROR
    if code == INSUFFICIENT_PRIVILEGE or "permission denied" in message:
        return MappedError(ErrorCode.FORBIDDEN, "Access denied", 403)

    logger.error(
        "unexpected_database_error",
        db_code=code,
        db_constraint=constraint,
        db_message=message,
        error_type=type(error).__name__,
    )
    return MappedError(ErrorCode.DATABASE_ERROR, GENERIC_DATABASE_MESSAGE, 500)


@asynccontextmanager
async def database_errors(db: AsyncSession) -> AsyncGenerator[None]:
    """
    Roll back the session and re-raise driver failures as ``DatabaseError``.

    The original SQLAlchemy exception is chained as ``__cause__``.

    Args:
        db: Session whose transaction is rolled back on failure
    """
    try:
        yield
    except DBAPIError as e:
        await db.rollback()
        raise describe_db_error(e) from e
