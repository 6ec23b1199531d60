"""Tests for database error extraction and mapping."""

import sqlite3
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from app.core.errors import DatabaseError, ErrorCode, ItemNotFoundError, SetNotFoundError
from app.helpers.db_errors import (
    GENERIC_DATABASE_MESSAGE,
    database_errors,
    describe_db_error,
    map_database_error,
)
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession


class FakePgError(Exception):
    """Shape of a psycopg error: SQLSTATE plus diagnostics."""

    def __init__(self, message: str, sqlstate: str, constraint_name: str | None = None) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate
        self.diag = SimpleNamespace(constraint_name=constraint_name)


def _integrity_error(orig: Exception) -> IntegrityError:
    return IntegrityError("INSERT INTO sets ...", {}, orig)


class TestMapDatabaseError:
    """Tests for map_database_error resolution rules."""

    def test_duplicate_set_name_by_constraint(self) -> None:
        """Test unique violation on the name index maps to DUPLICATE_SET_NAME."""
        mapped = map_database_error({"code": "23505", "constraint": "sets_user_id_btrim_name_uniq"})

        assert mapped.code == ErrorCode.DUPLICATE_SET_NAME
        assert mapped.status == 409
        assert mapped.message == "A set with this name already exists"

    def test_duplicate_set_name_by_message(self) -> None:
        """Test the name index is also recognised in the driver message."""
        mapped = map_database_error(
            {
                "code": "23505",
                "message": 'duplicate key value violates unique constraint "sets_user_id_btrim_name_uniq"',
            }
        )

        assert mapped.code == ErrorCode.DUPLICATE_SET_NAME

    def test_permission_code_maps_to_forbidden(self) -> None:
        """Test insufficient privilege maps to FORBIDDEN."""
        mapped = map_database_error({"code": "42501"})

        assert mapped.code == ErrorCode.FORBIDDEN
        assert mapped.status == 403
        assert mapped.message == "Access denied"

    def test_empty_mapping_maps_to_database_error(self) -> None:
        """Test an error with no recognisable fields falls through to DATABASE_ERROR."""
        mapped = map_database_error({})

        assert mapped.code == ErrorCode.DATABASE_ERROR
        assert mapped.status == 500

    @pytest.mark.parametrize(
        "error",
        [
            SetNotFoundError(),
            {"code": "SET_NOT_FOUND"},
            {"message": "SET_NOT_FOUND"},
            "SET_NOT_FOUND",
            {"code": "PGRST116", "message": "JSON object requested, multiple (or no) rows returned"},
        ],
    )
    def test_set_not_found_variants(self, error: Any) -> None:  # noqa: ANN401
        """Test every set-not-found signal maps to SET_NOT_FOUND/404."""
        mapped = map_database_error(error)

        assert mapped.code == ErrorCode.SET_NOT_FOUND
        assert mapped.status == 404
        assert mapped.message == "Set not found"

    def test_max_sets_marker(self) -> None:
        """Test the set quota trigger message maps to MAX_SETS_PER_USER_EXCEEDED."""
        mapped = map_database_error({"code": "P0001", "message": "MAX_SETS_PER_USER_EXCEEDED"})

        assert mapped.code == ErrorCode.MAX_SETS_PER_USER_EXCEEDED
        assert mapped.status == 400
        assert mapped.message == "Maximum number of sets (6) reached for this user"

    def test_duplicate_item_by_constraint(self) -> None:
        """Test unique violation on (set_id, stop_id) maps to SET_ITEM_ALREADY_EXISTS."""
        mapped = map_database_error({"code": "23505", "constraint": "set_items_set_id_stop_id_uniq"})

        assert mapped.code == ErrorCode.SET_ITEM_ALREADY_EXISTS
        assert mapped.status == 409

    def test_duplicate_item_by_message(self) -> None:
        """Test the item constraint is also recognised in the message."""
        mapped = map_database_error(
            {"code": "23505", "message": 'violates unique constraint "set_items_set_id_stop_id_uniq"'}
        )

        assert mapped.code == ErrorCode.SET_ITEM_ALREADY_EXISTS

    def test_other_unique_violation_is_database_error(self) -> None:
        """Test a unique violation on an unrelated constraint is not treated as a domain conflict."""
        mapped = map_database_error({"code": "23505", "constraint": "set_items_set_id_position_uniq"})

        assert mapped.code == ErrorCode.DATABASE_ERROR

    def test_max_items_marker(self) -> None:
        """Test the item quota trigger message maps to MAX_ITEMS_PER_SET_EXCEEDED."""
        mapped = map_database_error(DatabaseError(code="P0001", constraint=None, message="MAX_ITEMS_PER_SET_EXCEEDED"))

        assert mapped.code == ErrorCode.MAX_ITEMS_PER_SET_EXCEEDED
        assert mapped.status == 400
        assert mapped.message == "Maximum number of items (6) reached for this set"

    @pytest.mark.parametrize("error", [ItemNotFoundError(), {"code": "ITEM_NOT_FOUND"}, "ITEM_NOT_FOUND"])
    def test_item_not_found_variants(self, error: Any) -> None:  # noqa: ANN401
        """Test item-not-found signals map to ITEM_NOT_FOUND/404."""
        mapped = map_database_error(error)

        assert mapped.code == ErrorCode.ITEM_NOT_FOUND
        assert mapped.status == 404
        assert mapped.message == "Item not found"

    def test_permission_denied_message_is_case_sensitive(self) -> None:
        """Test only the lowercase phrase maps to FORBIDDEN."""
        assert map_database_error("permission denied for table sets").code == ErrorCode.FORBIDDEN
        assert map_database_error("Permission Denied").code == ErrorCode.DATABASE_ERROR

    def test_object_with_attributes(self) -> None:
        """Test arbitrary objects exposing code/constraint/message are understood."""
        error = SimpleNamespace(code="42501", constraint=None, message="no access")

        assert map_database_error(error).code == ErrorCode.FORBIDDEN

    def test_generic_exception_is_logged_and_hidden(self) -> None:
        """Test unmapped errors are logged server-side and never echoed."""
        with patch("app.helpers.db_errors.logger") as mock_logger:
            mapped = map_database_error(RuntimeError("connection reset by peer at 10.0.0.5"))

        assert mapped.code == ErrorCode.DATABASE_ERROR
        assert mapped.message == GENERIC_DATABASE_MESSAGE
        assert "10.0.0.5" not in mapped.message
        mock_logger.error.assert_called_once()
        assert mock_logger.error.call_args[0][0] == "unexpected_database_error"
        assert "10.0.0.5" in mock_logger.error.call_args[1]["db_message"]

    def test_none_is_a_caller_error(self) -> None:
        """Test None is rejected instead of being treated as a database error."""
        with pytest.raises(TypeError):
            map_database_error(None)

    # ==================== Rule Ordering ====================

    def test_duplicate_name_wins_over_quota_marker(self) -> None:
        """Test rule 2 is checked before rule 3 when both match."""
        mapped = map_database_error(
            {
                "code": "23505",
                "constraint": "sets_user_id_btrim_name_uniq",
                "message": "MAX_SETS_PER_USER_EXCEEDED",
            }
        )

        assert mapped.code == ErrorCode.DUPLICATE_SET_NAME

    def test_set_not_found_wins_over_item_not_found(self) -> None:
        """Test the set sentinel is checked before the item sentinel."""
        mapped = map_database_error({"code": "SET_NOT_FOUND", "message": "ITEM_NOT_FOUND"})

        assert mapped.code == ErrorCode.SET_NOT_FOUND

    def test_set_quota_wins_over_duplicate_item(self) -> None:
        """Test rule 3 is checked before rule 4 when both match."""
        mapped = map_database_error(
            {
                "code": "23505",
                "constraint": "set_items_set_id_stop_id_uniq",
                "message": "MAX_SETS_PER_USER_EXCEEDED",
            }
        )

        assert mapped.code == ErrorCode.MAX_SETS_PER_USER_EXCEEDED


class TestDescribeDbError:
    """Tests for describe_db_error."""

    def test_sqlite_expression_index_violation(self) -> None:
        """Test SQLite reports expression indexes by name."""
        error = _integrity_error(sqlite3.IntegrityError("UNIQUE constraint failed: index 'sets_user_id_btrim_name_uniq'"))

        described = describe_db_error(error)

        assert described.code == "23505"
        assert described.constraint == "sets_user_id_btrim_name_uniq"

    def test_sqlite_column_unique_violation_resolves_constraint_name(self) -> None:
        """Test column lists are resolved to the named constraint through model metadata."""
        error = _integrity_error(
            sqlite3.IntegrityError("UNIQUE constraint failed: set_items.set_id, set_items.stop_id")
        )

        described = describe_db_error(error)

        assert described.code == "23505"
        assert described.constraint == "set_items_set_id_stop_id_uniq"

    def test_sqlite_unknown_table_has_no_constraint(self) -> None:
        """Test an unknown table leaves the constraint unresolved."""
        error = _integrity_error(sqlite3.IntegrityError("UNIQUE constraint failed: other.col"))

        described = describe_db_error(error)

        assert described.code == "23505"
        assert described.constraint is None

    def test_sqlite_check_violation(self) -> None:
        """Test named CHECK constraints are extracted."""
        error = _integrity_error(sqlite3.IntegrityError("CHECK constraint failed: set_items_stop_id_positive"))

        described = describe_db_error(error)

        assert described.code == "23514"
        assert described.constraint == "set_items_stop_id_positive"

    def test_sqlite_foreign_key_violation(self) -> None:
        """Test foreign key failures map to SQLSTATE 23503."""
        error = _integrity_error(sqlite3.IntegrityError("FOREIGN KEY constraint failed"))

        described = describe_db_error(error)

        assert described.code == "23503"
        assert described.constraint is None
        assert described.message == "FOREIGN KEY constraint failed"

    def test_postgres_error_fields(self) -> None:
        """Test SQLSTATE and constraint name are read from psycopg-style errors."""
        orig = FakePgError(
            'duplicate key value violates unique constraint "set_items_set_id_stop_id_uniq"',
            sqlstate="23505",
            constraint_name="set_items_set_id_stop_id_uniq",
        )

        described = describe_db_error(_integrity_error(orig))

        assert described.code == "23505"
        assert described.constraint == "set_items_set_id_stop_id_uniq"
        assert "duplicate key" in described.message
        assert map_database_error(described).code == ErrorCode.SET_ITEM_ALREADY_EXISTS

    def test_postgres_trigger_exception(self) -> None:
        """Test a raised trigger exception keeps its marker message."""
        orig = FakePgError("MAX_ITEMS_PER_SET_EXCEEDED", sqlstate="P0001")

        described = describe_db_error(_integrity_error(orig))

        assert described.code == "P0001"
        assert map_database_error(described).code == ErrorCode.MAX_ITEMS_PER_SET_EXCEEDED


class TestDatabaseErrorsContext:
    """Tests for the database_errors context manager."""

    @pytest.mark.asyncio
    async def test_rolls_back_and_raises_database_error(self) -> None:
        """Test driver errors become DatabaseError after rolling back."""
        db = MagicMock(spec=AsyncSession)
        db.rollback = AsyncMock()
        original = OperationalError("SELECT 1", {}, sqlite3.OperationalError("database is locked"))

        with pytest.raises(DatabaseError) as exc_info:
            async with database_errors(db):
                raise original

        db.rollback.assert_awaited_once()
        assert exc_info.value.__cause__ is original
        assert exc_info.value.message == "database is locked"

    @pytest.mark.asyncio
    async def test_other_exceptions_pass_through(self) -> None:
        """Test non-database errors are not translated or rolled back."""
        db = MagicMock(spec=AsyncSession)
        db.rollback = AsyncMock()

        with pytest.raises(ValueError, match="bad"):
            async with database_errors(db):
                raise ValueError("bad")

        db.rollback.assert_not_awaited()
