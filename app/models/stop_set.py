"""Stop set models: user-owned named collections of transit stops."""

import uuid

from sqlalchemy import (
    DDL,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    event,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel

MAX_SETS_PER_USER = 6
MAX_ITEMS_PER_SET = 6
SET_NAME_MAX_LENGTH = 20

# Constraint names are part of the error contract (see app.helpers.db_errors)
SET_NAME_UNIQUE_INDEX = "sets_user_id_btrim_name_uniq"
SET_ITEM_STOP_UNIQUE_CONSTRAINT = "set_items_set_id_stop_id_uniq"
SET_ITEM_POSITION_UNIQUE_CONSTRAINT = "set_items_set_id_position_uniq"

# Messages raised by the quota triggers
MAX_SETS_MARKER = "MAX_SETS_PER_USER_EXCEEDED"
MAX_ITEMS_MARKER = "MAX_ITEMS_PER_SET_EXCEEDED"


class StopSet(BaseModel):
    """A named collection of up to six stops owned by one user."""

    __tablename__ = "sets"

    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Identity provider subject of the owner",
    )
    name: Mapped[str] = mapped_column(
        String(SET_NAME_MAX_LENGTH),
        nullable=False,
    )

    __table_args__ = (Index("ix_sets_user_id", "user_id"),)

    def __repr__(self) -> str:
        """String representation of the set."""
        return f"<StopSet(id={self.id}, user_id={self.user_id!r}, name={self.name!r})>"


class SetItem(BaseModel):
    """A stop membership within a set, ordered by a store-assigned position."""

    __tablename__ = "set_items"

    set_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("sets.id", ondelete="CASCADE"),
        nullable=False,
    )
    stop_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="External stop identifier (not validated locally)",
    )
    # Assigned by trigger on insert; never supplied by the application
    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        server_default=text("0"),
    )

    __table_args__ = (
        UniqueConstraint("set_id", "stop_id", name=SET_ITEM_STOP_UNIQUE_CONSTRAINT),
        UniqueConstraint("set_id", "position", name=SET_ITEM_POSITION_UNIQUE_CONSTRAINT),
        CheckConstraint("stop_id > 0", name="set_items_stop_id_positive"),
        Index("ix_set_items_set_id", "set_id"),
    )

    def __repr__(self) -> str:
        """String representation of the set item."""
        return f"<SetItem(id={self.id}, set_id={self.set_id}, stop_id={self.stop_id}, position={self.position})>"


# ==================== SQLite schema rules ====================
# PostgreSQL gets the equivalent functions and triggers from the Alembic migration.
# These mirror them for SQLite databases built with metadata.create_all().

_SQLITE_SET_DDL = [
    f"CREATE UNIQUE INDEX {SET_NAME_UNIQUE_INDEX} ON sets (user_id, trim(name))",
    f"""
    CREATE TRIGGER sets_enforce_max_per_user
    BEFORE INSERT ON sets
    WHEN (SELECT COUNT(*) FROM sets WHERE user_id = NEW.user_id) >= {MAX_SETS_PER_USER}
    BEGIN
        SELECT RAISE(ABORT, '{MAX_SETS_MARKER}');
    END
    """,
]

_SQLITE_SET_ITEM_DDL = [
    f"""
    CREATE TRIGGER set_items_enforce_max_per_set
    BEFORE INSERT ON set_items
    WHEN (SELECT COUNT(*) FROM set_items WHERE set_id = NEW.set_id) >= {MAX_ITEMS_PER_SET}
    BEGIN
        SELECT RAISE(ABORT, '{MAX_ITEMS_MARKER}');
    END
    """,
    """
    CREATE TRIGGER set_items_assign_position
    AFTER INSERT ON set_items
    BEGIN
        UPDATE set_items
        SET position = (
            SELECT COALESCE(MAX(position), 0) + 1 FROM set_items
            WHERE set_id = NEW.set_id AND id != NEW.id
        )
        WHERE id = NEW.id;
    END
    """,
    # Two-step shift through negative values keeps (set_id, position) unique mid-update
    """
    CREATE TRIGGER set_items_compact_positions
    AFTER DELETE ON set_items
    BEGIN
        UPDATE set_items SET position = -position
        WHERE set_id = OLD.set_id AND position > OLD.position;
        UPDATE set_items SET position = -position - 1
        WHERE set_id = OLD.set_id AND position < 0;
    END
    """,
]

for _statement in _SQLITE_SET_DDL:
    event.listen(StopSet.__table__, "after_create", DDL(_statement).execute_if(dialect="sqlite"))

for _statement in _SQLITE_SET_ITEM_DDL:
    event.listen(SetItem.__table__, "after_create", DDL(_statement).execute_if(dialect="sqlite"))
