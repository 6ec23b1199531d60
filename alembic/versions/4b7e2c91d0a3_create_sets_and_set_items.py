"""create_sets_and_set_items

Revision ID: 4b7e2c91d0a3
Revises:
Create Date: 2026-10-19 10:12:44.318207

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "4b7e2c91d0a3"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "sets",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False, comment="Identity provider subject of the owner"),
        sa.Column("name", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sets_user_id", "sets", ["user_id"], unique=False)
    # Names are unique per owner after trimming
    op.execute("CREATE UNIQUE INDEX sets_user_id_btrim_name_uniq ON sets (user_id, btrim(name))")

    op.create_table(
        "set_items",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("set_id", sa.Uuid(), nullable=False),
        sa.Column("stop_id", sa.Integer(), nullable=False, comment="External stop identifier (not validated locally)"),
        sa.Column("position", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("stop_id > 0", name="set_items_stop_id_positive"),
        sa.ForeignKeyConstraint(["set_id"], ["sets.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("set_id", "stop_id", name="set_items_set_id_stop_id_uniq"),
        sa.UniqueConstraint("set_id", "position", name="set_items_set_id_position_uniq"),
    )
    op.create_index("ix_set_items_set_id", "set_items", ["set_id"], unique=False)

    # Quota: at most 6 sets per user. The advisory lock serialises concurrent
    # inserts for the same user so the count cannot be raced.
    op.execute(
        """
        CREATE FUNCTION sets_enforce_max_per_user() RETURNS trigger
        LANGUAGE plpgsql AS $$
        BEGIN
            PERFORM pg_advisory_xact_lock(hashtext('sets:' || NEW.user_id));
            IF (SELECT COUNT(*) FROM sets WHERE user_id = NEW.user_id) >= 6 THEN
                RAISE EXCEPTION 'MAX_SETS_PER_USER_EXCEEDED';
            END IF;
            RETURN NEW;
        END;
        $$
        """
    )
    op.execute(
        """
        CREATE TRIGGER sets_enforce_max_per_user
        BEFORE INSERT ON sets
        FOR EACH ROW EXECUTE FUNCTION sets_enforce_max_per_user()
        """
    )

    # Quota and position: lock the parent set row, reject a 7th item, then
    # assign max(position) + 1. Any client-supplied position is overwritten.
    op.execute(
        """
        CREATE FUNCTION set_items_assign_position() RETURNS trigger
        LANGUAGE plpgsql AS $$
        BEGIN
            PERFORM 1 FROM sets WHERE id = NEW.set_id FOR UPDATE;
            IF (SELECT COUNT(*) FROM set_items WHERE set_id = NEW.set_id) >= 6 THEN
                RAISE EXCEPTION 'MAX_ITEMS_PER_SET_EXCEEDED';
            END IF;
            SELECT COALESCE(MAX(position), 0) + 1 INTO NEW.position
            FROM set_items WHERE set_id = NEW.set_id;
            RETURN NEW;
        END;
        $$
        """
    )
    op.execute(
        """
        CREATE TRIGGER set_items_assign_position
        BEFORE INSERT ON set_items
        FOR EACH ROW EXECUTE FUNCTION set_items_assign_position()
        """
    )

    # Keep positions dense after a delete. Shifting through negative values
    # keeps (set_id, position) unique at every row update.
    op.execute(
        """
        CREATE FUNCTION set_items_compact_positions() RETURNS trigger
        LANGUAGE plpgsql AS $$
        BEGIN
            UPDATE set_items SET position = -position
            WHERE set_id = OLD.set_id AND position > OLD.position;
            UPDATE set_items SET position = -position - 1
            WHERE set_id = OLD.set_id AND position < 0;
            RETURN NULL;
        END;
        $$
        """
    )
    op.execute(
        """
        CREATE TRIGGER set_items_compact_positions
        AFTER DELETE ON set_items
        FOR EACH ROW EXECUTE FUNCTION set_items_compact_positions()
        """
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.execute("DROP TRIGGER IF EXISTS set_items_compact_positions ON set_items")
    op.execute("DROP TRIGGER IF EXISTS set_items_assign_position ON set_items")
    op.execute("DROP TRIGGER IF EXISTS sets_enforce_max_per_user ON sets")
    op.execute("DROP FUNCTION IF EXISTS set_items_compact_positions()")
    op.execute("DROP FUNCTION IF EXISTS set_items_assign_position()")
    op.execute("DROP FUNCTION IF EXISTS sets_enforce_max_per_user()")
    op.drop_index("ix_set_items_set_id", table_name="set_items")
    op.drop_table("set_items")
    op.execute("DROP INDEX IF EXISTS sets_user_id_btrim_name_uniq")
    op.drop_index("ix_sets_user_id", table_name="sets")
    op.drop_table("sets")
