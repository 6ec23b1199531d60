"""Stop set management service, scoped to the owning user."""

import uuid

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import NoResultFound, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import SetNotFoundError
from app.helpers.db_errors import database_errors
from app.models.stop_set import SetItem, StopSet
from app.schemas.sets import SetResponse

logger = structlog.get_logger(__name__)


class SetService:
    """
    Service for managing a user's stop sets.

    Every targeted read or write filters on both the set id and the owner id,
    so a set owned by someone else behaves exactly like a missing one.
    Uniqueness and quota rules live in the database; their violations surface
    as ``DatabaseError`` for ``map_database_error`` to translate.
    """

    def __init__(self, db: AsyncSession) -> None:
        """
        Initialize the set service.

        Args:
            db: Database session
        """
        self.db = db

    async def create_set(self, user_id: str, name: str) -> StopSet:
        """
        Create a new set.

        Args:
            user_id: Owner identity
            name: Set name (surrounding whitespace is trimmed)

        Returns:
            Created set

        Raises:
            DatabaseError: Duplicate name, quota exceeded or other database failure
        """
        stop_set = StopSet(user_id=user_id, name=name.strip())
        async with database_errors(self.db):
            self.db.add(stop_set)
            await self.db.commit()

        logger.info("set_created", set_id=str(stop_set.id), user_id=user_id)
        return stop_set

    async def rename_set(self, user_id: str, set_id: uuid.UUID, name: str) -> StopSet:
        """
        Rename a set owned by the user.

        Args:
            user_id: Owner identity
            set_id: Set UUID
            name: New name (surrounding whitespace is trimmed)

        Returns:
            Renamed set

        Raises:
            SetNotFoundError: If no set with this id belongs to the user
            DatabaseError: Duplicate name or other database failure
        """
        stmt = (
            update(StopSet)
            .where(StopSet.id == set_id, StopSet.user_id == user_id)
            .values(name=name.strip())
            .returning(StopSet)
        )
        async with database_errors(self.db):
            result = await self.db.execute(stmt)
            try:
                stop_set = result.scalar_one()
            except NoResultFound:
                await self.db.rollback()
                raise SetNotFoundError() from None
            await self.db.commit()

        logger.info("set_renamed", set_id=str(set_id), user_id=user_id)
        return stop_set

    async def delete_set(self, user_id: str, set_id: uuid.UUID) -> uuid.UUID:
        """
        Delete a set owned by the user. Its items are removed by the ON DELETE CASCADE rule.

        Args:
            user_id: Owner identity
            set_id: Set UUID

        Returns:
            Id of the deleted set

        Raises:
            SetNotFoundError: If no set with this id belongs to the user
        """
        stmt = delete(StopSet).where(StopSet.id == set_id, StopSet.user_id == user_id).returning(StopSet.id)
        async with database_errors(self.db):
            result = await self.db.execute(stmt)
            deleted_id = result.scalar_one_or_none()
            await self.db.commit()

        if deleted_id is None:
            raise SetNotFoundError()

        logger.info("set_deleted", set_id=str(set_id), user_id=user_id)
        return deleted_id

    async def list_sets_with_counts(self, user_id: str) -> list[SetResponse]:
        """
        List the user's sets with item counts, ordered by name.

        Counts come from a single outer join so empty sets report 0.

        Args:
            user_id: Owner identity

        Returns:
            Sets with item counts
        """
        item_count = func.count(SetItem.id).label("item_count")
        stmt = (
            select(StopSet, item_count)
            .outerjoin(SetItem, SetItem.set_id == StopSet.id)
            .where(StopSet.user_id == user_id)
            .group_by(StopSet.id)
            .order_by(StopSet.name.asc(), StopSet.created_at.asc())
            .execution_options(populate_existing=True)
        )
        async with database_errors(self.db):
            result = await self.db.execute(stmt)
            rows = result.all()

        return [
            SetResponse(
                id=stop_set.id,
                name=stop_set.name,
                item_count=count,
                created_at=stop_set.created_at,
            )
            for stop_set, count in rows
        ]

    async def verify_ownership(self, user_id: str, set_id: uuid.UUID) -> None:
        """
        Check that a set exists and belongs to the user.

        A missing set, a set owned by someone else and a failed lookup all raise
        the same error so callers cannot probe for other users' sets.

        Args:
            user_id: Owner identity
            set_id: Set UUID

        Raises:
            SetNotFoundError: If the check does not succeed for any reason
        """
        stmt = select(StopSet.id).where(StopSet.id == set_id, StopSet.user_id == user_id)
        try:
            result = await self.db.execute(stmt)
            found = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning("set_ownership_check_failed", set_id=str(set_id), error=str(e))
            raise SetNotFoundError() from e

        if found is None:
            raise SetNotFoundError()
