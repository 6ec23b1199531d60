"""Set item management service."""

import uuid

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ItemNotFoundError
from app.helpers.db_errors import database_errors
from app.models.stop_set import SetItem
from app.services.set_service import SetService

logger = structlog.get_logger(__name__)


class SetItemService:
    """
    Service for the stops held by a set.

    Positions are owned by the database: an insert trigger assigns max + 1
    (1 for an empty set) and enforces the six-item quota, and a delete trigger
    closes the gap left behind. Callers check set ownership with
    ``verify_ownership`` before any item operation; item operations themselves
    only scope by set id.
    """

    def __init__(self, db: AsyncSession) -> None:
        """
        Initialize the set item service.

        Args:
            db: Database session
        """
        self.db = db

    async def verify_ownership(self, user_id: str, set_id: uuid.UUID) -> None:
        """
        Gate item operations on set ownership.

        Raises:
            SetNotFoundError: If the set is missing, owned by someone else or the lookup failed
        """
        await SetService(self.db).verify_ownership(user_id, set_id)

    async def add_item(self, set_id: uuid.UUID, stop_id: int) -> SetItem:
        """
        Add a stop to a set.

        Args:
            set_id: Set UUID
            stop_id: External stop identifier

        Returns:
            Created item with its assigned position

        Raises:
            DatabaseError: Stop already in set, quota exceeded or other database failure
            RuntimeError: If the insert succeeded but the row cannot be read back
        """
        item = SetItem(set_id=set_id, stop_id=stop_id)
        async with database_errors(self.db):
            self.db.add(item)
            await self.db.commit()

            # Re-read: the position may be assigned after RETURNING values were produced
            result = await self.db.execute(
                select(SetItem).where(SetItem.id == item.id).execution_options(populate_existing=True)
            )
            created = result.scalar_one_or_none()

        if created is None:
            msg = f"Set item {item.id} was inserted but could not be read back"
            raise RuntimeError(msg)

        logger.info(
            "set_item_created",
            set_id=str(set_id),
            item_id=str(created.id),
            stop_id=stop_id,
            position=created.position,
        )
        return created

    async def list_items(self, set_id: uuid.UUID) -> list[SetItem]:
        """
        List a set's items in position order.

        Args:
            set_id: Set UUID

        Returns:
            Items ordered by position (empty list if none)
        """
        stmt = (
            select(SetItem)
            .where(SetItem.set_id == set_id)
            .order_by(SetItem.position.asc())
            .execution_options(populate_existing=True)
        )
        async with database_errors(self.db):
            result = await self.db.execute(stmt)
            return list(result.scalars().all())

    async def delete_item(self, set_id: uuid.UUID, item_id: uuid.UUID) -> uuid.UUID:
        """
        Remove an item from a set.

        Does not re-check set ownership; call ``verify_ownership`` first.

        Args:
            set_id: Set UUID
            item_id: Item UUID

        Returns:
            Id of the deleted item

        Raises:
            ItemNotFoundError: If the item is not in this set
        """
        stmt = delete(SetItem).where(SetItem.id == item_id, SetItem.set_id == set_id).returning(SetItem.id)
        async with database_errors(self.db):
            result = await self.db.execute(stmt)
            deleted_id = result.scalar_one_or_none()
            await self.db.commit()

        if deleted_id is None:
            raise ItemNotFoundError()

        logger.info("set_item_deleted", set_id=str(set_id), item_id=str(item_id))
        return deleted_id
