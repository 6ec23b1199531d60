"""Departure boards for stop sets: per-stop feed lookups merged into one response."""

import asyncio
import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ErrorCode, ZtmServiceError
from app.models.stop_set import SetItem
from app.schemas.ztm import (
    SetDeparturesResponse,
    SetStopEntry,
    SetStopsResponse,
    StopDeparturesError,
    StopDeparturesResult,
)
from app.services.set_item_service import SetItemService
from app.services.ztm_service import ZtmService

logger = structlog.get_logger(__name__)


class DeparturesBoardService:
    """
    Builds departure boards and stop listings for a user's set.

    Departures for all items are requested concurrently and every request is
    allowed to settle. One failing stop becomes an error entry in the result
    list; it never fails the whole board.
    """

    def __init__(self, db: AsyncSession, ztm_service: ZtmService) -> None:
        """
        Initialize the board service.

        Args:
            db: Database session
            ztm_service: Upstream feed gateway
        """
        self.item_service = SetItemService(db)
        self.ztm_service = ztm_service

    async def get_set_departures(self, user_id: str, set_id: uuid.UUID) -> SetDeparturesResponse:
        """
        Get departures for every stop in a set.

        Args:
            user_id: Owner identity
            set_id: Set UUID

        Returns:
            One result per item in position order; ``ok`` is False only when the
            set has items and every one of them failed

        Raises:
            SetNotFoundError: If the set is missing or owned by someone else
        """
        await self.item_service.verify_ownership(user_id, set_id)
        items = await self.item_service.list_items(set_id)

        results = await asyncio.gather(*(self._fetch_item_departures(item) for item in items))

        succeeded = sum(1 for result in results if result.ok)
        ok = not results or succeeded > 0
        if not ok:
            logger.warning("set_departures_all_failed", set_id=str(set_id), item_count=len(results))
        else:
            logger.debug("set_departures_built", set_id=str(set_id), succeeded=succeeded, failed=len(results) - succeeded)

        return SetDeparturesResponse(
            ok=ok,
            set_id=set_id,
            fetched_at=self.ztm_service.cache.now(),
            results=list(results),
        )

    async def _fetch_item_departures(self, item: SetItem) -> StopDeparturesResult:
        """Fetch one item's departures, converting any failure into an error result."""
        base = {"item_id": item.id, "stop_id": item.stop_id, "position": item.position}

        if not isinstance(item.stop_id, int) or isinstance(item.stop_id, bool) or item.stop_id <= 0:
            return StopDeparturesResult(
                ok=False,
                **base,
                error=StopDeparturesError(
                    code=ErrorCode.INVALID_STOP_ID.value,
                    message="Invalid stop_id in set item",
                    status=400,
                ),
            )

        try:
            document = await self.ztm_service.get_departures(item.stop_id)
        except ZtmServiceError as e:
            logger.warning(
                "set_item_departures_failed",
                item_id=str(item.id),
                stop_id=item.stop_id,
                code=e.code.value,
            )
            return StopDeparturesResult(ok=False, **base, error=StopDeparturesError(**e.to_dict()))
        except Exception:
            logger.exception("set_item_departures_unexpected_error", item_id=str(item.id), stop_id=item.stop_id)
            return StopDeparturesResult(
                ok=False,
                **base,
                error=StopDeparturesError(
                    code=ErrorCode.INTERNAL_ERROR.value,
                    message="An unexpected error occurred",
                    status=500,
                ),
            )

        return StopDeparturesResult(
            ok=True,
            **base,
            last_update=document.last_update,
            departures=document.departures,
        )

    async def get_set_stops(self, user_id: str, set_id: uuid.UUID) -> SetStopsResponse:
        """
        Get stop directory entries for every item in a set.

        Args:
            user_id: Owner identity
            set_id: Set UUID

        Returns:
            Items in position order, each with its stop entry (None if the
            directory has no such stop)

        Raises:
            SetNotFoundError: If the set is missing or owned by someone else
            ZtmServiceError: If the stop directory cannot be fetched
        """
        await self.item_service.verify_ownership(user_id, set_id)
        items = await self.item_service.list_items(set_id)
        directory = await self.ztm_service.get_stops()

        stops_by_id = {stop.stop_id: stop for stop in directory.stops}
        return SetStopsResponse(
            set_id=set_id,
            stops=[
                SetStopEntry(
                    item_id=item.id,
                    stop_id=item.stop_id,
                    position=item.position,
                    stop=stops_by_id.get(item.stop_id),
                )
                for item in items
            ],
            fetched_at=self.ztm_service.cache.now(),
            stops_last_update=directory.last_update,
        )
