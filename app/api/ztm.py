"""ZTM feed proxy and set departure board endpoints."""

from datetime import timedelta
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_ztm_service, no_store
from app.core.auth import get_current_user_id
from app.core.database import get_db
from app.core.errors import ApiError, ErrorCode
from app.helpers.cache_headers import private_cache_control, public_cache_control
from app.schemas.ztm import (
    AllDeparturesResponse,
    DeparturesResponse,
    SetDeparturesResponse,
    SetStopsResponse,
    StopsResponse,
    parse_stop_ids,
)
from app.services.departures_board_service import DeparturesBoardService
from app.services.ztm_service import ZtmService

router = APIRouter(prefix="/ztm", tags=["ztm"])

# Stop directory may be served stale for a day while it revalidates
STOPS_STALE_WHILE_REVALIDATE = timedelta(days=1)


# ==================== Feed Proxy Endpoints ====================


@router.get("/stops", response_model=StopsResponse)
async def get_stops(
    response: Response,
    stop_ids: str | None = Query(None, alias="stopIds", description="Comma-separated stop ids to keep"),
    ztm_service: ZtmService = Depends(get_ztm_service),
) -> StopsResponse:
    """
    Get the stop directory, optionally filtered to the given stop ids.

    Args:
        response: Response used to set caching headers
        stop_ids: Comma-separated positive stop ids (duplicates ignored)
        ztm_service: Feed gateway

    Returns:
        Stop directory document

    Raises:
        ApiError: INVALID_INPUT (400) if stopIds is malformed
        ZtmServiceError: 504 on timeout, 502 on upstream or schema failure
    """
    try:
        wanted = parse_stop_ids(stop_ids)
    except ValueError as e:
        raise ApiError(ErrorCode.INVALID_INPUT, str(e), status.HTTP_400_BAD_REQUEST) from e

    document = await ztm_service.get_stops()
    response.headers["Cache-Control"] = public_cache_control(
        ztm_service.stops_policy.ttl, STOPS_STALE_WHILE_REVALIDATE
    )

    if wanted is None:
        return document
    wanted_ids = set(wanted)
    return StopsResponse(
        last_update=document.last_update,
        stops=[stop for stop in document.stops if stop.stop_id in wanted_ids],
    )


@router.get("/departures", response_model=DeparturesResponse | AllDeparturesResponse)
async def get_departures(
    response: Response,
    stop_id: int | None = Query(None, alias="stopId", gt=0, description="Stop id; omit for every stop"),
    ztm_service: ZtmService = Depends(get_ztm_service),
) -> DeparturesResponse | AllDeparturesResponse:
    """
    Get departures for one stop, or for every stop when no stop id is given.

    Args:
        response: Response used to set caching headers
        stop_id: Positive stop id
        ztm_service: Feed gateway

    Returns:
        Departures document, or departures documents keyed by stop id

    Raises:
        ZtmServiceError: 504 on timeout, 502 on upstream or schema failure
    """
    if stop_id is None:
        document: DeparturesResponse | AllDeparturesResponse = await ztm_service.get_all_departures()
        ttl = ztm_service.all_departures_policy.ttl
    else:
        document = await ztm_service.get_departures(stop_id)
        ttl = ztm_service.departures_policy.ttl

    response.headers["Cache-Control"] = public_cache_control(ttl, ttl)
    return document


# ==================== Set Board Endpoints ====================


@router.get("/sets/{set_id}/departures", response_model=SetDeparturesResponse)
async def get_set_departures(
    set_id: UUID,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    ztm_service: ZtmService = Depends(get_ztm_service),
) -> JSONResponse:
    """
    Get the departure board for a set.

    Each stop is fetched concurrently; failures are reported per item. Responds
    500 with ``ok: false`` only when every item failed.

    Args:
        set_id: Set UUID
        user_id: Authenticated user id
        db: Database session
        ztm_service: Feed gateway

    Returns:
        Per-item departure results in position order

    Raises:
        SetNotFoundError: 404 if the set does not exist or belongs to another user
    """
    board = await DeparturesBoardService(db, ztm_service).get_set_departures(user_id, set_id)
    content = board.model_dump(mode="json", by_alias=True)

    if not board.ok:
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)

    return JSONResponse(
        content=content,
        headers={
            "Cache-Control": private_cache_control(ztm_service.departures_policy.ttl),
            "Vary": "Authorization",
        },
    )


@router.get("/sets/{set_id}/stops", response_model=SetStopsResponse, dependencies=[Depends(no_store)])
async def get_set_stops(
    set_id: UUID,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    ztm_service: ZtmService = Depends(get_ztm_service),
) -> SetStopsResponse:
    """
    Get stop directory entries for every stop in a set.

    Args:
        set_id: Set UUID
        user_id: Authenticated user id
        db: Database session
        ztm_service: Feed gateway

    Returns:
        Items in position order with their stop entries

    Raises:
        SetNotFoundError: 404 if the set does not exist or belongs to another user
        ZtmServiceError: 504 on timeout, 502 on upstream or schema failure
    """
    return await DeparturesBoardService(db, ztm_service).get_set_stops(user_id, set_id)
