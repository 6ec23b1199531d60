"""Stop set API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import no_store
from app.core.auth import get_current_user_id
from app.core.database import get_db
from app.schemas.sets import (
    CreateSetRequest,
    CreateSetResponse,
    DeleteSetResponse,
    SetListResponse,
    SetSummary,
    UpdateSetRequest,
    UpdateSetResponse,
)
from app.services.set_service import SetService

router = APIRouter(prefix="/sets", tags=["sets"], dependencies=[Depends(no_store)])


# ==================== Set Endpoints ====================


@router.get("", response_model=SetListResponse)
async def list_sets(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> SetListResponse:
    """
    List the authenticated user's sets with item counts, ordered by name.

    Args:
        user_id: Authenticated user id
        db: Database session

    Returns:
        Sets and their total count
    """
    sets = await SetService(db).list_sets_with_counts(user_id)
    return SetListResponse(sets=sets, total_count=len(sets))


@router.post("", response_model=CreateSetResponse, status_code=status.HTTP_201_CREATED)
async def create_set(
    request: CreateSetRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> CreateSetResponse:
    """
    Create a set.

    Args:
        request: Set name
        user_id: Authenticated user id
        db: Database session

    Returns:
        Updated set list and the created set

    Raises:
        DatabaseError: Mapped to DUPLICATE_SET_NAME (409) or MAX_SETS_PER_USER_EXCEEDED (400)
    """
    service = SetService(db)
    created = await service.create_set(user_id, request.name)
    sets = await service.list_sets_with_counts(user_id)
    return CreateSetResponse(sets=sets, created_set=SetSummary.model_validate(created))


@router.patch("/{set_id}", response_model=UpdateSetResponse)
async def rename_set(
    set_id: UUID,
    request: UpdateSetRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> UpdateSetResponse:
    """
    Rename a set.

    Args:
        set_id: Set UUID
        request: New name
        user_id: Authenticated user id
        db: Database session

    Returns:
        Updated set list and the renamed set

    Raises:
        SetNotFoundError: 404 if the set does not exist or belongs to another user
    """
    service = SetService(db)
    renamed = await service.rename_set(user_id, set_id, request.name)
    sets = await service.list_sets_with_counts(user_id)
    return UpdateSetResponse(sets=sets, updated_set=SetSummary.model_validate(renamed))


@router.delete("/{set_id}", response_model=DeleteSetResponse)
async def delete_set(
    set_id: UUID,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> DeleteSetResponse:
    """
    Delete a set and all of its items.

    Args:
        set_id: Set UUID
        user_id: Authenticated user id
        db: Database session

    Returns:
        Updated set list and the deleted id

    Raises:
        SetNotFoundError: 404 if the set does not exist or belongs to another user
    """
    service = SetService(db)
    deleted_id = await service.delete_set(user_id, set_id)
    sets = await service.list_sets_with_counts(user_id)
    return DeleteSetResponse(sets=sets, deleted_set_id=deleted_id)
