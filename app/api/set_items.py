"""Set item API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import no_store
from app.core.auth import get_current_user_id
from app.core.database import get_db
from app.models.stop_set import SetItem
from app.schemas.sets import (
    CreatedSetItem,
    CreateSetItemRequest,
    CreateSetItemResponse,
    DeleteSetItemResponse,
    SetItemListResponse,
    SetItemResponse,
)
from app.services.set_item_service import SetItemService

router = APIRouter(prefix="/sets/{set_id}/items", tags=["set-items"], dependencies=[Depends(no_store)])


def _to_responses(items: list[SetItem]) -> list[SetItemResponse]:
    return [SetItemResponse.model_validate(item) for item in items]


# ==================== Set Item Endpoints ====================


@router.get("", response_model=SetItemListResponse)
async def list_set_items(
    set_id: UUID,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> SetItemListResponse:
    """
    List a set's stops in position order.

    Args:
        set_id: Set UUID
        user_id: Authenticated user id
        db: Database session

    Returns:
        Items and their total count

    Raises:
        SetNotFoundError: 404 if the set does not exist or belongs to another user
    """
    service = SetItemService(db)
    await service.verify_ownership(user_id, set_id)
    items = await service.list_items(set_id)
    return SetItemListResponse(items=_to_responses(items), total_count=len(items))


@router.post("", response_model=CreateSetItemResponse, status_code=status.HTTP_201_CREATED)
async def add_set_item(
    set_id: UUID,
    request: CreateSetItemRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> CreateSetItemResponse:
    """
    Add a stop to a set. The position is assigned by the database.

    Args:
        set_id: Set UUID
        request: Stop to add
        user_id: Authenticated user id
        db: Database session

    Returns:
        Updated item list and the created item

    Raises:
        SetNotFoundError: 404 if the set does not exist or belongs to another user
        DatabaseError: Mapped to SET_ITEM_ALREADY_EXISTS (409) or MAX_ITEMS_PER_SET_EXCEEDED (400)
    """
    service = SetItemService(db)
    await service.verify_ownership(user_id, set_id)
    created = await service.add_item(set_id, request.stop_id)
    items = await service.list_items(set_id)
    return CreateSetItemResponse(
        items=_to_responses(items),
        created_item=CreatedSetItem.model_validate(created),
    )


@router.delete("/{item_id}", response_model=DeleteSetItemResponse)
async def delete_set_item(
    set_id: UUID,
    item_id: UUID,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> DeleteSetItemResponse:
    """
    Remove a stop from a set.

    Args:
        set_id: Set UUID
        item_id: Item UUID
        user_id: Authenticated user id
        db: Database session

    Returns:
        Updated item list and the deleted id

    Raises:
        SetNotFoundError: 404 if the set does not exist or belongs to another user
        ItemNotFoundError: 404 if the item is not in this set
    """
    service = SetItemService(db)
    await service.verify_ownership(user_id, set_id)
    deleted_id = await service.delete_item(set_id, item_id)
    items = await service.list_items(set_id)
    return DeleteSetItemResponse(items=_to_responses(items), deleted_item_id=deleted_id)
