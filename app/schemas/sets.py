"""Pydantic schemas for stop sets and set items."""

from datetime import datetime
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from app.models.stop_set import SET_NAME_MAX_LENGTH

# ==================== Helper Functions ====================


def _validate_set_name(name: str) -> str:
    """
    Trim a set name and check its length - reusable helper.

    Length counts code points, so "Zażółć" is six characters.

    Args:
        name: Raw name from the request

    Returns:
        Trimmed name

    Raises:
        ValueError: If the trimmed name is empty or too long
    """
    trimmed = name.strip()
    if not trimmed:
        msg = "Set name must be at least 1 character"
        raise ValueError(msg)
    if len(trimmed) > SET_NAME_MAX_LENGTH:
        msg = f"Set name must be at most {SET_NAME_MAX_LENGTH} characters"
        raise ValueError(msg)
    return trimmed


def _reject_non_numeric_stop_id(value: object) -> object:
    """
    Reject JSON strings and booleans before int coercion.

    Whole-number floats such as 117.0 pass through and become ints; fractional
    floats are rejected by the int field itself.
    """
    if isinstance(value, (str, bool)):
        msg = "stop_id must be a JSON number"
        raise ValueError(msg)
    return value


# ==================== Request Schemas ====================


class CreateSetRequest(BaseModel):
    """Request to create a new set."""

    name: str = Field(..., description=f"Set name, 1-{SET_NAME_MAX_LENGTH} characters after trimming")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Trim and validate set name."""
        return _validate_set_name(v)


class UpdateSetRequest(BaseModel):
    """Request to rename a set."""

    name: str = Field(..., description=f"New set name, 1-{SET_NAME_MAX_LENGTH} characters after trimming")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Trim and validate set name."""
        return _validate_set_name(v)


class CreateSetItemRequest(BaseModel):
    """Request to add a stop to a set."""

    stop_id: int = Field(..., gt=0, description="External stop identifier")

    @field_validator("stop_id", mode="before")
    @classmethod
    def validate_stop_id(cls, v: object) -> object:
        """Accept only JSON numbers; "117" and true are not coerced."""
        return _reject_non_numeric_stop_id(v)


# ==================== Response Schemas ====================


class SetResponse(BaseModel):
    """Set with the number of stops it holds."""

    id: UUID
    name: str
    item_count: int
    created_at: datetime


class SetSummary(BaseModel):
    """Identity and name of a set touched by a mutation."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str


class SetListResponse(BaseModel):
    """All sets of the current user."""

    sets: list[SetResponse]
    total_count: int


class CreateSetResponse(BaseModel):
    """Sets after creation, plus the created set."""

    sets: list[SetResponse]
    created_set: SetSummary


class UpdateSetResponse(BaseModel):
    """Sets after rename, plus the renamed set."""

    sets: list[SetResponse]
    updated_set: SetSummary


class DeleteSetResponse(BaseModel):
    """Sets after deletion, plus the deleted id."""

    sets: list[SetResponse]
    deleted_set_id: UUID


class SetItemResponse(BaseModel):
    """Stop membership within a set."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    set_id: UUID
    stop_id: int
    position: int
    added_at: datetime = Field(validation_alias=AliasChoices("added_at", "created_at"))


class CreatedSetItem(BaseModel):
    """Identity and assigned position of a newly added item."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    stop_id: int
    position: int


class SetItemListResponse(BaseModel):
    """Items of a set in position order."""

    items: list[SetItemResponse]
    total_count: int


class CreateSetItemResponse(BaseModel):
    """Items after adding a stop, plus the created item."""

    items: list[SetItemResponse]
    created_item: CreatedSetItem


class DeleteSetItemResponse(BaseModel):
    """Items after removing a stop, plus the deleted id."""

    items: list[SetItemResponse]
    deleted_item_id: UUID
