"""Database models for the stopboard application."""

# Import all models to register them with SQLAlchemy metadata
from app.models.base import Base, BaseModel
from app.models.stop_set import SetItem, StopSet

__all__ = [
    # Base
    "Base",
    "BaseModel",
    # Stop set models
    "StopSet",
    "SetItem",
]
