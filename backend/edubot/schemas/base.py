"""Shared schema configuration and mixins for ORM-backed responses."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class ORMSchema(BaseModel):
    """Response schema validated straight from a SQLAlchemy row."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class RowID(BaseModel):
    id: UUID


class RowTimestamps(BaseModel):
    """``created_at``/``updated_at`` as stored (timezone-aware)."""

    created_at: datetime
    updated_at: datetime
