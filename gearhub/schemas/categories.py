import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import Field, field_validator

from .base import CamelModel


HEX_COLOR = r"^#(?:[0-9a-fA-F]{3}){1,2}$"


class CategoryCreate(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    color: str = Field(default="#1976d2", pattern=HEX_COLOR)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v


class CategoryUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v


class BulkDeleteRequest(CamelModel):
    category_ids: List[str]


class CategoryOut(CamelModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    color: str
    owner_id: uuid.UUID
    item_count: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class CategorySummary(CamelModel):
    id: uuid.UUID
    name: str
    color: str
