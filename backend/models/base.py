"""
Shared Pydantic schemas
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class BaseSchema(BaseModel):
    """Base Pydantic schema"""

    class Config:
        from_attributes = True
        json_encoders = {
            datetime: lambda v: v.isoformat(),
        }


class PaginationParams(BaseModel):
    """Pagination parameters"""

    page: int = Field(1, ge=1, description="Page number")
    size: int = Field(24, ge=1, le=100, description="Page size")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.size


class PaginatedResponse(BaseModel):
    """Paginated response wrapper"""

    items: list[Any]
    total: int
    page: int
    size: int
    pages: int

    @classmethod
    def create(cls, items: list[Any], total: int, page: int, size: int):
        pages = (total + size - 1) // size  # Ceiling division
        return cls(items=items, total=total, page=page, size=size, pages=pages)


class SuccessResponse(BaseModel):
    success: bool = True
    message: str | None = None
    data: Any | None = None
