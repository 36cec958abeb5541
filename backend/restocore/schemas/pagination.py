"""Pagination schemas."""

from typing import Generic, List, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    """Generic paginated response wrapper."""

    items: List[T]
    total: int = Field(description="Total number of items matching the query")
    skip: int = Field(description="Number of items skipped")
    limit: int = Field(description="Maximum items requested")
    has_more: bool = Field(description="Whether more items are available")

    @classmethod
    def create(cls, items: List[T], total: int, skip: int, limit: int) -> "PaginatedResponse[T]":
        return cls(
            items=items,
            total=total,
            skip=skip,
            limit=limit,
            has_more=(skip + len(items)) < total,
        )
