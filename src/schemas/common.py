"""
Common schema types used across the stores.
"""

from typing import Generic, List, TypeVar
from pydantic import BaseModel

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """One page of a store listing."""
    
    items: List[T]
    total: int
    page: int = 1
    page_size: int = 100
    has_more: bool = False
    
    @classmethod
    def create(
        cls,
        items: List[T],
        total: int,
        page: int = 1,
        page_size: int = 100,
    ) -> "Page[T]":
        return cls(
            items=items,
            total=total,
            page=page,
            page_size=page_size,
            has_more=(page * page_size) < total,
        )

    @classmethod
    def slice(cls, items: List[T], page: int = 1, page_size: int = 100) -> "Page[T]":
        """Build a page from an already-filtered, already-sorted list."""
        start = (page - 1) * page_size
        return cls.create(items[start:start + page_size], len(items), page, page_size)
