"""Pagination schemas for offset-based pagination."""

import math
from typing import Generic, TypeVar

from pydantic import Field

from src.taskhub.schemas.base import CamelModel

T = TypeVar("T")


class PageResponse(CamelModel, Generic[T]):
    """Generic page of results.

    ``current_page`` is zero-based. Clients page forward while ``has_next``
    is true; ``total_elements`` counts matches across all pages.
    """

    messages: list[T]
    total_elements: int = Field(ge=0)
    total_pages: int = Field(ge=0)
    current_page: int = Field(ge=0)
    page_size: int = Field(ge=1)
    has_next: bool
    has_previous: bool

    @classmethod
    def build(cls, items: list[T], total: int, page: int, size: int) -> "PageResponse[T]":
        """Derive page metadata from the total match count.

        Args:
            items: Rows of the requested page
            total: Number of matches across all pages
            page: Zero-based page index
            size: Page size used for the query

        Returns:
            A populated page response
        """
        total_pages = math.ceil(total / size) if size else 0
        return cls(
            messages=items,
            total_elements=total,
            total_pages=total_pages,
            current_page=page,
            page_size=size,
            has_next=page + 1 < total_pages,
            has_previous=page > 0,
        )
