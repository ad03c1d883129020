"""
ApiCommons — Pagination Schemas
================================

What:  Offset pagination request/result models used as envelope payloads.
How:   PagedRequest normalizes the client's page and size on construction;
       PagedResult carries one page of items plus the totals the client
       needs to render a pager.

Normalization rules:
    current_page  < 1            → 1
    max_page_size < 1            → 1
    page_size                    → clamped to [1, max_page_size]
    skip                         = (current_page - 1) * page_size
    total_pages                  = ceil(total_count / page_size), 0 if size <= 0
"""

from typing import Generic, List, Sequence, TypeVar

from pydantic import BaseModel, Field, computed_field, model_validator

T = TypeVar("T")


class PagedRequest(BaseModel):
    """Requested page (1-based) and page size, normalized on construction."""

    current_page: int = Field(default=1, description="1-based page index")
    page_size: int = Field(default=20, description="Items per page")
    max_page_size: int = Field(default=200, description="Upper bound for page_size")

    @model_validator(mode="after")
    def normalize(self) -> "PagedRequest":
        self.current_page = max(self.current_page, 1)
        self.max_page_size = max(self.max_page_size, 1)
        self.page_size = min(max(self.page_size, 1), self.max_page_size)
        return self

    @property
    def skip(self) -> int:
        return (self.current_page - 1) * self.page_size


class PagedResult(BaseModel, Generic[T]):
    """One page of items plus paging metadata."""

    items: List[T] = Field(default_factory=list)
    total_count: int = 0
    current_page: int = 1
    page_size: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return (self.total_count + self.page_size - 1) // self.page_size

    @classmethod
    def from_items(cls, items: Sequence[T], total_count: int, request: PagedRequest) -> "PagedResult[T]":
        return cls(
            items=list(items or []),
            total_count=total_count,
            current_page=request.current_page,
            page_size=request.page_size,
        )

    @classmethod
    def empty(cls, request: PagedRequest) -> "PagedResult[T]":
        return cls.from_items([], 0, request)
