"""Response envelope and paging schemas shared by every endpoint."""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Success envelope: ``{"success": true, "data": ...}``."""

    success: bool = True
    data: T


class ErrorResponse(BaseModel):
    """Failure envelope produced by the exception handlers."""

    success: bool = False
    message: str
    code: str
    details: str | None = None


class PageMeta(BaseModel):
    limit: int
    offset: int
    total: int


class Page(BaseModel, Generic[T]):
    """One page of a list view plus the total over the same filters."""

    items: list[T]
    page: PageMeta
