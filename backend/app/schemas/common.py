"""
Response envelope schemas shared by every endpoint.

Success bodies are ``{"success": true, "data": ...}``; list endpoints add
a ``pagination`` block. Error bodies are rendered by the exception handlers.
"""

from typing import Generic, List, TypeVar
from pydantic import BaseModel

from backend.app.domain.fleet.pagination import Page

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    """Single-object success response."""
    success: bool = True
    data: T


class PaginationMeta(BaseModel):
    total: int
    page: int
    page_size: int
    pages: int


class PaginatedEnvelope(BaseModel, Generic[T]):
    """List success response."""
    success: bool = True
    data: List[T]
    pagination: PaginationMeta


class MessageResponse(BaseModel):
    success: bool = True
    message: str


def paginated(page: Page, schema) -> dict:
    """Render a domain Page with the given response schema."""
    return {
        "success": True,
        "data": [schema.model_validate(item) for item in page.items],
        "pagination": PaginationMeta(
            total=page.total,
            page=page.page,
            page_size=page.page_size,
            pages=page.pages,
        ),
    }
