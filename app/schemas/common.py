from typing import Any, Literal, Self

from pydantic import BaseModel, Field

from app.utils.misc import get_utc_iso_now


class PaginationData(BaseModel):
    page: int
    page_size: int
    total_items: int
    total_pages: int

    @classmethod
    def for_total(cls, *, page: int, page_size: int, total_items: int) -> Self:
        return cls(
            page=page,
            page_size=page_size,
            total_items=total_items,
            total_pages=(total_items + page_size - 1) // page_size,
        )


class ValidationErrorDetail(BaseModel):
    loc: list[str | int]
    msg: str
    type: str


class APIResponse[T](BaseModel):
    """Envelope of every JSON response, errors included."""

    status: Literal["success", "error"] = "success"
    data: T | None = None
    message: str | None = None
    timestamp: str = Field(default_factory=get_utc_iso_now)
    pagination: PaginationData | None = None

    @classmethod
    def error(cls, message: str, data: Any = None) -> "APIResponse[Any]":
        return APIResponse[Any](status="error", message=message, data=data)


class PaginatedResponse[T](APIResponse[T]):
    pagination: PaginationData  # pyright: ignore[reportGeneralTypeIssues]
