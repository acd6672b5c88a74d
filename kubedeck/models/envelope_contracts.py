from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")

NETWORK_ERROR_CODE = 0
CLIENT_ERROR_CODE = -1
CANCELLED_ERROR_CODE = -2


def utc_timestamp() -> str:
    return datetime.now(UTC).isoformat()


class WireModel(BaseModel):
    """Base for payloads exchanged with the backend (camelCase on the wire)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ApiResponse(WireModel, Generic[T]):
    success: bool
    data: T | None = None
    message: str | None = None
    code: int | None = None
    error: Any | None = None
    details: Any | None = None


class ApiError(WireModel):
    code: int
    message: str
    details: Any | None = None
    timestamp: str = Field(default_factory=utc_timestamp)


class PaginatedResponse(WireModel, Generic[T]):
    items: list[T] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 20
    total_pages: int = 0
