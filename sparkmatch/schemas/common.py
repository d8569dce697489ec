from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Envelope shared by every HTTP response."""
    success: bool = True
    message: str = ""
    data: Optional[T] = None
    errors: Optional[list[Any]] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
