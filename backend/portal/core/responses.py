"""Response envelope models.

Successful responses wrap their payload in ``{"data": ...}``; failures use
``{"error": {"code", "message", "details"}}``.
"""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class DataResponse(BaseModel, Generic[T]):
    """Standard response envelope for single resources.

    All success responses use {"data": ...} envelope.

    Usage:
        @router.get("/auth/me")
        async def me(...) -> DataResponse[SessionUser]:
            return DataResponse(data=user)
    """

    data: T


class ErrorDetail(BaseModel):
    """Error detail for response body.

    Attributes:
        code: Machine-readable error code (e.g., "RATE_LIMITED").
        message: Human-readable error message.
        details: Optional list of field-level errors (for validation).
    """

    code: str
    message: str
    details: list[dict] | None = None


class ErrorResponse(BaseModel):
    """Standard error response envelope.

    All errors use {"error": {...}} envelope.
    """

    error: ErrorDetail
