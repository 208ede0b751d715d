from pydantic import BaseModel
from typing import Optional, Any


class ErrorResponse(BaseModel):
    """Error response model."""

    success: bool = False
    message: str
    code: Optional[str] = None
    retryable: bool = False
    detail: Optional[Any] = None


class StatusResponse(BaseModel):
    """Generic status response."""

    message: str
    success: bool = True
