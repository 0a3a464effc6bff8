"""Common schemas for the Campus RBAC API."""

from typing import Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response."""
    detail: str


class MessageResponse(BaseModel):
    """Standard success response."""
    message: str
    count: Optional[int] = None
