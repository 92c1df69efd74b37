"""Common schemas for the review API."""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    workflow_id: Optional[UUID] = None
    step_id: Optional[UUID] = None
