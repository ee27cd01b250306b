"""
Response envelopes shared by every endpoint
"""

from typing import Any, Optional
from pydantic import BaseModel

class StandardResponse(BaseModel):
    """Successful action result"""
    success: bool
    message: str
    data: Optional[Any] = None

class ErrorResponse(BaseModel):
    """Failed action result.

    ``error_code`` is a stable reason code such as ``unknown-table`` or
    ``table-capacity`` that clients can branch on.
    """
    success: bool = False
    message: str
    error_code: Optional[str] = None
    details: Optional[Any] = None
