"""
Envelopes shared by every JSON API answer
"""

from typing import Any, Optional
from pydantic import BaseModel

class StandardResponse(BaseModel):
    """Grid data or an acknowledged change"""
    success: bool
    message: str
    data: Optional[Any] = None

class ErrorResponse(BaseModel):
    """Failure the panel reports without raising; error_code is machine readable"""
    success: bool = False
    message: str
    error_code: Optional[str] = None
    details: Optional[Any] = None
