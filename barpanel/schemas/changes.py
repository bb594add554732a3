"""
Change feed schemas
"""

from typing import Any, Dict, Literal, Optional
from pydantic import BaseModel

ChangeType = Literal["INSERT", "UPDATE", "DELETE"]

class DbChangeEvent(BaseModel):
    """Row change announcement, shaped like a database webhook payload"""
    type: ChangeType
    table: str
    record: Optional[Dict[str, Any]] = None
    old_record: Optional[Dict[str, Any]] = None
