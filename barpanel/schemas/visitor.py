"""
Visitor-related Pydantic schemas
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel

class VisitorRow(BaseModel):
    """Visitor as displayed"""
    id: int
    username: Optional[str] = None
    name: Optional[str] = None
    creation_date: Optional[datetime] = None
    last_visit_date: Optional[datetime] = None
    real_name: Optional[str] = None
    comment: Optional[str] = None

    class Config:
        from_attributes = True

class CommentUpdate(BaseModel):
    """Inline comment edit"""
    comment: Optional[str] = None

def normalize_comment(comment: Optional[str]) -> Optional[str]:
    """Empty comment means no comment"""
    return comment if comment else None
