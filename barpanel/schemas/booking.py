"""
Booking-related Pydantic schemas
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel

class BookingRow(BaseModel):
    """Booking as displayed, with fields projected from the joined visitor"""
    id: int
    userid: int
    date: Optional[datetime] = None
    visitors_count: Optional[int] = None
    phone: Optional[str] = None
    status: Optional[str] = None
    username: str = ""
    real_name: str = ""

    class Config:
        from_attributes = True
