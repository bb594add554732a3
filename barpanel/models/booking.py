"""
Booking model
"""

import enum
from sqlalchemy import Column, Integer, BigInteger, String, DateTime, ForeignKey

from barpanel.core.db import Base

class BookingStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELED = "canceled"
    CONFIRMED = "confirmed"
    PENDING = "pending"

class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    userid = Column(BigInteger().with_variant(Integer, "sqlite"), ForeignKey("visitors.id"), nullable=False, index=True)
    date = Column(DateTime(timezone=True), nullable=False)
    visitors_count = Column(Integer, nullable=False, default=1)
    phone = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value)
