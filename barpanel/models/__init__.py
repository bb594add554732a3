"""
Database models package
"""

from .visitor import Visitor
from .booking import Booking, BookingStatus

__all__ = ["Visitor", "Booking", "BookingStatus"]
