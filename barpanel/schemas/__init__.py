"""
Pydantic schemas package
"""

from .common import *
from .grid import *
from .booking import *
from .visitor import *
from .changes import *

__all__ = [
    "StandardResponse",
    "ErrorResponse",
    "SortDirection",
    "SortModel",
    "TextContains",
    "EnumEquals",
    "DateRange",
    "ColumnFilter",
    "FILTERS_ADAPTER",
    "GridQuery",
    "GridPage",
    "BookingRow",
    "VisitorRow",
    "CommentUpdate",
    "normalize_comment",
    "ChangeType",
    "DbChangeEvent"
]
