"""
Grid query schemas: pagination, sorting and typed column filters
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator

class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"

class SortModel(BaseModel):
    """Single-column sort"""
    column: str
    direction: SortDirection = SortDirection.DESC

class TextContains(BaseModel):
    """Case-insensitive substring match on a text column"""
    kind: Literal["text_contains"] = "text_contains"
    column: str
    value: str

class EnumEquals(BaseModel):
    """Exact match on a column with a closed vocabulary"""
    kind: Literal["enum_equals"] = "enum_equals"
    column: str
    value: str

class DateRange(BaseModel):
    """Timestamp window, start inclusive and end exclusive"""
    kind: Literal["date_range"] = "date_range"
    column: str
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @field_validator("start", "end")
    @classmethod
    def to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Stored timestamps are UTC and SQLite drops the offset when binding
        if value is not None and value.tzinfo is not None:
            return value.astimezone(timezone.utc)
        return value

ColumnFilter = Annotated[
    Union[TextContains, EnumEquals, DateRange],
    Field(discriminator="kind"),
]

class GridQuery(BaseModel):
    """One page request against a collection"""
    page: int = Field(0, ge=0)
    page_size: int = Field(10, ge=1)
    sort: SortModel
    filters: List[ColumnFilter] = []

    @property
    def offset(self) -> int:
        return self.page * self.page_size

    @property
    def last_index(self) -> int:
        """Inclusive index of the last row of the page"""
        return self.offset + self.page_size - 1

class GridPage(BaseModel):
    """One page of rows plus the exact size of the filtered set"""
    rows: List[Any]
    row_count: int
    page: int
    page_size: int

FILTERS_ADAPTER = TypeAdapter(List[ColumnFilter])
