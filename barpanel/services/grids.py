"""
Column and grid definitions for the Bookings and Visitors views
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel

from barpanel.core.config import settings
from barpanel.models import BookingStatus
from barpanel.schemas.grid import EnumEquals, GridQuery, SortDirection, SortModel
from barpanel.services.errors import InvalidQuery
from barpanel.services.formatting import (
    format_phone,
    format_status,
    format_timestamp,
    phone_href,
)

TEXT = "text_contains"
ENUM = "enum_equals"
DATES = "date_range"


@dataclass(frozen=True)
class ColumnDef:
    """A grid column: header, filtering, formatting and editability"""
    field: str
    header: str
    width: int
    filter_kind: Optional[str] = None
    sortable: bool = True
    formatter: Optional[Callable[[Any], str]] = None
    link: Optional[Callable[[Any], Optional[str]]] = None
    editable: bool = False
    # Projected from a joined collection, not stored on the row itself
    joined: bool = False
    options: Tuple[str, ...] = ()

    def display(self, value: Any) -> str:
        if self.formatter is not None:
            return self.formatter(value)
        return "" if value is None else str(value)

    def describe(self) -> Dict[str, Any]:
        return {
            "field": self.field,
            "header": self.header,
            "width": self.width,
            "filter": self.filter_kind,
            "sortable": self.sortable,
            "editable": self.editable,
            "options": list(self.options),
        }


@dataclass(frozen=True)
class GridDefinition:
    """A routed grid view bound to one collection"""
    name: str
    title: str
    collection: str
    columns: Tuple[ColumnDef, ...]
    default_sort: SortModel
    path: str = "/"
    _by_field: Dict[str, ColumnDef] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_by_field", {c.field: c for c in self.columns})

    def column(self, name: str) -> Optional[ColumnDef]:
        return self._by_field.get(name)

    def build_query(self, page: int = 0, page_size: Optional[int] = None, sort: Optional[SortModel] = None, filters=None) -> GridQuery:
        """Build and validate a query for this grid"""
        query = GridQuery(
            page=page,
            page_size=settings.PAGE_SIZE if page_size is None else page_size,
            sort=sort or self.default_sort,
            filters=filters or [],
        )
        self.validate_query(query)
        return query

    def validate_query(self, query: GridQuery) -> None:
        if query.page_size > settings.MAX_PAGE_SIZE:
            raise InvalidQuery(f"page_size must not exceed {settings.MAX_PAGE_SIZE}")

        sort_column = self.column(query.sort.column)
        if sort_column is None or not sort_column.sortable:
            raise InvalidQuery(f"Cannot sort {self.name} by '{query.sort.column}'")

        for flt in query.filters:
            column = self.column(flt.column)
            if column is None or column.filter_kind != flt.kind:
                raise InvalidQuery(f"Filter '{flt.kind}' is not supported on {self.name}.{flt.column}")
            if isinstance(flt, EnumEquals) and column.options and flt.value not in column.options:
                raise InvalidQuery(f"Unknown value '{flt.value}' for {self.name}.{flt.column}")

    def render_row(self, row: BaseModel) -> Dict[str, Any]:
        """Raw values plus display text and links for every column"""
        display = {}
        links = {}
        for column in self.columns:
            value = getattr(row, column.field, None)
            display[column.field] = column.display(value)
            if column.link is not None:
                href = column.link(value)
                if href:
                    links[column.field] = href
        return {
            "id": row.id,
            "data": row.model_dump(mode="json"),
            "display": display,
            "links": links,
        }

    def render_rows(self, rows: List[BaseModel]) -> List[Dict[str, Any]]:
        return [self.render_row(row) for row in rows]

    def describe_columns(self) -> List[Dict[str, Any]]:
        return [c.describe() for c in self.columns]


def _booking_date(value):
    return format_timestamp(value, settings.BOOKING_TIMEZONE)


def _local_date(value):
    return format_timestamp(value, settings.DISPLAY_TIMEZONE)


BOOKINGS_GRID = GridDefinition(
    name="bookings",
    title="Бронирования",
    collection="bookings",
    path="/",
    default_sort=SortModel(column="id", direction=SortDirection.DESC),
    columns=(
        ColumnDef("id", "ID", 90),
        ColumnDef("userid", "ID в телеграме", 120),
        ColumnDef("username", "Username", 160, filter_kind=TEXT, joined=True, sortable=False),
        ColumnDef("real_name", "Имя", 160, filter_kind=TEXT, joined=True, sortable=False),
        ColumnDef("date", "Дата", 180, filter_kind=DATES, formatter=_booking_date),
        ColumnDef("visitors_count", "Кол-во гостей", 120),
        ColumnDef("phone", "Телефон", 160, filter_kind=TEXT, formatter=format_phone, link=phone_href),
        ColumnDef(
            "status", "Статус", 160,
            filter_kind=ENUM,
            formatter=format_status,
            options=tuple(s.value for s in BookingStatus),
        ),
    ),
)

VISITORS_GRID = GridDefinition(
    name="visitors",
    title="Посетители",
    collection="visitors",
    path="/visitors",
    default_sort=SortModel(column="creation_date", direction=SortDirection.DESC),
    columns=(
        ColumnDef("id", "ID", 90),
        ColumnDef("username", "Username", 160, filter_kind=TEXT),
        ColumnDef("name", "Имя", 160, filter_kind=TEXT),
        ColumnDef("real_name", "Настоящее имя", 160, filter_kind=TEXT),
        ColumnDef("creation_date", "Дата создания", 180, filter_kind=DATES, formatter=_local_date),
        ColumnDef("last_visit_date", "Последний визит", 180, filter_kind=DATES, formatter=_local_date),
        ColumnDef("comment", "Комментарий", 240, filter_kind=TEXT, sortable=False, editable=True),
    ),
)

GRIDS = {grid.name: grid for grid in (BOOKINGS_GRID, VISITORS_GRID)}
