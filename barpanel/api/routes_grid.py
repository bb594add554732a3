"""
Grid data API routes
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from barpanel.core.db import get_db
from barpanel.schemas.grid import FILTERS_ADAPTER, GridQuery, SortDirection, SortModel
from barpanel.schemas.visitor import CommentUpdate
from barpanel.services.errors import InvalidQuery, RowNotFound, StoreError
from barpanel.services.export_service import ExportService
from barpanel.services.grid_service import GridService
from barpanel.services.grids import BOOKINGS_GRID, GRIDS, VISITORS_GRID, GridDefinition
from barpanel.utils.responses import success_response, store_unavailable, validation_error, not_found_error

logger = logging.getLogger(__name__)

router = APIRouter()

def parse_grid_query(
    grid: GridDefinition,
    page: int,
    page_size: Optional[int],
    sort_field: Optional[str],
    sort_dir: SortDirection,
    filters: Optional[str]
) -> GridQuery:
    """Build a grid query from request parameters; filters arrive as a JSON list"""
    try:
        parsed_filters = FILTERS_ADAPTER.validate_json(filters) if filters else []
        sort = SortModel(column=sort_field, direction=sort_dir) if sort_field else None
        return grid.build_query(page, page_size, sort, parsed_filters)
    except ValueError as e:
        validation_error("Invalid grid query", [str(e)])

def load_page(grid: GridDefinition, grid_query: GridQuery, db: Session):
    """Fetch a page; invalid queries become 422, store failures return None"""
    try:
        return GridService.fetch_page(grid, grid_query, db)
    except InvalidQuery as e:
        validation_error("Invalid grid query", [str(e)])
    except StoreError as e:
        logger.warning(f"{grid.name} read failed: {e}")
        return None

def grid_page_response(grid: GridDefinition, grid_query: GridQuery, db: Session):
    page = load_page(grid, grid_query, db)
    if page is None:
        return store_unavailable(f"Failed to load {grid.name}")

    return success_response(
        message=f"{grid.title}: page {page.page}",
        data={
            "rows": grid.render_rows(page.rows),
            "row_count": page.row_count,
            "page": page.page,
            "page_size": page.page_size,
            "columns": grid.describe_columns()
        }
    )

@router.get("/bookings")
async def list_bookings(
    page: int = Query(0, ge=0),
    page_size: Optional[int] = Query(None, ge=1),
    sort_field: Optional[str] = Query(None),
    sort_dir: SortDirection = Query(SortDirection.DESC),
    filters: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    """One page of bookings with visitor names joined in"""
    grid_query = parse_grid_query(BOOKINGS_GRID, page, page_size, sort_field, sort_dir, filters)
    return grid_page_response(BOOKINGS_GRID, grid_query, db)

@router.get("/visitors")
async def list_visitors(
    page: int = Query(0, ge=0),
    page_size: Optional[int] = Query(None, ge=1),
    sort_field: Optional[str] = Query(None),
    sort_dir: SortDirection = Query(SortDirection.DESC),
    filters: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    """One page of visitors"""
    grid_query = parse_grid_query(VISITORS_GRID, page, page_size, sort_field, sort_dir, filters)
    return grid_page_response(VISITORS_GRID, grid_query, db)

@router.get("/{grid_name}/export.csv")
async def export_grid(
    grid_name: str,
    page: int = Query(0, ge=0),
    page_size: Optional[int] = Query(None, ge=1),
    sort_field: Optional[str] = Query(None),
    sort_dir: SortDirection = Query(SortDirection.DESC),
    filters: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    """Download the rows the grid shows for this query, as displayed"""
    grid = GRIDS.get(grid_name)
    if grid is None:
        raise not_found_error("Grid")

    grid_query = parse_grid_query(grid, page, page_size, sort_field, sort_dir, filters)
    page_data = load_page(grid, grid_query, db)
    if page_data is None:
        return store_unavailable(f"Failed to export {grid.name}")

    return Response(
        content=ExportService.export_csv(grid, page_data),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f"attachment; filename={ExportService.export_filename(grid)}"}
    )

@router.patch("/visitors/{visitor_id}/comment")
async def update_visitor_comment(
    visitor_id: int,
    update: CommentUpdate,
    db: Session = Depends(get_db)
):
    """Set or clear a visitor's comment"""
    try:
        row = GridService.update_visitor_comment(visitor_id, update.comment, db)
    except RowNotFound:
        raise not_found_error("Visitor")
    except StoreError as e:
        logger.error(f"Failed to update comment for visitor {visitor_id}: {e}")
        return store_unavailable("Не удалось сохранить комментарий")

    return success_response(
        message="Комментарий сохранён",
        data=VISITORS_GRID.render_row(row)
    )
