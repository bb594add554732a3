"""
Grid read/write operations dispatched to the active storage backend
"""

import logging
from typing import Callable, Optional

from google.api_core import exceptions as gcloud_exceptions
from google.auth import exceptions as auth_exceptions
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from barpanel.core.db import SessionLocal
from barpanel.schemas.grid import GridPage, GridQuery
from barpanel.schemas.visitor import VisitorRow, normalize_comment
from barpanel.services.errors import StoreError
from barpanel.services.grids import GridDefinition
from barpanel.services.repositories import BookingRepo, VisitorRepo, use_firestore

logger = logging.getLogger(__name__)

REPOS = {
    BookingRepo.COLLECTION: BookingRepo,
    VisitorRepo.COLLECTION: VisitorRepo,
}

# Malformed documents surface as ValidationError while building rows
BACKEND_ERRORS = (
    SQLAlchemyError,
    gcloud_exceptions.GoogleAPIError,
    auth_exceptions.GoogleAuthError,
    ValidationError,
)


class GridService:
    """Service for reading grid pages and applying the comment edit"""

    @staticmethod
    def fetch_page(grid: GridDefinition, grid_query: GridQuery, db: Optional[Session] = None) -> GridPage:
        """Fetch one page of a grid's collection"""
        grid.validate_query(grid_query)
        repo = REPOS[grid.collection]
        try:
            if use_firestore():
                return repo.page_fs(grid_query)
            return repo.page_sql(db, grid_query)
        except BACKEND_ERRORS as e:
            raise StoreError(f"Failed to read {grid.collection}: {e}") from e

    @staticmethod
    def update_visitor_comment(visitor_id: int, comment: Optional[str], db: Optional[Session] = None) -> VisitorRow:
        """Persist a visitor comment; an empty comment is stored as no comment"""
        comment = normalize_comment(comment)
        try:
            if use_firestore():
                row = VisitorRepo.update_comment_fs(visitor_id, comment)
            else:
                row = VisitorRepo.update_comment_sql(db, visitor_id, comment)
        except BACKEND_ERRORS as e:
            raise StoreError(f"Failed to update visitor {visitor_id}: {e}") from e
        logger.info(f"Visitor {visitor_id} comment updated")
        return row

    @staticmethod
    def page_fetcher(grid: GridDefinition) -> Callable[[GridQuery], GridPage]:
        """Blocking fetch function that opens its own session, for use off the event loop"""
        def fetch(grid_query: GridQuery) -> GridPage:
            if use_firestore():
                return GridService.fetch_page(grid, grid_query)
            db = SessionLocal()
            try:
                return GridService.fetch_page(grid, grid_query, db)
            finally:
                db.close()
        return fetch

    @staticmethod
    def comment_updater() -> Callable[[int, Optional[str]], VisitorRow]:
        def update(visitor_id: int, comment: Optional[str]) -> VisitorRow:
            if use_firestore():
                return GridService.update_visitor_comment(visitor_id, comment)
            db = SessionLocal()
            try:
                return GridService.update_visitor_comment(visitor_id, comment, db)
            finally:
                db.close()
        return update
