"""
Repository layer abstracting storage (SQLAlchemy vs Firebase Firestore).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from google.api_core import exceptions as gcloud_exceptions
from sqlalchemy.orm import Session

from barpanel.core.config import settings
from barpanel.models import Booking, Visitor
from barpanel.schemas.booking import BookingRow
from barpanel.schemas.grid import DateRange, EnumEquals, GridPage, GridQuery, SortDirection, TextContains
from barpanel.schemas.visitor import VisitorRow
from barpanel.services.errors import InvalidQuery, RowNotFound
from barpanel.services.firebase_client import get_collection, get_firestore_client


def use_firestore() -> bool:
    return settings.USE_FIREBASE is True


# -------- shared query helpers --------

def _apply_filters_sql(query, filters, columns: Dict[str, Any]):
    for flt in filters:
        column = columns[flt.column]
        if isinstance(flt, TextContains):
            query = query.filter(column.icontains(flt.value, autoescape=True))
        elif isinstance(flt, EnumEquals):
            query = query.filter(column == flt.value)
        elif isinstance(flt, DateRange):
            if flt.start is not None:
                query = query.filter(column >= flt.start)
            if flt.end is not None:
                query = query.filter(column < flt.end)
    return query


def _order_sql(query, grid_query: GridQuery, columns: Dict[str, Any], tiebreak):
    column = columns[grid_query.sort.column]
    if grid_query.sort.direction == SortDirection.ASC:
        return query.order_by(column.asc(), tiebreak.asc())
    return query.order_by(column.desc(), tiebreak.desc())


def _apply_filters_fs(ref, filters, joined: tuple = ()):
    for flt in filters:
        if flt.column in joined:
            raise InvalidQuery(f"Filtering on '{flt.column}' is not supported by the Firestore backend")
        if isinstance(flt, TextContains):
            # Firestore has no substring match; use a prefix range instead
            ref = ref.where(flt.column, ">=", flt.value).where(flt.column, "<", flt.value + "\uf8ff")
        elif isinstance(flt, EnumEquals):
            ref = ref.where(flt.column, "==", flt.value)
        elif isinstance(flt, DateRange):
            if flt.start is not None:
                ref = ref.where(flt.column, ">=", flt.start)
            if flt.end is not None:
                ref = ref.where(flt.column, "<", flt.end)
    return ref


def _page_fs(ref, grid_query: GridQuery):
    """Return (documents of the requested page, exact filtered count)"""
    from firebase_admin import firestore

    total = ref.count().get()[0][0].value
    direction = firestore.Query.ASCENDING if grid_query.sort.direction == SortDirection.ASC else firestore.Query.DESCENDING
    docs = ref.order_by(grid_query.sort.column, direction=direction).offset(grid_query.offset).limit(grid_query.page_size).get()
    return docs, int(total)


def _doc_to_dict(doc) -> Dict[str, Any]:
    data = doc.to_dict() or {}
    data.setdefault("id", doc.id)
    return data


# -------- Booking repository --------

class BookingRepo:
    COLLECTION = "bookings"
    JOINED = ("username", "real_name")

    @staticmethod
    def _columns_sql() -> Dict[str, Any]:
        return {
            "id": Booking.id,
            "userid": Booking.userid,
            "username": Visitor.username,
            "real_name": Visitor.real_name,
            "date": Booking.date,
            "visitors_count": Booking.visitors_count,
            "phone": Booking.phone,
            "status": Booking.status,
        }

    @staticmethod
    def page_sql(db: Session, grid_query: GridQuery) -> GridPage:
        columns = BookingRepo._columns_sql()
        query = db.query(Booking, Visitor.username, Visitor.real_name).outerjoin(Visitor, Visitor.id == Booking.userid)
        query = _apply_filters_sql(query, grid_query.filters, columns)

        total = query.order_by(None).count()
        results = _order_sql(query, grid_query, columns, Booking.id).offset(grid_query.offset).limit(grid_query.page_size).all()

        rows = [
            BookingRow(
                id=booking.id,
                userid=booking.userid,
                date=booking.date,
                visitors_count=booking.visitors_count,
                phone=booking.phone,
                status=booking.status,
                username=username or "",
                real_name=real_name or "",
            )
            for booking, username, real_name in results
        ]
        return GridPage(rows=rows, row_count=total, page=grid_query.page, page_size=grid_query.page_size)

    # Firestore shape: collection "bookings/{id}", visitors joined by document id str(userid)
    @staticmethod
    def page_fs(grid_query: GridQuery) -> GridPage:
        ref = _apply_filters_fs(get_collection(BookingRepo.COLLECTION), grid_query.filters, BookingRepo.JOINED)
        docs, total = _page_fs(ref, grid_query)
        bookings = [_doc_to_dict(d) for d in docs]

        visitors = VisitorRepo.get_many_fs({b.get("userid") for b in bookings if b.get("userid") is not None})
        rows: List[BookingRow] = []
        for booking in bookings:
            visitor = visitors.get(str(booking.get("userid")), {})
            booking["username"] = visitor.get("username") or ""
            booking["real_name"] = visitor.get("real_name") or ""
            rows.append(BookingRow(**booking))
        return GridPage(rows=rows, row_count=total, page=grid_query.page, page_size=grid_query.page_size)


# -------- Visitor repository --------

class VisitorRepo:
    COLLECTION = "visitors"

    @staticmethod
    def _columns_sql() -> Dict[str, Any]:
        return {name: getattr(Visitor, name) for name in VisitorRow.model_fields}

    @staticmethod
    def page_sql(db: Session, grid_query: GridQuery) -> GridPage:
        columns = VisitorRepo._columns_sql()
        query = _apply_filters_sql(db.query(Visitor), grid_query.filters, columns)

        total = query.order_by(None).count()
        visitors = _order_sql(query, grid_query, columns, Visitor.id).offset(grid_query.offset).limit(grid_query.page_size).all()

        rows = [VisitorRow.model_validate(v) for v in visitors]
        return GridPage(rows=rows, row_count=total, page=grid_query.page, page_size=grid_query.page_size)

    @staticmethod
    def update_comment_sql(db: Session, visitor_id: int, comment: Optional[str]) -> VisitorRow:
        visitor = db.get(Visitor, visitor_id)
        if visitor is None:
            raise RowNotFound(VisitorRepo.COLLECTION, visitor_id)
        visitor.comment = comment
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(visitor)
        return VisitorRow.model_validate(visitor)

    # Firestore visitor docs under collection visitors/{id}
    @staticmethod
    def page_fs(grid_query: GridQuery) -> GridPage:
        ref = _apply_filters_fs(get_collection(VisitorRepo.COLLECTION), grid_query.filters)
        docs, total = _page_fs(ref, grid_query)
        rows = [VisitorRow(**_doc_to_dict(d)) for d in docs]
        return GridPage(rows=rows, row_count=total, page=grid_query.page, page_size=grid_query.page_size)

    @staticmethod
    def get_many_fs(visitor_ids) -> Dict[str, Dict[str, Any]]:
        """Fetch visitor documents by id; missing ids are simply absent"""
        if not visitor_ids:
            return {}
        fs = get_firestore_client()
        refs = [fs.collection(VisitorRepo.COLLECTION).document(str(vid)) for vid in visitor_ids]
        return {snap.id: snap.to_dict() for snap in fs.get_all(refs) if snap.exists}

    @staticmethod
    def update_comment_fs(visitor_id: int, comment: Optional[str]) -> VisitorRow:
        doc_ref = get_collection(VisitorRepo.COLLECTION).document(str(visitor_id))
        try:
            doc_ref.update({"comment": comment})
        except gcloud_exceptions.NotFound as e:
            raise RowNotFound(VisitorRepo.COLLECTION, visitor_id) from e
        return VisitorRow(**_doc_to_dict(doc_ref.get()))
