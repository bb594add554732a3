"""
Change announcement hooks for writers outside this process
"""

from typing import Optional
from fastapi import APIRouter, Header

from barpanel.core.config import settings
from barpanel.schemas.changes import DbChangeEvent
from barpanel.services.change_feed import WATCHED_COLLECTIONS, change_feed
from barpanel.utils.responses import success_response, error_response, unauthorized_error

router = APIRouter()

@router.post("/db-change")
async def db_change(
    change: DbChangeEvent,
    x_webhook_secret: Optional[str] = Header(None)
):
    """Accept a database webhook and notify open grids of the change"""
    if settings.WEBHOOK_SECRET and x_webhook_secret != settings.WEBHOOK_SECRET:
        raise unauthorized_error("Invalid webhook secret")

    if change.table not in WATCHED_COLLECTIONS:
        return error_response(
            message=f"Table '{change.table}' is not watched",
            error_code="unwatched_table",
            status_code=404
        )

    delivered = change_feed.publish(change.table, change.type)

    return success_response(
        message="Change accepted",
        data={
            "table": change.table,
            "type": change.type,
            "subscribers": delivered
        }
    )
