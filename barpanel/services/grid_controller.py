"""
View controllers driving one live grid each: state, refetching and edits
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from pydantic import BaseModel

from barpanel.core.config import settings
from barpanel.schemas.grid import FILTERS_ADAPTER, GridPage, GridQuery, SortModel
from barpanel.schemas.visitor import VisitorRow, normalize_comment
from barpanel.services.change_feed import ChangeFeed, change_feed
from barpanel.services.errors import InvalidQuery, StoreError
from barpanel.services.grid_service import GridService
from barpanel.services.grids import GridDefinition, VISITORS_GRID

logger = logging.getLogger(__name__)

Sender = Callable[[Dict[str, Any]], Awaitable[None]]
PageFetcher = Callable[[GridQuery], GridPage]
CommentUpdater = Callable[[int, Optional[str]], VisitorRow]


class GridController:
    """Owns the state of one open grid view.

    Every refetch takes a new request id and its result is applied only if
    no newer request was issued meanwhile, so the most recent request wins
    whichever response arrives last.
    """

    def __init__(
        self,
        grid: GridDefinition,
        fetch: PageFetcher,
        send: Sender,
        feed: ChangeFeed = change_feed,
        page_size: Optional[int] = None
    ):
        self.grid = grid
        self._fetch = fetch
        self._send = send
        self._feed = feed

        self.page = 0
        self.page_size = page_size or settings.PAGE_SIZE
        self.sort: SortModel = grid.default_sort
        self.filters: List[Any] = []

        self.rows: List[BaseModel] = []
        self.row_count = 0
        self.loading = False
        self.stale = False

        self._request_seq = 0
        self._subscription = None
        self._tasks: Set[asyncio.Task] = set()

    # -------- lifecycle --------

    async def open(self) -> None:
        """Start listening for changes and load the first page"""
        self._subscription = self._feed.subscribe(self.grid.collection, self._on_change)
        await self.refresh()

    async def close(self) -> None:
        """Release the change subscription and cancel in-flight work"""
        if self._subscription is not None:
            self._feed.unsubscribe(self._subscription)
            self._subscription = None

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None

    def spawn(self, coro) -> asyncio.Task:
        """Run a coroutine as a task owned by this view"""
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait until no task spawned by this view is running"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _on_change(self, change_type: str) -> None:
        # May already be queued on the loop when the view closes
        if self._subscription is None:
            return
        logger.debug(f"{self.grid.collection} changed ({change_type}), refetching")
        self.spawn(self.refresh())

    # -------- state --------

    def current_query(self) -> GridQuery:
        return self.grid.build_query(self.page, self.page_size, self.sort, self.filters)

    async def set_page(self, page: int) -> None:
        await self._update_state(page=page)

    async def set_page_size(self, page_size: int) -> None:
        await self._update_state(page=0, page_size=page_size)

    async def set_sort(self, sort: SortModel) -> None:
        await self._update_state(sort=sort)

    async def set_filters(self, filters: List[Any]) -> None:
        await self._update_state(page=0, filters=filters)

    async def _update_state(self, **changes) -> None:
        state = {
            "page": self.page,
            "page_size": self.page_size,
            "sort": self.sort,
            "filters": self.filters,
        }
        state.update(changes)
        # Raises before touching the view if the new state is not a valid query
        self.grid.build_query(**state)
        for name, value in state.items():
            setattr(self, name, value)
        await self.refresh()

    # -------- reads --------

    async def refresh(self) -> bool:
        """Re-run the query for the current state.

        Returns True when the response was applied to the view.
        """
        self._request_seq += 1
        request_id = self._request_seq
        grid_query = self.current_query()

        self.loading = True
        await self._send({"type": "loading", "grid": self.grid.name, "loading": True, "request_id": request_id})

        try:
            page = await asyncio.to_thread(self._fetch, grid_query)
        except StoreError as e:
            logger.warning(f"Failed to load {self.grid.name} page {grid_query.page}, keeping previous rows: {e}")
            if request_id == self._request_seq:
                self.loading = False
                self.stale = True
                await self._push_rows(request_id)
            return False
        except InvalidQuery as e:
            if request_id == self._request_seq:
                self.loading = False
                await self._send({"type": "error", "grid": self.grid.name, "message": str(e)})
                await self._push_rows(request_id)
            return False
        except Exception:
            # Any other failure still ends the load and marks the rows stale
            logger.exception(f"Unexpected error loading {self.grid.name} page {grid_query.page}")
            if request_id == self._request_seq:
                self.loading = False
                self.stale = True
                await self._push_rows(request_id)
            return False

        if request_id != self._request_seq:
            logger.debug(f"Discarding superseded {self.grid.name} response #{request_id}")
            return False

        self.rows = self._merge_rows(page.rows)
        self.row_count = page.row_count
        self.loading = False
        self.stale = False
        await self._push_rows(request_id)
        return True

    def _merge_rows(self, rows: List[BaseModel]) -> List[BaseModel]:
        return list(rows)

    # -------- messages --------

    async def handle_message(self, message: Dict[str, Any]) -> None:
        """Apply one client intent; invalid input is answered with an error message"""
        kind = message.get("type")
        try:
            if kind == "set_page":
                await self.set_page(int(message["page"]))
            elif kind == "set_page_size":
                await self.set_page_size(int(message["page_size"]))
            elif kind == "set_sort":
                await self.set_sort(SortModel(**message["sort"]))
            elif kind == "set_filters":
                await self.set_filters(FILTERS_ADAPTER.validate_python(message.get("filters") or []))
            elif kind == "refresh":
                await self.refresh()
            else:
                await self._handle_extra(kind, message)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Rejected {self.grid.name} message {kind}: {e}")
            await self._send({"type": "error", "grid": self.grid.name, "message": f"Invalid '{kind}' message: {e}"})

    async def _handle_extra(self, kind: Optional[str], message: Dict[str, Any]) -> None:
        raise ValueError(f"unknown message type for {self.grid.name}")

    async def notify(self, severity: str, message: str) -> None:
        """Transient notification, dismissed by the client after auto_hide_ms"""
        await self._send({
            "type": "notification",
            "grid": self.grid.name,
            "severity": severity,
            "message": message,
            "auto_hide_ms": settings.NOTIFICATION_AUTO_HIDE_MS,
        })

    def snapshot(self, request_id: Optional[int] = None) -> Dict[str, Any]:
        return {
            "type": "rows",
            "grid": self.grid.name,
            "request_id": request_id if request_id is not None else self._request_seq,
            "page": self.page,
            "page_size": self.page_size,
            "row_count": self.row_count,
            "loading": self.loading,
            "stale": self.stale,
            "rows": self.grid.render_rows(self.rows),
        }

    async def _push_rows(self, request_id: int) -> None:
        await self._send(self.snapshot(request_id))


class VisitorsGridController(GridController):
    """Visitors view: adds the optimistic comment edit"""

    def __init__(
        self,
        grid: GridDefinition,
        fetch: PageFetcher,
        update_comment: CommentUpdater,
        send: Sender,
        feed: ChangeFeed = change_feed,
        page_size: Optional[int] = None
    ):
        super().__init__(grid, fetch, send, feed=feed, page_size=page_size)
        self._update_comment = update_comment
        # visitor id -> comment being persisted
        self._pending_edits: Dict[int, Optional[str]] = {}

    def find_row(self, row_id: int) -> Optional[VisitorRow]:
        for row in self.rows:
            if row.id == row_id:
                return row
        return None

    def _replace_row(self, new_row: VisitorRow) -> bool:
        for index, row in enumerate(self.rows):
            if row.id == new_row.id:
                self.rows[index] = new_row
                return True
        return False

    def _merge_rows(self, rows):
        # A refetch landing mid-edit keeps the optimistic value
        return [
            row.model_copy(update={"comment": self._pending_edits[row.id]})
            if row.id in self._pending_edits else row
            for row in rows
        ]

    async def _push_row(self, row_id: int) -> None:
        row = self.find_row(row_id)
        if row is not None:
            await self._send({"type": "row", "grid": self.grid.name, "row": self.grid.render_row(row)})

    async def edit_comment(self, row_id: int, comment: Optional[str]) -> bool:
        """Show the new comment at once, persist it, and roll back on failure.

        Returns True when the store accepted the change.
        """
        previous = self.find_row(row_id)
        if previous is None:
            await self.notify("error", "Посетитель не найден на текущей странице")
            return False

        comment = normalize_comment(comment)
        self._replace_row(previous.model_copy(update={"comment": comment}))
        self._pending_edits[row_id] = comment
        await self._push_row(row_id)

        try:
            await asyncio.to_thread(self._update_comment, row_id, comment)
        except StoreError as e:
            logger.error(f"Failed to update comment for visitor {row_id}: {e}")
            self._pending_edits.pop(row_id, None)
            self._replace_row(previous)
            await self._push_row(row_id)
            await self.notify("error", "Не удалось сохранить комментарий")
            return False

        self._pending_edits.pop(row_id, None)
        await self.notify("success", "Комментарий сохранён")
        return True

    async def _handle_extra(self, kind, message):
        if kind != "edit_comment":
            await super()._handle_extra(kind, message)
            return
        await self.edit_comment(int(message["id"]), message.get("comment"))


def create_controller(grid: GridDefinition, send: Sender, feed: ChangeFeed = change_feed) -> GridController:
    """Controller for a grid, wired to the active storage backend"""
    fetch = GridService.page_fetcher(grid)
    if grid.name == VISITORS_GRID.name:
        return VisitorsGridController(grid, fetch, GridService.comment_updater(), send, feed=feed)
    return GridController(grid, fetch, send, feed=feed)
