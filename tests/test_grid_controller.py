"""
Tests for the live grid controllers: refetching, sequencing and comment edits
"""

import asyncio
import threading
from datetime import datetime, timedelta, timezone

import firebase_admin
import pytest

from barpanel.core.config import settings
from barpanel.schemas.grid import GridPage
from barpanel.schemas.visitor import VisitorRow
from barpanel.services.change_feed import ChangeFeed
from barpanel.services.errors import RowNotFound, StoreError
from barpanel.services.firebase_client import get_firestore_client
from barpanel.services.grid_controller import GridController, VisitorsGridController
from barpanel.services.grid_service import GridService
from barpanel.services.grids import BOOKINGS_GRID, VISITORS_GRID

BASE_TIME = datetime(2024, 6, 1, 18, 0, tzinfo=timezone.utc)

class FakeVisitorStore:
    """In-memory visitors collection with switchable failures"""

    def __init__(self, count: int = 15):
        self.rows = {
            i: VisitorRow(
                id=i,
                username=f"guest_{i}",
                creation_date=BASE_TIME + timedelta(days=i),
                comment="regular" if i == 5 else None
            )
            for i in range(1, count + 1)
        }
        self.fail_reads = False
        self.fail_updates = False
        self.fetch_calls = 0
        self.update_calls = []

    def fetch(self, grid_query):
        self.fetch_calls += 1
        if self.fail_reads:
            raise StoreError("database unavailable")
        ordered = sorted(self.rows.values(), key=lambda r: r.creation_date, reverse=True)
        rows = ordered[grid_query.offset:grid_query.offset + grid_query.page_size]
        return GridPage(rows=rows, row_count=len(ordered), page=grid_query.page, page_size=grid_query.page_size)

    def update_comment(self, visitor_id, comment):
        self.update_calls.append((visitor_id, comment))
        if self.fail_updates:
            raise StoreError("write rejected")
        if visitor_id not in self.rows:
            raise RowNotFound("visitors", visitor_id)
        self.rows[visitor_id] = self.rows[visitor_id].model_copy(update={"comment": comment})
        return self.rows[visitor_id]

class Recorder:
    """Collects messages the controller sends to the client"""

    def __init__(self):
        self.messages = []

    async def __call__(self, message):
        self.messages.append(message)

    def of_type(self, kind):
        return [m for m in self.messages if m["type"] == kind]

def make_visitors_controller(store, feed=None, page_size=10):
    recorder = Recorder()
    controller = VisitorsGridController(
        VISITORS_GRID,
        store.fetch,
        store.update_comment,
        recorder,
        feed=feed or ChangeFeed(),
        page_size=page_size
    )
    return controller, recorder

async def settle(controller):
    """Let scheduled change callbacks run, then wait for their refetches"""
    await asyncio.sleep(0)
    await controller.drain()

def comment_of(controller, row_id):
    return controller.find_row(row_id).comment

def test_open_subscribes_and_loads_first_page():
    store = FakeVisitorStore()
    feed = ChangeFeed()

    async def scenario():
        controller, recorder = make_visitors_controller(store, feed)
        await controller.open()
        assert feed.get_subscriber_count("visitors") == 1
        assert controller.subscribed
        await controller.close()
        return controller, recorder

    controller, recorder = asyncio.run(scenario())

    assert len(controller.rows) == 10
    assert controller.row_count == 15
    assert controller.rows[0].id == 15
    assert feed.get_subscriber_count("visitors") == 0
    assert not controller.subscribed

    snapshot = recorder.of_type("rows")[-1]
    assert snapshot["loading"] is False
    assert snapshot["stale"] is False
    assert len(snapshot["rows"]) == 10

def test_change_event_triggers_refetch():
    store = FakeVisitorStore()
    feed = ChangeFeed()

    async def scenario():
        controller, _ = make_visitors_controller(store, feed)
        await controller.open()
        store.rows[16] = VisitorRow(id=16, creation_date=BASE_TIME + timedelta(days=40))
        feed.publish("visitors", "INSERT")
        await settle(controller)
        await controller.close()
        return controller

    controller = asyncio.run(scenario())

    assert store.fetch_calls == 2
    assert controller.row_count == 16
    assert controller.rows[0].id == 16

def test_change_on_other_collection_is_ignored():
    store = FakeVisitorStore()
    feed = ChangeFeed()

    async def scenario():
        controller, _ = make_visitors_controller(store, feed)
        await controller.open()
        feed.publish("bookings", "UPDATE")
        await settle(controller)
        await controller.close()

    asyncio.run(scenario())
    assert store.fetch_calls == 1

def test_each_change_event_refetches():
    store = FakeVisitorStore()
    feed = ChangeFeed()

    async def scenario():
        controller, _ = make_visitors_controller(store, feed)
        await controller.open()
        for change_type in ("INSERT", "UPDATE", "DELETE"):
            feed.publish("visitors", change_type)
        await settle(controller)
        await controller.close()

    asyncio.run(scenario())
    assert store.fetch_calls == 4

def test_change_published_from_another_thread():
    store = FakeVisitorStore()
    feed = ChangeFeed()

    async def scenario():
        controller, _ = make_visitors_controller(store, feed)
        await controller.open()
        publisher = threading.Thread(target=feed.publish, args=("visitors", "UPDATE"))
        publisher.start()
        await asyncio.to_thread(publisher.join)
        await settle(controller)
        await controller.close()

    asyncio.run(scenario())
    assert store.fetch_calls == 2

def test_set_page_and_filters():
    store = FakeVisitorStore()

    async def scenario():
        controller, _ = make_visitors_controller(store)
        await controller.open()
        await controller.set_page(1)
        page_one = [row.id for row in controller.rows]
        await controller.handle_message({
            "type": "set_filters",
            "filters": [{"kind": "text_contains", "column": "username", "value": "guest"}]
        })
        await controller.close()
        return controller, page_one

    controller, page_one = asyncio.run(scenario())

    assert page_one == [5, 4, 3, 2, 1]
    # Changing filters returns to the first page
    assert controller.page == 0
    assert len(controller.filters) == 1

def test_invalid_message_leaves_state_untouched():
    store = FakeVisitorStore()

    async def scenario():
        controller, recorder = make_visitors_controller(store)
        await controller.open()
        await controller.handle_message({
            "type": "set_filters",
            "filters": [{"kind": "text_contains", "column": "creation_date", "value": "2024"}]
        })
        await controller.handle_message({"type": "set_page", "page": -1})
        await controller.handle_message({"type": "dance"})
        await controller.close()
        return controller, recorder

    controller, recorder = asyncio.run(scenario())

    assert len(recorder.of_type("error")) == 3
    assert controller.filters == []
    assert controller.page == 0
    assert store.fetch_calls == 1

def test_superseded_response_is_discarded():
    store = FakeVisitorStore()
    release_first = threading.Event()
    first_started = threading.Event()

    def fetch(grid_query):
        if grid_query.page == 0:
            first_started.set()
            release_first.wait(timeout=5)
        return store.fetch(grid_query)

    async def scenario():
        recorder = Recorder()
        controller = GridController(VISITORS_GRID, fetch, recorder, feed=ChangeFeed(), page_size=10)
        slow = asyncio.create_task(controller.refresh())
        await asyncio.to_thread(first_started.wait, 5)
        await controller.set_page(1)
        release_first.set()
        applied = await slow
        return controller, recorder, applied

    controller, recorder, applied = asyncio.run(scenario())

    assert applied is False
    assert controller.page == 1
    assert [row.id for row in controller.rows] == [5, 4, 3, 2, 1]
    assert len(recorder.of_type("rows")) == 1

def test_read_failure_keeps_rows_and_flags_stale():
    store = FakeVisitorStore()

    async def scenario():
        controller, recorder = make_visitors_controller(store)
        await controller.open()
        before = list(controller.rows)
        store.fail_reads = True
        applied = await controller.refresh()
        await controller.close()
        return controller, recorder, before, applied

    controller, recorder, before, applied = asyncio.run(scenario())

    assert applied is False
    assert controller.rows == before
    assert controller.loading is False
    assert controller.stale is True
    assert recorder.of_type("rows")[-1]["stale"] is True
    assert recorder.of_type("notification") == []

def test_edit_comment_success():
    store = FakeVisitorStore()

    async def scenario():
        controller, recorder = make_visitors_controller(store, page_size=20)
        await controller.open()
        ok = await controller.edit_comment(5, "VIP, table 3")
        await controller.close()
        return controller, recorder, ok

    controller, recorder, ok = asyncio.run(scenario())

    assert ok is True
    assert comment_of(controller, 5) == "VIP, table 3"
    assert store.rows[5].comment == "VIP, table 3"

    row_updates = recorder.of_type("row")
    assert row_updates[0]["row"]["display"]["comment"] == "VIP, table 3"

    notification = recorder.of_type("notification")[-1]
    assert notification["severity"] == "success"
    assert notification["auto_hide_ms"] > 0

def test_edit_comment_failure_rolls_back():
    store = FakeVisitorStore()
    store.fail_updates = True

    async def scenario():
        controller, recorder = make_visitors_controller(store, page_size=20)
        await controller.open()
        ok = await controller.edit_comment(5, "VIP, table 3")
        await controller.close()
        return controller, recorder, ok

    controller, recorder, ok = asyncio.run(scenario())

    assert ok is False
    assert comment_of(controller, 5) == "regular"
    assert store.rows[5].comment == "regular"
    assert store.update_calls == [(5, "VIP, table 3")]

    shown = [m["row"]["data"]["comment"] for m in recorder.of_type("row")]
    assert shown == ["VIP, table 3", "regular"]

    notification = recorder.of_type("notification")[-1]
    assert notification["severity"] == "error"

def test_empty_comment_becomes_none():
    store = FakeVisitorStore()

    async def scenario():
        controller, _ = make_visitors_controller(store, page_size=20)
        await controller.open()
        await controller.handle_message({"type": "edit_comment", "id": 5, "comment": ""})
        await controller.close()
        return controller

    controller = asyncio.run(scenario())

    assert store.update_calls == [(5, None)]
    assert comment_of(controller, 5) is None
    assert VISITORS_GRID.render_row(controller.find_row(5))["display"]["comment"] == ""

def test_edit_unknown_row_does_not_touch_store():
    store = FakeVisitorStore()

    async def scenario():
        controller, recorder = make_visitors_controller(store)
        await controller.open()
        ok = await controller.edit_comment(1, "off page")  # row 1 is on page 2
        await controller.close()
        return recorder, ok

    recorder, ok = asyncio.run(scenario())

    assert ok is False
    assert store.update_calls == []
    assert recorder.of_type("notification")[-1]["severity"] == "error"

def test_refetch_during_edit_keeps_optimistic_value():
    store = FakeVisitorStore()
    update_started = threading.Event()
    release_update = threading.Event()

    def slow_update(visitor_id, comment):
        update_started.set()
        release_update.wait(timeout=5)
        return store.update_comment(visitor_id, comment)

    async def scenario():
        recorder = Recorder()
        controller = VisitorsGridController(VISITORS_GRID, store.fetch, slow_update, recorder, feed=ChangeFeed(), page_size=20)
        await controller.open()
        edit = asyncio.create_task(controller.edit_comment(5, "VIP, table 3"))
        await asyncio.to_thread(update_started.wait, 5)
        await controller.refresh()
        during = comment_of(controller, 5)
        release_update.set()
        await edit
        await controller.close()
        return during

    during = asyncio.run(scenario())
    assert during == "VIP, table 3"

def test_bookings_controller_rejects_comment_edits():
    def fetch(grid_query):
        return GridPage(rows=[], row_count=0, page=grid_query.page, page_size=grid_query.page_size)

    async def scenario():
        recorder = Recorder()
        controller = GridController(BOOKINGS_GRID, fetch, recorder, feed=ChangeFeed())
        await controller.open()
        await controller.handle_message({"type": "edit_comment", "id": 1, "comment": "x"})
        await controller.close()
        return recorder

    recorder = asyncio.run(scenario())
    assert len(recorder.of_type("error")) == 1

@pytest.mark.parametrize("kind", ["set_page", "set_page_size"])
def test_numeric_intents_require_a_value(kind):
    store = FakeVisitorStore()

    async def scenario():
        controller, recorder = make_visitors_controller(store)
        await controller.open()
        await controller.handle_message({"type": kind})
        await controller.close()
        return recorder

    recorder = asyncio.run(scenario())
    assert len(recorder.of_type("error")) == 1

def test_unexpected_read_error_ends_loading():
    store = FakeVisitorStore()

    def fetch(grid_query):
        if store.fetch_calls:
            raise RuntimeError("document decoder crashed")
        return store.fetch(grid_query)

    async def scenario():
        recorder = Recorder()
        controller = GridController(VISITORS_GRID, fetch, recorder, feed=ChangeFeed())
        await controller.open()
        controller.spawn(controller.refresh())
        await controller.drain()
        await controller.close()
        return controller, recorder

    controller, recorder = asyncio.run(scenario())

    assert controller.loading is False
    assert controller.stale is True
    assert len(controller.rows) == 10
    assert recorder.of_type("rows")[-1]["stale"] is True

def test_firestore_without_credentials_marks_view_stale(monkeypatch):
    monkeypatch.setattr(settings, "USE_FIREBASE", True)
    monkeypatch.setattr(settings, "FIREBASE_CREDENTIALS_JSON", None)
    monkeypatch.setattr(settings, "FIREBASE_CREDENTIALS_B64", None)
    monkeypatch.setattr(settings, "FIREBASE_CREDENTIALS_FILE", None)
    monkeypatch.setattr(firebase_admin, "_apps", {})
    get_firestore_client.cache_clear()

    async def scenario():
        recorder = Recorder()
        controller = GridController(VISITORS_GRID, GridService.page_fetcher(VISITORS_GRID), recorder, feed=ChangeFeed())
        controller.spawn(controller.refresh())
        await controller.drain()
        return controller

    try:
        controller = asyncio.run(scenario())
    finally:
        get_firestore_client.cache_clear()

    assert controller.loading is False
    assert controller.stale is True

def test_zero_page_size_is_rejected():
    store = FakeVisitorStore()

    async def scenario():
        controller, recorder = make_visitors_controller(store)
        await controller.open()
        await controller.handle_message({"type": "set_page_size", "page_size": 0})
        await controller.close()
        return controller, recorder

    controller, recorder = asyncio.run(scenario())

    assert len(recorder.of_type("error")) == 1
    assert controller.page_size == 10
    assert {m["page_size"] for m in recorder.of_type("rows")} == {10}
    assert store.fetch_calls == 1

def test_change_queued_before_close_is_ignored():
    store = FakeVisitorStore()
    feed = ChangeFeed()

    async def scenario():
        controller, _ = make_visitors_controller(store, feed)
        await controller.open()
        # Delivered on the next loop iteration, after the view has closed
        feed.publish("visitors", "UPDATE")
        await controller.close()
        await settle(controller)
        return controller

    controller = asyncio.run(scenario())
    assert store.fetch_calls == 1
    assert controller.row_count == 15
