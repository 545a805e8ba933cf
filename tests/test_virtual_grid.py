import asyncio
from types import SimpleNamespace

import pytest
from fakes import FakeSource, make_rows

from reflex_virtual_grid.cache import get_result_cache, reset_result_cache
from reflex_virtual_grid.config import GridConfig
from reflex_virtual_grid.models import ColumnDef, LoadStatus
from reflex_virtual_grid.session import GridSession, drop_session, get_session, register_session
from reflex_virtual_grid.virtual_grid import VirtualGridMixin

COLUMNS = [ColumnDef("id"), ColumnDef("name")]


def _unwrap(attr):
    return getattr(attr, "fn", attr)


class _Grid:
    """Plain stand-in for a ``VirtualGridMixin`` state.

    Borrows the mixin's handlers; ``async with self`` is a no-op lock.
    """

    def __init__(self, token="token"):
        self.router = SimpleNamespace(session=SimpleNamespace(client_token=token))
        self.vg_show_column_chooser = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


for _name in (
    "set_data_source",
    "load_vg_first_page",
    "handle_vg_scroll",
    "handle_vg_filter",
    "handle_vg_sort",
    "toggle_vg_column",
    "handle_vg_row_click",
    "handle_vg_key",
    "invalidate_vg_cache",
    "refresh_vg",
    "_vg_session_id",
    "_vg_session",
    "_vg_settle",
    "_sync_vg",
):
    setattr(_Grid, _name, _unwrap(VirtualGridMixin.__dict__[_name]))


@pytest.fixture(autouse=True)
def fresh_cache():
    reset_result_cache()
    yield
    drop_session("_Grid:token")
    reset_result_cache()


async def _loaded_grid(source, *, container_height=450, **config):
    config.setdefault("page_size", 20)
    grid = _Grid()
    steps = list(grid.set_data_source(source, COLUMNS, GridConfig(**config), container_height=container_height))
    assert steps == [None, _Grid.load_vg_first_page]
    await grid.load_vg_first_page()
    return grid


def _pages(source):
    return [page for _, page, _ in source.calls]


def test_set_data_source_registers_a_session_and_loads():
    async def scenario():
        source = FakeSource(make_rows(30))
        grid = await _loaded_grid(source)
        return source, grid

    source, grid = asyncio.run(scenario())
    assert get_session("_Grid:token") is not None
    assert grid.vg_loaded
    assert grid.vg_status == LoadStatus.HAS_MORE.value
    assert grid.vg_row_count == 20
    assert _pages(source) == [1]


def test_first_page_shorter_than_the_body_loads_the_next():
    async def scenario():
        source = FakeSource(make_rows(100))
        grid = await _loaded_grid(source, container_height=1000, load_threshold=0)
        return source, grid

    source, grid = asyncio.run(scenario())
    assert _pages(source) == [1, 2]
    assert grid.vg_row_count == 40


def test_scroll_pushes_the_window_to_the_vars():
    async def scenario():
        grid = await _loaded_grid(FakeSource(make_rows(120)), page_size=50, overscan=2)
        await grid.handle_vg_scroll({"scrollOffset": 900, "containerHeight": 450})
        return grid

    grid = asyncio.run(scenario())
    assert grid.vg_window_start == 18
    assert grid.vg_window_row_ids[0] == "19"
    assert len(grid.vg_window_cells) == 14
    assert grid.vg_body_height == "2250px"
    assert grid.vg_window_transform == "translateY(810px)"
    assert [c["accessor"] for c in grid.vg_visible_columns] == ["id", "name"]


def test_scroll_near_the_end_loads_the_next_page():
    async def scenario():
        source = FakeSource(make_rows(100))
        grid = await _loaded_grid(source, load_threshold=0)
        await grid.handle_vg_scroll({"scrollOffset": 450, "containerHeight": 450})
        return source, grid

    source, grid = asyncio.run(scenario())
    assert _pages(source) == [1, 2]
    assert grid.vg_row_count == 40
    assert grid.vg_status == LoadStatus.HAS_MORE.value


def test_header_click_sorts_loaded_rows_only():
    async def scenario():
        source = FakeSource(make_rows(30))
        grid = await _loaded_grid(source)
        return source, grid

    source, grid = asyncio.run(scenario())
    grid.handle_vg_sort("id")
    assert (grid.vg_sort_key, grid.vg_sort_desc) == ("id", False)
    grid.handle_vg_sort("id")
    assert (grid.vg_sort_key, grid.vg_sort_desc) == ("id", True)
    assert grid.vg_window_row_ids[0] == "20"
    assert len(source.calls) == 1


def test_hidden_column_leaves_the_cells():
    async def scenario():
        return await _loaded_grid(FakeSource(make_rows(3)))

    grid = asyncio.run(scenario())
    grid.toggle_vg_column("id")
    assert grid.vg_window_cells[0] == ["row 1"]
    assert [c["visible"] for c in grid.vg_columns] == [False, True]


def test_filter_change_resets_the_scroll_offset():
    async def scenario():
        grid = await _loaded_grid(FakeSource(make_rows(60)), page_size=60)
        await grid.handle_vg_scroll({"scrollOffset": 900, "containerHeight": 450})
        start_before = grid.vg_window_start
        await grid.handle_vg_filter("name", "row 1")
        return grid, start_before

    grid, start_before = asyncio.run(scenario())
    assert start_before > 0
    assert get_session("_Grid:token").scroll_offset == 0
    assert grid.vg_window_start == 0
    assert grid.vg_filters == {"name": "row 1"}
    assert grid.vg_row_count == 11


def test_filter_change_cancels_a_load_in_flight():
    async def scenario():
        source = FakeSource(make_rows(50))
        source.gates[("", 2)] = asyncio.Event()
        grid = await _loaded_grid(source, load_threshold=0)
        scrolling = asyncio.create_task(
            grid.handle_vg_scroll({"scrollOffset": 450, "containerHeight": 450})
        )
        await asyncio.sleep(0.01)
        assert grid.vg_status == LoadStatus.LOADING_MORE.value
        await grid.handle_vg_filter("name", "row 1")
        await scrolling
        return source, grid

    source, grid = asyncio.run(scenario())
    assert source.cancelled == [({}, 2)]
    assert grid.vg_status == LoadStatus.EXHAUSTED.value
    assert grid.vg_row_count == 11


def test_row_click_and_arrow_keys_select_rows():
    async def scenario():
        return await _loaded_grid(FakeSource(make_rows(50)), page_size=50)

    grid = asyncio.run(scenario())
    grid.handle_vg_row_click("3")
    assert grid.vg_selected_id == "3"
    assert grid.vg_selected_info.startswith("Id: 3\n")

    assert grid.handle_vg_key("ArrowUp") is None
    assert grid.vg_selected_id == "2"
    grid.handle_vg_row_click("10")
    assert grid.handle_vg_key("ArrowDown") is not None
    assert grid.vg_selected_id == "11"


def test_invalidate_chains_a_refresh():
    async def scenario():
        source = FakeSource(make_rows(5))
        grid = await _loaded_grid(source)
        fingerprint = get_session("_Grid:token").coordinator.fingerprint
        follow_up = grid.invalidate_vg_cache()
        cached_after = fingerprint in get_result_cache()
        await grid.refresh_vg()
        return source, grid, follow_up, cached_after

    source, grid, follow_up, cached_after = asyncio.run(scenario())
    assert follow_up is _Grid.refresh_vg
    assert not cached_after
    assert _pages(source) == [1, 1]
    assert grid.vg_row_count == 5


def test_handlers_without_a_session_do_nothing():
    grid = _Grid(token="nobody")
    assert grid.invalidate_vg_cache() is None
    grid.handle_vg_sort("id")
    asyncio.run(grid.handle_vg_filter("name", "x"))
    assert not hasattr(grid, "vg_sort_key")


def test_dropping_a_session_cancels_its_request():
    async def scenario():
        source = FakeSource(make_rows(30))
        source.gates[("", 1)] = asyncio.Event()
        session = GridSession(source, COLUMNS, GridConfig(page_size=20))
        register_session("Grid:token", session)
        session.start()
        await asyncio.sleep(0)
        drop_session("Grid:token")
        await asyncio.sleep(0)
        return source, session

    source, session = asyncio.run(scenario())
    assert get_session("Grid:token") is None
    assert source.cancelled == [({}, 1)]
    assert session.coordinator.status == LoadStatus.IDLE


def test_dropping_an_unknown_session_is_harmless():
    drop_session("Grid:missing")
    assert get_session("Grid:missing") is None
