import asyncio

from fakes import FakeSource, make_rows

from reflex_virtual_grid.cache import ResultCache
from reflex_virtual_grid.config import GridConfig
from reflex_virtual_grid.models import ColumnDef, LoadStatus
from reflex_virtual_grid.session import ANY_OPTION, GridSession

COLUMNS = [ColumnDef("id"), ColumnDef("name", description="Display name")]


def _session(source, *, container_height=450, dropdown_filters=(), **config):
    config.setdefault("page_size", 20)
    return GridSession(
        source,
        COLUMNS,
        GridConfig(**config),
        container_height=container_height,
        dropdown_filters=dropdown_filters,
        cache=ResultCache(),
    )


def _pages(source):
    return [page for _, page, _ in source.calls]


def test_short_first_page_keeps_loading_until_the_viewport_is_full():
    async def scenario():
        source = FakeSource(make_rows(100))
        session = _session(source, container_height=1000, load_threshold=0)
        session.start()
        state = await session.settle()
        return source, session, state

    source, session, state = asyncio.run(scenario())
    # 20 rows x 45px never overflow a 1000px body, so no scroll event would come.
    assert _pages(source) == [1, 2]
    assert session.coordinator.row_count == 40
    assert state.status == LoadStatus.HAS_MORE


def test_first_page_that_overflows_waits_for_scrolling():
    async def scenario():
        source = FakeSource(make_rows(100))
        session = _session(source, container_height=600, load_threshold=0)
        session.start()
        await session.settle()
        return source

    assert _pages(asyncio.run(scenario())) == [1]


def test_settle_stops_when_exhausted():
    async def scenario():
        source = FakeSource(make_rows(25))
        session = _session(source, container_height=3000)
        session.start()
        return source, await session.settle()

    source, state = asyncio.run(scenario())
    assert _pages(source) == [1, 2]
    assert state.status == LoadStatus.EXHAUSTED


def test_scrolling_to_the_end_fires_the_sentinel():
    async def scenario():
        source = FakeSource(make_rows(100))
        session = _session(source, load_threshold=0)
        session.start()
        await session.settle()
        assert not session.scroll(100, 450)
        fired = session.scroll(450, 450)
        await session.settle()
        return source, session, fired

    source, session, fired = asyncio.run(scenario())
    assert fired
    assert _pages(source) == [1, 2]
    assert session.coordinator.row_count == 40


def test_filter_change_during_load_more_cancels_it():
    async def scenario():
        source = FakeSource(make_rows(50))
        source.gates[("", 2)] = asyncio.Event()
        session = _session(source, load_threshold=0)
        session.start()
        await session.settle()
        session.scroll(450)
        await asyncio.sleep(0)
        assert session.coordinator.status == LoadStatus.LOADING_MORE
        session.set_filter("name", "row 1")
        state = await session.settle()
        return source, session, state

    source, session, state = asyncio.run(scenario())
    assert source.cancelled == [({}, 2)]
    assert state.status == LoadStatus.EXHAUSTED
    assert all("row 1" in row["name"] for row in session.coordinator.rows)
    assert session.scroll_offset == 0


def test_view_state_window_and_spacer():
    async def scenario():
        session = _session(FakeSource(make_rows(120)), page_size=50, overscan=2)
        session.start()
        await session.settle()
        session.scroll(900, 450)
        return session

    view = asyncio.run(scenario()).view_state()
    assert view["window_start"] == 18
    assert len(view["window_cells"]) == 14
    assert view["window_row_ids"][0] == "19"
    assert view["window_cells"][0] == ["19", "row 19"]
    assert view["body_height"] == "2250px"
    assert view["window_transform"] == "translateY(810px)"
    assert view["row_height"] == "45px"
    assert view["row_count"] == 50
    assert view["status"] == "has_more"


def test_sort_cycles_the_view_without_fetching():
    async def scenario():
        source = FakeSource(make_rows(30))
        session = _session(source, container_height=200)
        session.start()
        await session.settle()
        return source, session

    source, session = asyncio.run(scenario())
    session.sort("id")
    assert session.view_state()["window_row_ids"][:2] == ["1", "2"]
    session.sort("id")
    view = session.view_state()
    assert (view["sort_key"], view["sort_desc"]) == ("id", True)
    assert view["window_row_ids"][:2] == ["20", "19"]
    assert len(source.calls) == 1


def test_sorting_can_be_disabled():
    session = _session(FakeSource(), enable_sorting=False)
    session.sort("id")
    assert session.view_state()["sort_key"] == ""


def test_hidden_and_moved_columns_reach_the_view():
    async def scenario():
        session = _session(FakeSource(make_rows(3)))
        session.start()
        await session.settle()
        return session

    session = asyncio.run(scenario())
    session.move_column("name", -1)
    view = session.view_state()
    assert [c["accessor"] for c in view["columns"]] == ["name", "id"]
    assert view["window_cells"][0] == ["row 1", "1"]

    session.toggle_column("name")
    view = session.view_state()
    assert [c["accessor"] for c in view["visible_columns"]] == ["id"]
    assert [c["visible"] for c in view["columns"]] == [False, True]
    assert view["window_cells"][0] == ["1"]


def test_filter_resets_scroll_and_selection():
    async def scenario():
        session = _session(FakeSource(make_rows(60)), page_size=60)
        session.start()
        await session.settle()
        session.scroll(900)
        session.select("30")
        session.set_filter("name", "row 1")
        await session.settle()
        return session

    session = asyncio.run(scenario())
    assert session.scroll_offset == 0
    assert session.selected_id is None
    assert session.view_state()["filters"] == {"name": "row 1"}


def test_row_click_selects_loaded_rows_only():
    async def scenario():
        session = _session(FakeSource(make_rows(5)))
        session.start()
        await session.settle()
        return session

    session = asyncio.run(scenario())
    session.select("3")
    session.select("99")
    view = session.view_state()
    assert view["selected_id"] == "3"
    assert view["selected_info"] == "Id: 3\nName: row 3  (Display name)"


def test_arrow_keys_move_selection_and_reveal_it():
    async def scenario():
        session = _session(FakeSource(make_rows(50)), page_size=50, container_height=450)
        session.start()
        await session.settle()
        return session

    session = asyncio.run(scenario())
    assert session.navigate("ArrowDown") is None
    assert session.selected_id == "1"
    session.navigate("ArrowUp")
    assert session.selected_id == "1"

    offsets = [session.navigate("ArrowDown") for _ in range(10)]
    assert session.selected_id == "11"
    assert offsets[:9] == [None] * 9
    assert offsets[9] == 45
    assert session.scroll_offset == 45

    session.sort("id")
    session.sort("id")
    session.navigate("ArrowDown")
    assert session.selected_id == "10"
    assert session.navigate("Enter") is None
    assert session.selected_id == "10"


def test_dropdown_options_come_from_loaded_rows():
    rows = [{"id": i, "name": f"row {i}", "city": ["Porto", "Lisbon"][i % 2]} for i in range(1, 8)]

    async def scenario():
        session = _session(FakeSource(rows), dropdown_filters=["city"])
        session.start()
        await session.settle()
        first = session.view_state()["filter_options"]
        session.set_filter("city", "Porto")
        await session.settle()
        picked = dict(session.filters.active)
        session.set_filter("city", ANY_OPTION)
        await session.settle()
        return session, first, picked

    session, first, picked = asyncio.run(scenario())
    assert first == {"city": [ANY_OPTION, "Lisbon", "Porto"]}
    assert picked == {"city": "Porto"}
    assert session.filters.active == {}
    assert session.view_state()["filter_options"] == first


def test_dropdown_with_too_many_values_falls_back_to_text():
    async def scenario():
        session = _session(FakeSource(make_rows(30)), dropdown_filters=["name"])
        session.max_options = 10
        session.start()
        await session.settle()
        return session

    assert asyncio.run(scenario()).view_state()["filter_options"] == {}
