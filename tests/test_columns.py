from reflex_virtual_grid.columns import ColumnVisibilityStore, distinct_values, render_cell
from reflex_virtual_grid.models import ColumnDef

COLUMNS = [ColumnDef("name"), ColumnDef("city"), ColumnDef("age")]


def test_all_declared_columns_visible_by_default():
    store = ColumnVisibilityStore(COLUMNS)
    assert [c.accessor for c in store.list_visible(COLUMNS)] == ["name", "city", "age"]


def test_toggle_hides_and_shows_keeping_declared_order():
    store = ColumnVisibilityStore(COLUMNS)
    store.toggle("city")
    assert not store.is_visible("city")
    assert [c.accessor for c in store.list_visible(COLUMNS)] == ["name", "age"]
    store.toggle("city")
    assert [c.accessor for c in store.list_visible(COLUMNS)] == ["name", "city", "age"]


def test_toggling_unknown_column_is_a_no_op():
    store = ColumnVisibilityStore(COLUMNS)
    store.toggle("email")
    assert not store.is_visible("email")
    assert store.snapshot()["visible_columns"] == ["name", "city", "age"]


def test_initially_visible_subset_and_reset():
    store = ColumnVisibilityStore(COLUMNS, initially_visible=["age", "name", "ghost"])
    assert store.snapshot()["visible_columns"] == ["name", "age"]
    store.show_all()
    assert store.snapshot()["visible_columns"] == ["name", "city", "age"]
    store.reset()
    assert store.snapshot()["visible_columns"] == ["name", "age"]


def test_restore_ignores_unknown_ids():
    store = ColumnVisibilityStore(["name", "city", "age"])
    store.restore({"visible_columns": ["city", "dropped_column"]})
    assert store.snapshot()["visible_columns"] == ["city"]
    store.restore({})
    assert store.snapshot()["visible_columns"] == ["city"]


def test_moving_a_column_reorders_visible_columns():
    store = ColumnVisibilityStore(COLUMNS)
    store.move("age", 0)
    assert [c.accessor for c in store.list_visible(COLUMNS)] == ["age", "name", "city"]
    store.shift("name", 5)
    assert store.order == ["age", "city", "name"]
    store.shift("city", -1)
    store.toggle("age")
    assert [c.accessor for c in store.list_visible(COLUMNS)] == ["city", "name"]
    store.move("ghost", 0)
    assert store.order == ["city", "age", "name"]


def test_snapshot_round_trips_column_order():
    store = ColumnVisibilityStore(COLUMNS)
    store.move("city", 0)
    store.toggle("name")
    saved = store.snapshot()
    assert saved == {"visible_columns": ["city", "age"], "column_order": ["city", "name", "age"]}

    fresh = ColumnVisibilityStore(COLUMNS)
    fresh.restore(saved)
    assert [c.accessor for c in fresh.list_visible(COLUMNS)] == ["city", "age"]
    fresh.reset()
    assert fresh.order == ["name", "city", "age"]


def test_restore_appends_columns_missing_from_saved_order():
    store = ColumnVisibilityStore(["name", "city", "age", "email"])
    store.restore({"column_order": ["age", "gone", "name", "age"]})
    assert store.order == ["age", "name", "city", "email"]


def test_render_cell_uses_render_function_or_accessor():
    row = {"first": "Ana", "last": "Costa", "age": None}
    full_name = ColumnDef("name", render=lambda r: f"{r['first']} {r['last']}")
    assert render_cell(full_name, row) == "Ana Costa"
    assert render_cell(ColumnDef("first"), row) == "Ana"
    assert render_cell(ColumnDef("age"), row) == "-"
    assert render_cell(ColumnDef("missing"), row) == "-"


def test_default_header_is_humanized():
    assert ColumnDef("first_name").header == "First Name"
    assert ColumnDef("x", header="Custom").header == "Custom"


def test_distinct_values_for_filter_options():
    rows = [{"city": "Porto"}, {"city": "Lisbon"}, {"city": "Porto"}, {"city": None}, {"city": " "}]
    assert distinct_values(rows, "city") == ["Lisbon", "Porto"]
    many = [{"n": i} for i in range(20)]
    assert distinct_values(many, "n", max_unique=10) is None
