import asyncio
import datetime

import polars as pl
import pytest

from reflex_virtual_grid.filters import FilterSet
from reflex_virtual_grid.lifecycle import CancellationToken
from reflex_virtual_grid.polars_utils import (
    apply_filter_set,
    build_column_defs_from_schema,
    dataframe_to_rows,
    polars_dtype_to_grid_type,
)
from reflex_virtual_grid.sources import ROW_ID_FIELD, CallableDataSource, LazyFrameDataSource, scan_file


@pytest.fixture
def clients_lf():
    return pl.LazyFrame(
        {
            "id": [1, 2, 3, 4, 5],
            "name": ["Ana Costa", "Bruno Silva", "carla costa", "Diego Rossi", "Elena Novak"],
            "age": [31, 45, None, 28, 45],
            "active": [True, False, True, True, False],
            "joined": [datetime.date(2024, 1, d) for d in range(1, 6)],
        }
    )


def _fetch(source, filters, page_index, page_size):
    return asyncio.run(source.fetch_page(FilterSet.coerce(filters), page_index, page_size, CancellationToken()))


def test_pages_are_sliced_from_the_lazyframe(clients_lf):
    source = LazyFrameDataSource(clients_lf, id_field="id")
    assert [r["id"] for r in _fetch(source, {}, 1, 2)] == [1, 2]
    assert [r["id"] for r in _fetch(source, {}, 3, 2)] == [5]
    assert _fetch(source, {}, 4, 2) == []


def test_string_filter_is_case_insensitive_contains(clients_lf):
    source = LazyFrameDataSource(clients_lf, id_field="id")
    rows = _fetch(source, {"name": "COSTA"}, 1, 10)
    assert [r["id"] for r in rows] == [1, 3]


def test_numeric_and_boolean_filters(clients_lf):
    source = LazyFrameDataSource(clients_lf, id_field="id")
    assert [r["id"] for r in _fetch(source, {"age": "45"}, 1, 10)] == [2, 5]
    assert [r["id"] for r in _fetch(source, {"active": "yes"}, 1, 10)] == [1, 3, 4]
    assert [r["id"] for r in _fetch(source, {"active": False}, 1, 10)] == [2, 5]


def test_unknown_and_non_numeric_filters_are_ignored(clients_lf):
    filtered = apply_filter_set(clients_lf, {"email": "x", "age": "old"})
    assert filtered.collect().height == 5


def test_field_names_resolve_case_insensitively(clients_lf):
    assert apply_filter_set(clients_lf, {"NAME": "ana"}).collect()["id"].to_list() == [1]


def test_row_index_is_added_without_id_field(clients_lf):
    source = LazyFrameDataSource(clients_lf)
    assert source.id_field == ROW_ID_FIELD
    rows = _fetch(source, {}, 2, 2)
    assert [r[ROW_ID_FIELD] for r in rows] == [2, 3]


def test_unknown_id_field_is_rejected(clients_lf):
    with pytest.raises(ValueError):
        LazyFrameDataSource(clients_lf, id_field="uuid")


def test_cancelled_token_stops_the_fetch(clients_lf):
    source = LazyFrameDataSource(clients_lf, id_field="id")
    token = CancellationToken()
    token.cancel()
    with pytest.raises(asyncio.CancelledError):
        asyncio.run(source.fetch_page(FilterSet(), 1, 2, token))


def test_count_respects_filters(clients_lf):
    source = LazyFrameDataSource(clients_lf, id_field="id")
    assert source.count() == 5
    assert source.count(FilterSet(name="costa")) == 2


def test_column_defs_hide_the_id_field(clients_lf):
    source = LazyFrameDataSource(clients_lf, id_field="id", descriptions={"age": "Years"})
    columns = source.column_defs()
    assert [c.accessor for c in columns] == ["name", "age", "active", "joined"]
    assert columns[1].description == "Years"
    assert [c.accessor for c in source.column_defs(show_id_field=True)][0] == "id"


def test_build_column_defs_from_schema_headers():
    schema = pl.Schema({"first_name": pl.String, "balance_eur": pl.Float64})
    columns = build_column_defs_from_schema(schema)
    assert [c.header for c in columns] == ["First Name", "Balance Eur"]


def test_dtype_mapping():
    assert polars_dtype_to_grid_type(pl.Int64()) == "number"
    assert polars_dtype_to_grid_type(pl.Boolean()) == "boolean"
    assert polars_dtype_to_grid_type(pl.Date()) == "date"
    assert polars_dtype_to_grid_type(pl.Datetime()) == "dateTime"
    assert polars_dtype_to_grid_type(pl.String()) == "string"


def test_dataframe_to_rows_makes_values_json_safe():
    df = pl.DataFrame(
        {
            "day": [datetime.date(2024, 3, 1)],
            "tags": [["a", "b"]],
            "n": [3],
        }
    )
    assert dataframe_to_rows(df) == [{"day": "2024-03-01", "tags": "a,b", "n": 3}]


def test_callable_source_accepts_sync_and_async_functions():
    def sync_fetch(filters, page_index, page_size, token):
        return [{"id": page_index}]

    async def async_fetch(filters, page_index, page_size, token):
        return [{"id": page_index * 10}]

    assert _fetch(CallableDataSource(sync_fetch), {}, 2, 5) == [{"id": 2}]
    assert _fetch(CallableDataSource(async_fetch), {}, 2, 5) == [{"id": 20}]


def test_scan_file_by_extension(tmp_path, clients_lf):
    df = clients_lf.collect()
    df.write_csv(tmp_path / "clients.csv")
    df.write_parquet(tmp_path / "clients.parquet")
    assert scan_file(tmp_path / "clients.csv").collect().height == 5
    assert scan_file(tmp_path / "clients.parquet").collect()["name"].to_list()[0] == "Ana Costa"

    with pytest.raises(FileNotFoundError):
        scan_file(tmp_path / "missing.csv")
    (tmp_path / "notes.txt").write_text("hello")
    with pytest.raises(ValueError):
        scan_file(tmp_path / "notes.txt")
