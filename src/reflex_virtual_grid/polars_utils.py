"""Utilities for serving grid pages out of polars LazyFrames."""

import logging
from collections.abc import Mapping
from typing import Any

import polars as pl

from reflex_virtual_grid.filters import FilterSet
from reflex_virtual_grid.models import ColumnDef, humanize_field_name

logger = logging.getLogger(__name__)

_TRUE_STRINGS: frozenset[str] = frozenset({"1", "true", "yes", "y", "si", "on"})


def polars_dtype_to_grid_type(dtype: pl.DataType) -> str:
    """Map a polars DataType to a coarse grid column type.

    Returns:
        One of ``"string"``, ``"number"``, ``"boolean"``, ``"date"``,
        ``"dateTime"``.
    """
    if isinstance(dtype, pl.Boolean):
        return "boolean"
    if dtype.is_numeric():
        return "number"
    if isinstance(dtype, pl.Date):
        return "date"
    if isinstance(dtype, pl.Datetime):
        return "dateTime"
    # Everything else (String, Categorical, Enum, List, Struct, Duration, …)
    return "string"


def _col_to_str_expr(col: pl.Expr, dtype: pl.DataType) -> pl.Expr:
    """Convert a column expression to a String, handling List/Array types."""
    if isinstance(dtype, (pl.List, pl.Array)):
        return col.cast(pl.List(pl.String)).list.join(",")
    return col.cast(pl.String)


def _coerce_numeric(value: Any) -> int | float | None:
    """Try to coerce *value* to a number."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        for conv in (int, float):
            try:  # noqa: SIM105
                return conv(value)
            except ValueError:
                continue
    return None


def resolve_field_name(name: str, schema: pl.Schema) -> str | None:
    """Resolve *name* against *schema*, exactly first, then case-insensitively."""
    if name in schema:
        return name
    lowered = name.lower()
    for col_name in schema.names():
        if col_name.lower() == lowered:
            return col_name
    return None


def _build_filter_expr(name: str, value: Any, schema: pl.Schema) -> pl.Expr | None:
    """Translate one filter entry into a polars predicate.

    * string-like columns: case-insensitive literal ``contains``;
    * numeric columns: equality after numeric coercion;
    * boolean columns: ``"1"``/``"true"``/``True`` select true rows;
    * anything else: equality on the string cast.
    """
    field = resolve_field_name(name, schema)
    if field is None:
        logger.debug("[VirtualGrid] filter %r ignored: no such column", name)
        return None

    col = pl.col(field)
    dtype = schema[field]
    grid_type = polars_dtype_to_grid_type(dtype)

    if isinstance(dtype, pl.Boolean):
        wanted = value if isinstance(value, bool) else str(value).strip().lower() in _TRUE_STRINGS
        return col == wanted

    if grid_type == "number":
        num_value = _coerce_numeric(value)
        if num_value is None:
            logger.debug("[VirtualGrid] filter %r ignored: %r is not numeric", name, value)
            return None
        return col == num_value

    str_col = _col_to_str_expr(col, dtype)
    if grid_type == "string":
        needle = str(value).strip().lower()
        return str_col.str.to_lowercase().str.contains(needle, literal=True)

    return str_col == str(value).strip()


def apply_filter_set(
    lf: pl.LazyFrame,
    filters: FilterSet | Mapping[str, Any],
    schema: pl.Schema | None = None,
) -> pl.LazyFrame:
    """AND together the active entries of *filters* as a lazy ``filter`` (no collect)."""
    active = FilterSet.coerce(filters).active
    if not active:
        return lf
    if schema is None:
        schema = lf.collect_schema()

    exprs = [
        expr
        for name, value in active.items()
        if (expr := _build_filter_expr(name, value, schema)) is not None
    ]
    if not exprs:
        return lf
    combined = exprs[0]
    for e in exprs[1:]:
        combined = combined & e
    return lf.filter(combined)


def build_column_defs_from_schema(
    schema: pl.Schema,
    *,
    column_descriptions: dict[str, str] | None = None,
    id_field: str | None = None,
    show_id_field: bool = False,
) -> list[ColumnDef]:
    """Build :class:`ColumnDef` instances from a polars Schema without collecting data.

    Numeric columns get ``width=None`` like every other column; the grid
    lays columns out evenly unless the caller sets widths.

    Args:
        schema: A polars ``Schema`` (e.g. ``lf.collect_schema()``).
        column_descriptions: Optional ``{column: description}`` mapping
            shown as header tooltips.
        id_field: Name of the identity column.  Hidden unless
            *show_id_field* is true.
        show_id_field: Whether to include the *id_field* column.
    """
    descriptions = column_descriptions or {}
    column_defs: list[ColumnDef] = []
    for col_name in schema.names():
        if not show_id_field and col_name == id_field:
            continue
        column_defs.append(
            ColumnDef(
                accessor=col_name,
                header=humanize_field_name(col_name),
                description=descriptions.get(col_name),
            )
        )
    return column_defs


def dataframe_to_rows(df: pl.DataFrame) -> list[dict[str, Any]]:
    """Convert a DataFrame to a list of JSON-safe dicts.

    Non-JSON-safe column types are converted automatically:
    * Temporal columns (Date, Datetime, Time, Duration) -> ISO-8601 strings.
    * List columns -> comma-joined strings (inner values cast to String first).
    * Struct columns -> cast to String.

    Other types are left as-is (polars ``to_dicts()`` already returns
    Python-native scalars for numeric / string / bool).
    """
    temporal_cols: set[str] = set()
    list_cols: set[str] = set()
    struct_cols: set[str] = set()

    for name, dtype in df.schema.items():
        if isinstance(dtype, (pl.Date, pl.Datetime, pl.Time, pl.Duration)):
            temporal_cols.add(name)
        elif isinstance(dtype, (pl.List, pl.Array)):
            list_cols.add(name)
        elif isinstance(dtype, pl.Struct):
            struct_cols.add(name)

    if not (temporal_cols or list_cols or struct_cols):
        return df.to_dicts()

    exprs: list[pl.Expr] = []
    for c in df.columns:
        if c in list_cols:
            exprs.append(pl.col(c).cast(pl.List(pl.String)).list.join(","))
        elif c in temporal_cols or c in struct_cols:
            exprs.append(pl.col(c).cast(pl.String))
        else:
            exprs.append(pl.col(c))
    return df.select(exprs).to_dicts()
