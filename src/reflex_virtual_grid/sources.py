"""Data sources: where pages come from.

:class:`LazyFrameDataSource` serves pages straight from a polars LazyFrame.
Only the requested slice is ever collected, on a worker thread so the event
loop stays responsive.  :class:`CallableDataSource` adapts any function with
the ``fetch_page`` signature, e.g. a REST client call.
"""

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path
from typing import Any

import polars as pl

from reflex_virtual_grid.filters import FilterSet
from reflex_virtual_grid.lifecycle import CancellationToken
from reflex_virtual_grid.models import ColumnDef, Row
from reflex_virtual_grid.polars_utils import (
    apply_filter_set,
    build_column_defs_from_schema,
    dataframe_to_rows,
)

logger = logging.getLogger(__name__)

ROW_ID_FIELD: str = "__row_id__"


class LazyFrameDataSource:
    """Serve grid pages from a polars LazyFrame.

    Args:
        lf: The LazyFrame to browse.  It is never collected in full.
        id_field: Column holding each row's identity.  When ``None``, a
            ``__row_id__`` column (index within the filtered result) is
            added to every page.
        descriptions: Optional ``{column: description}`` mapping used by
            :meth:`column_defs`.
    """

    def __init__(
        self,
        lf: pl.LazyFrame,
        *,
        id_field: str | None = None,
        descriptions: dict[str, str] | None = None,
    ) -> None:
        self.lf = lf
        self.schema: pl.Schema = lf.collect_schema()
        if id_field is not None and id_field not in self.schema:
            raise ValueError(f"id_field {id_field!r} is not a column of the LazyFrame")
        self._id_field = id_field
        self.descriptions = descriptions or {}

    @property
    def id_field(self) -> str:
        return self._id_field or ROW_ID_FIELD

    def column_defs(self, *, show_id_field: bool = False) -> list[ColumnDef]:
        return build_column_defs_from_schema(
            self.schema,
            column_descriptions=self.descriptions,
            id_field=self._id_field,
            show_id_field=show_id_field,
        )

    def count(self, filters: FilterSet | None = None) -> int:
        """Number of rows matching *filters* (a ``select(len())`` query)."""
        lf = apply_filter_set(self.lf, filters or FilterSet(), self.schema)
        return lf.select(pl.len()).collect().item()

    async def fetch_page(
        self,
        filters: FilterSet,
        page_index: int,
        page_size: int,
        token: CancellationToken,
    ) -> list[Row]:
        token.raise_if_cancelled()
        rows = await asyncio.to_thread(self._collect_page, filters, page_index, page_size)
        token.raise_if_cancelled()
        return rows

    def _collect_page(self, filters: FilterSet, page_index: int, page_size: int) -> list[Row]:
        t0 = time.perf_counter()
        lf = apply_filter_set(self.lf, filters, self.schema)
        offset = max(0, page_index - 1) * page_size
        page_df: pl.DataFrame = lf.slice(offset, page_size).collect()
        if self._id_field is None:
            # Stable identity: global index within the filtered result.
            page_df = page_df.with_row_index(ROW_ID_FIELD, offset=offset)
        rows = dataframe_to_rows(page_df)
        logger.debug(
            "[VirtualGrid] lazyframe slice: offset=%d, size=%d, rows=%d (%.1fms)",
            offset, page_size, len(rows), (time.perf_counter() - t0) * 1000,
        )
        return rows


FetchFunction = Callable[
    [FilterSet, int, int, CancellationToken],
    "Sequence[Row] | Awaitable[Sequence[Row]]",
]


class CallableDataSource:
    """Adapt a sync or async ``fn(filters, page_index, page_size, token)``.

    Sync functions run on a worker thread.
    """

    def __init__(self, fn: FetchFunction) -> None:
        self._fn = fn

    async def fetch_page(
        self,
        filters: FilterSet,
        page_index: int,
        page_size: int,
        token: CancellationToken,
    ) -> Sequence[Row]:
        token.raise_if_cancelled()
        if inspect.iscoroutinefunction(self._fn):
            result: Any = await self._fn(filters, page_index, page_size, token)
        else:
            result = await asyncio.to_thread(self._fn, filters, page_index, page_size, token)
            if inspect.isawaitable(result):
                result = await result
        token.raise_if_cancelled()
        return result


def scan_file(path: Path) -> pl.LazyFrame:
    """Scan a tabular file into a LazyFrame, picking the reader by extension.

    * ``.parquet`` / ``.pq`` -- ``pl.scan_parquet()``.
    * ``.csv`` -- ``pl.scan_csv()``.
    * ``.tsv`` -- ``pl.scan_csv(separator="\\t")``.
    * ``.json`` -- ``pl.read_json().lazy()`` (no streaming scan).
    * ``.ndjson`` / ``.jsonl`` -- ``pl.scan_ndjson()``.
    * ``.ipc`` / ``.arrow`` / ``.feather`` -- ``pl.scan_ipc()``.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValueError: If the file extension is not recognised.
    """
    path = Path(path).resolve()
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    suffix = path.suffix.lower()
    if suffix in (".parquet", ".pq"):
        return pl.scan_parquet(path)
    if suffix == ".csv":
        return pl.scan_csv(path)
    if suffix == ".tsv":
        return pl.scan_csv(path, separator="\t")
    if suffix == ".json":
        return pl.read_json(path).lazy()
    if suffix in (".ndjson", ".jsonl"):
        return pl.scan_ndjson(path)
    if suffix in (".ipc", ".arrow", ".feather"):
        return pl.scan_ipc(path)

    raise ValueError(
        f"Unsupported file extension: {suffix!r}. "
        "Supported: .parquet, .pq, .csv, .tsv, .json, .ndjson, .jsonl, "
        ".ipc, .arrow, .feather"
    )
