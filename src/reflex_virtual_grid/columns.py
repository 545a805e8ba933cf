"""Column visibility, column order and cell rendering."""

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from reflex_virtual_grid.models import ColumnDef, Row

_EMPTY_CELL: str = "-"
_DEFAULT_MAX_UNIQUE: int = 500


class ColumnVisibilityStore:
    """Tracks which declared columns are rendered, and in what order.

    The store is independent of the row data.  Toggling or moving an id
    that was never declared is a no-op, so a saved layout keeps working
    after a schema change removes a column.
    """

    def __init__(
        self,
        declared: Iterable[ColumnDef | str],
        initially_visible: Iterable[str] | None = None,
    ) -> None:
        self._declared: list[str] = [_column_id(c) for c in declared]
        if initially_visible is None:
            self._default = set(self._declared)
        else:
            self._default = {c for c in initially_visible if c in self._declared}
        self._visible: set[str] = set(self._default)
        self._order: list[str] = list(self._declared)

    @property
    def declared_ids(self) -> list[str]:
        return list(self._declared)

    @property
    def order(self) -> list[str]:
        return list(self._order)

    def toggle(self, column_id: str) -> None:
        if column_id not in self._declared:
            return
        if column_id in self._visible:
            self._visible.discard(column_id)
        else:
            self._visible.add(column_id)

    def is_visible(self, column_id: str) -> bool:
        return column_id in self._visible

    def move(self, column_id: str, to_index: int) -> None:
        """Move *column_id* to position *to_index* (clamped) in the order."""
        if column_id not in self._order:
            return
        self._order.remove(column_id)
        to_index = max(0, min(to_index, len(self._order)))
        self._order.insert(to_index, column_id)

    def shift(self, column_id: str, offset: int) -> None:
        """Move *column_id* by *offset* places (negative is left)."""
        if column_id not in self._order:
            return
        self.move(column_id, self._order.index(column_id) + offset)

    def list_ordered(self, declared_columns: Sequence[ColumnDef]) -> list[ColumnDef]:
        """*declared_columns* arranged in the current column order."""
        by_id = {c.accessor: c for c in declared_columns}
        return [by_id[c] for c in self._order if c in by_id]

    def list_visible(self, declared_columns: Sequence[ColumnDef]) -> list[ColumnDef]:
        """The visible columns of *declared_columns*, in the current column order."""
        return [c for c in self.list_ordered(declared_columns) if c.accessor in self._visible]

    def show_all(self) -> None:
        self._visible = set(self._declared)

    def reset(self) -> None:
        """Go back to the visibility and order the store was created with."""
        self._visible = set(self._default)
        self._order = list(self._declared)

    def snapshot(self) -> dict[str, Any]:
        """JSON-safe settings payload; persisting it is up to the caller."""
        return {
            "visible_columns": [c for c in self._order if c in self._visible],
            "column_order": list(self._order),
        }

    def restore(self, snapshot: Mapping[str, Any]) -> None:
        """Apply a payload from :meth:`snapshot`; unknown ids are ignored.

        Declared columns missing from a saved order keep their declared
        position relative to each other, after the saved ones.
        """
        wanted = snapshot.get("visible_columns")
        if wanted is not None:
            self._visible = {c for c in wanted if c in self._declared}
        saved_order = snapshot.get("column_order")
        if saved_order:
            known = list(dict.fromkeys(c for c in saved_order if c in self._declared))
            self._order = known + [c for c in self._declared if c not in known]


def _column_id(column: ColumnDef | str) -> str:
    return column if isinstance(column, str) else column.accessor


def render_cell(column: ColumnDef, row: Row) -> Any:
    """Value shown in a cell: ``column.render(row)`` or ``row[accessor]``.

    Missing and ``None`` values render as ``"-"``.
    """
    if column.render is not None:
        return column.render(row)
    value = row.get(column.accessor) if isinstance(row, Mapping) else None
    if value is None:
        return _EMPTY_CELL
    return value


def distinct_values(
    rows: Iterable[Row],
    accessor: str,
    *,
    max_unique: int = _DEFAULT_MAX_UNIQUE,
) -> list[str] | None:
    """Sorted distinct non-empty values of *accessor* across the loaded rows.

    Used to offer dropdown options for a filter.  Returns ``None`` when the
    column has more than *max_unique* distinct values (free-text filter).
    """
    seen: set[str] = set()
    for row in rows:
        value = row.get(accessor) if isinstance(row, Mapping) else None
        if value is None:
            continue
        text = str(value).strip()
        if not text:
            continue
        seen.add(text)
        if len(seen) > max_unique:
            return None
    return sorted(seen)
