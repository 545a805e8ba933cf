"""Per-grid session: everything one grid instance owns outside ``rx.State``.

A :class:`GridSession` ties a Load Coordinator, a Visibility Sentinel and a
column store to one viewport, sort order, filter set and row selection, and
renders all of it into the plain values a UI layer displays
(:meth:`GridSession.view_state`).  It does not import Reflex; the
:class:`~reflex_virtual_grid.virtual_grid.VirtualGridMixin` keeps one session
per browser tab in the registry below and copies ``view_state()`` into its
``vg_*`` vars.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from reflex_virtual_grid.cache import ResultCache
from reflex_virtual_grid.columns import ColumnVisibilityStore, distinct_values, render_cell
from reflex_virtual_grid.config import GridConfig
from reflex_virtual_grid.coordinator import FilterChanged, LoadCoordinator, Refresh, Retry, SentinelVisible
from reflex_virtual_grid.filters import FilterSet
from reflex_virtual_grid.lifecycle import DataSource
from reflex_virtual_grid.models import ColumnDef, LoadState, Row, SortDirection, SortSpec, ViewportState
from reflex_virtual_grid.sentinel import VisibilitySentinel
from reflex_virtual_grid.sorting import next_sort_spec
from reflex_virtual_grid.windowing import compute_window, content_height, scroll_offset_for_row, window_offset

logger = logging.getLogger(__name__)

_DEFAULT_CONTAINER_HEIGHT: int = 600
_DEFAULT_MAX_OPTIONS: int = 50

# Dropdown entry that clears the filter.
ANY_OPTION: str = "(any)"

_NAVIGATION_STEPS: dict[str, int] = {"ArrowDown": 1, "ArrowUp": -1}


class GridSession:
    """One grid instance: data, viewport, sort, filters and selection.

    Args:
        source: Any object with an async ``fetch_page`` method.
        columns: Declared columns, in their default order.
        config: Grid options.
        initially_visible: Column accessors visible at start (all when
            ``None``).
        filters: Initial filter values.
        container_height: Viewport height in pixels until the UI reports
            the real one.
        dropdown_filters: Fields whose filter offers the distinct values
            seen in the loaded rows instead of free text.
        max_options: A dropdown field with more distinct values than this
            falls back to free text.
        cache: Result cache to share.  Defaults to the process-wide one.
    """

    def __init__(
        self,
        source: DataSource,
        columns: Sequence[ColumnDef],
        config: GridConfig | None = None,
        *,
        initially_visible: Sequence[str] | None = None,
        filters: Mapping[str, Any] | None = None,
        container_height: float = _DEFAULT_CONTAINER_HEIGHT,
        dropdown_filters: Sequence[str] = (),
        max_options: int = _DEFAULT_MAX_OPTIONS,
        cache: ResultCache | None = None,
    ) -> None:
        self.config = config or GridConfig()
        self.coordinator = LoadCoordinator(source, self.config, cache=cache)
        self.sentinel = VisibilitySentinel(
            lambda: self.coordinator.dispatch(SentinelVisible()),
            load_threshold=self.config.load_threshold,
        )
        self.columns: list[ColumnDef] = list(columns)
        self.visibility = ColumnVisibilityStore(self.columns, initially_visible)
        self.filters = FilterSet.coerce(filters)
        self.sort_spec = SortSpec()
        self.scroll_offset: float = 0.0
        self.container_height: float = float(container_height)
        self.selected_id: str | None = None
        self.dropdown_filters: list[str] = list(dropdown_filters)
        self.max_options = max_options
        self._option_values: dict[str, set[str] | None] = {f: set() for f in self.dropdown_filters}
        self._options_key: tuple[str | None, int] | None = None

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def start(self) -> LoadState:
        """Load page 1 for the current filters (cache first)."""
        return self.coordinator.dispatch(FilterChanged(self.filters))

    def set_filter(self, name: str, value: Any) -> LoadState:
        """Change one filter field; blank values (and :data:`ANY_OPTION`) clear it."""
        if value == ANY_OPTION:
            value = ""
        self.filters = self.filters.with_value(name, value)
        self._reset_position()
        return self.coordinator.dispatch(FilterChanged(self.filters))

    def clear_filters(self) -> LoadState:
        self.filters = FilterSet()
        self._reset_position()
        return self.coordinator.dispatch(FilterChanged(self.filters))

    def retry(self) -> LoadState:
        return self.coordinator.dispatch(Retry())

    def refresh(self) -> LoadState:
        """Drop the cached result for the current filters and reload page 1."""
        self._reset_position()
        return self.coordinator.dispatch(Refresh())

    def invalidate(self, *, everything: bool = False, namespace: bool = False) -> int:
        """Mutation hook; see :meth:`LoadCoordinator.invalidate_cache`."""
        return self.coordinator.invalidate_cache(everything=everything, namespace=namespace)

    def cancel(self) -> None:
        self.coordinator.cancel()

    def scroll(self, scroll_offset: float, container_height: float | None = None) -> bool:
        """Record new scroll metrics; returns True when the sentinel fired."""
        self.scroll_offset = max(0.0, float(scroll_offset))
        if container_height:
            self.container_height = float(container_height)
        return self.check_sentinel()

    def check_sentinel(self) -> bool:
        """Check the sentinel against the current viewport.

        Call after every applied page too: rows that do not fill the
        container never produce a scroll event.
        """
        return self.sentinel.probe(self.viewport(), self.coordinator.row_count, self.coordinator.status)

    async def settle(self) -> LoadState:
        """Wait for the load in flight, then keep loading while the sentinel is on screen."""
        coordinator = self.coordinator
        loaded = -1
        while True:
            await coordinator.wait()
            grew = coordinator.row_count > loaded
            loaded = coordinator.row_count
            if not (grew and self.check_sentinel()):
                return coordinator.state

    # ------------------------------------------------------------------
    # Sorting, columns, selection
    # ------------------------------------------------------------------

    def sort(self, key: str) -> SortSpec:
        """Header click: cycle the sort on *key*.  Never fetches."""
        if self.config.enable_sorting:
            self.sort_spec = next_sort_spec(self.sort_spec, key)
        return self.sort_spec

    def toggle_column(self, column_id: str) -> None:
        if self.config.enable_column_visibility:
            self.visibility.toggle(column_id)

    def move_column(self, column_id: str, offset: int) -> None:
        if self.config.enable_column_visibility:
            self.visibility.shift(column_id, offset)

    def view(self) -> list[Row]:
        """Loaded rows in the current sort order."""
        return self.coordinator.view(self.sort_spec)

    def row_id(self, row: Row) -> str:
        return str(row.get(self.config.row_id_field))

    def select(self, row_id: str) -> None:
        """Row click: select the row with *row_id* if it is loaded."""
        if any(self.row_id(row) == row_id for row in self.coordinator.rows):
            self.selected_id = row_id

    def selected_row(self) -> Row | None:
        if self.selected_id is None:
            return None
        for row in self.coordinator.rows:
            if self.row_id(row) == self.selected_id:
                return row
        return None

    def navigate(self, key: str) -> float | None:
        """Arrow-key selection in sort order.

        Moves the selection one row (the first row when nothing is
        selected) and scrolls just enough to show it.  Returns the new
        scroll offset, or ``None`` when the viewport did not move.
        """
        step = _NAVIGATION_STEPS.get(key)
        rows = self.view()
        if step is None or not rows:
            return None
        ids = [self.row_id(row) for row in rows]
        if self.selected_id in ids:
            target = max(0, min(ids.index(self.selected_id) + step, len(ids) - 1))
        else:
            target = 0
        self.selected_id = ids[target]
        return self._reveal(target)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def viewport(self) -> ViewportState:
        return ViewportState(
            scroll_offset=self.scroll_offset,
            container_height=self.container_height,
            row_height=self.config.row_height,
            overscan=self.config.overscan,
        )

    def filter_options(self) -> dict[str, list[str]]:
        """Dropdown options per field, gathered from every row loaded so far."""
        key = (self.coordinator.fingerprint, self.coordinator.row_count)
        if key != self._options_key:
            self._options_key = key
            rows = self.coordinator.rows
            for field, known in self._option_values.items():
                if known is None:
                    continue
                values = distinct_values(rows, field, max_unique=self.max_options)
                if values is None or len(known.union(values)) > self.max_options:
                    logger.debug("[VirtualGrid] %r has too many values for a dropdown", field)
                    self._option_values[field] = None
                else:
                    known.update(values)
        return {
            field: [ANY_OPTION, *sorted(values)]
            for field, values in self._option_values.items()
            if values is not None
        }

    def view_state(self) -> dict[str, Any]:
        """Everything the UI shows, as JSON-safe values keyed by var name."""
        config = self.config
        state = self.coordinator.state
        rows = self.view()
        window = compute_window(self.viewport(), len(rows))
        window_rows = rows[window.start:window.end]
        visible = self.visibility.list_visible(self.columns)
        selected = self.selected_row()

        return {
            "status": state.status.value,
            "error": state.error.message if state.error else "",
            "error_during": state.error.during.value if state.error else "",
            "columns": [
                {**column.to_dict(), "visible": self.visibility.is_visible(column.accessor)}
                for column in self.visibility.list_ordered(self.columns)
            ],
            "visible_columns": [column.to_dict() for column in visible],
            "window_cells": [[str(render_cell(column, row)) for column in visible] for row in window_rows],
            "window_row_ids": [self.row_id(row) for row in window_rows],
            "window_start": window.start,
            "row_count": len(rows),
            "row_height": f"{config.row_height:g}px",
            "body_height": f"{content_height(len(rows), config.row_height):.0f}px",
            "window_transform": f"translateY({window_offset(window, config.row_height):.0f}px)",
            "sort_key": self.sort_spec.key or "",
            "sort_desc": self.sort_spec.direction == SortDirection.DESC,
            "enable_sorting": config.enable_sorting,
            "enable_column_visibility": config.enable_column_visibility,
            "filters": {name: str(value) for name, value in self.filters.active.items()},
            "filter_options": self.filter_options(),
            "selected_id": self.selected_id if selected is not None else "",
            "selected_info": self._describe(selected),
            "stats": (
                f"loaded={len(rows):,}  page={state.current_page}  "
                f"rows {window.start:,}-{window.end:,}  ({state.status.value})"
            ),
        }

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _reset_position(self) -> None:
        self.scroll_offset = 0.0
        self.selected_id = None

    def _reveal(self, index: int) -> float | None:
        row_height = self.config.row_height
        top = scroll_offset_for_row(index, row_height)
        if top < self.scroll_offset:
            offset = top
        elif top + row_height > self.scroll_offset + self.container_height:
            offset = top + row_height - self.container_height
        else:
            return None
        self.scroll_offset = offset
        return offset

    def _describe(self, row: Row | None) -> str:
        if row is None:
            return ""
        lines: list[str] = []
        for column in self.visibility.list_ordered(self.columns):
            line = f"{column.header}: {render_cell(column, row)}"
            if column.description:
                line += f"  ({column.description})"
            lines.append(line)
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Session registry
# ---------------------------------------------------------------------------

_sessions: dict[str, GridSession] = {}


def register_session(session_id: str, session: GridSession) -> None:
    """Store *session*, cancelling whatever was registered under the same id."""
    drop_session(session_id)
    _sessions[session_id] = session


def get_session(session_id: str) -> GridSession | None:
    return _sessions.get(session_id)


def drop_session(session_id: str) -> None:
    """Forget a grid instance (e.g. when its client disconnects)."""
    session = _sessions.pop(session_id, None)
    if session is not None:
        session.cancel()
