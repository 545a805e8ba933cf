"""Reflex binding: state mixin and component for the virtual grid.

Users inherit from :class:`VirtualGridMixin` **and** ``rx.State``, call
:meth:`VirtualGridMixin.set_data_source` with any data source, and render
with :func:`virtual_grid`.

``VirtualGridMixin`` is a Reflex **state mixin** (``mixin=True``).  Each
subclass gets its own independent set of ``vg_*`` reactive variables, so
multiple grids on the same page do not interfere with each other.

Only the rows inside the viewport window (plus overscan) are sent to the
browser.  The merged row array, the Load Coordinator and the column store
live in a :class:`~reflex_virtual_grid.session.GridSession` kept in a
module-level registry, because they are not JSON-serialisable.

Handlers that wait for a fetch run as background events, so a filter change
typed while a page is loading reaches the coordinator at once and cancels
that load.

Typical usage::

    from reflex_virtual_grid import GridConfig, LazyFrameDataSource, VirtualGridMixin, virtual_grid

    class ClientsGrid(VirtualGridMixin, rx.State):
        def load_data(self):
            source = LazyFrameDataSource(pl.scan_parquet("clients.parquet"), id_field="id")
            yield from self.set_data_source(source, config=GridConfig(row_height=40))

    def index():
        return rx.cond(ClientsGrid.vg_loaded, virtual_grid(ClientsGrid))
"""

import logging
import time
from collections.abc import Callable
from typing import Any

import reflex as rx
from reflex.components.el import Div

from reflex_virtual_grid.config import GridConfig
from reflex_virtual_grid.lifecycle import DataSource
from reflex_virtual_grid.models import ColumnDef, LoadStatus
from reflex_virtual_grid.session import (
    _DEFAULT_CONTAINER_HEIGHT,
    ANY_OPTION,
    GridSession,
    get_session,
    register_session,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Scroll container with scroll-metrics and key event payloads
# ---------------------------------------------------------------------------

def _on_scroll_spec(event: rx.Var) -> list[rx.Var]:
    return [
        rx.Var(
            f"{{scrollOffset: {event}.target.scrollTop, "
            f"containerHeight: {event}.target.clientHeight}}"
        )
    ]


def _on_key_down_spec(event: rx.Var) -> list[rx.Var]:
    return [rx.Var(f"{event}.key")]


class ScrollContainer(Div):
    """A ``<div>`` whose ``on_scroll`` sends ``{scrollOffset, containerHeight}``
    and whose ``on_key_down`` sends the key name."""

    on_scroll: rx.EventHandler[_on_scroll_spec]
    on_key_down: rx.EventHandler[_on_key_down_spec]


def _body_dom_id(state_name: str) -> str:
    return f"vg-body-{state_name}"


# ---------------------------------------------------------------------------
# VirtualGridMixin
# ---------------------------------------------------------------------------

class VirtualGridMixin(rx.State, mixin=True):
    """Reflex State mixin for a virtualized, incrementally-loaded grid.

    .. important::

       Subclasses **must** also inherit from ``rx.State`` so that Reflex's
       metaclass registers the vars on the child::

           class MyGrid(VirtualGridMixin, rx.State):
               ...

    All state variable names are prefixed with ``vg_`` to avoid collisions
    when composed with other state.
    """

    # -- Frontend state vars (filled from GridSession.view_state) --
    vg_loaded: bool = False
    vg_status: str = LoadStatus.IDLE.value
    vg_error: str = ""
    vg_error_during: str = ""
    vg_columns: list[dict[str, Any]] = []
    vg_visible_columns: list[dict[str, Any]] = []
    vg_window_cells: list[list[str]] = []
    vg_window_row_ids: list[str] = []
    vg_window_start: int = 0
    vg_row_count: int = 0
    vg_row_height: str = "45px"
    vg_body_height: str = "0px"
    vg_window_transform: str = "translateY(0px)"
    vg_sort_key: str = ""
    vg_sort_desc: bool = False
    vg_enable_sorting: bool = True
    vg_enable_column_visibility: bool = True
    vg_filters: dict[str, str] = {}
    vg_filter_options: dict[str, list[str]] = {}
    vg_selected_id: str = ""
    vg_selected_info: str = ""
    vg_show_column_chooser: bool = False
    vg_stats: str = ""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def set_data_source(
        self,
        source: DataSource,
        columns: list[ColumnDef] | None = None,
        config: GridConfig | None = None,
        *,
        initially_visible: list[str] | None = None,
        filters: dict[str, str] | None = None,
        container_height: int = _DEFAULT_CONTAINER_HEIGHT,
        dropdown_filters: list[str] | None = None,
    ):
        """Attach *source* to this grid and queue the first page load.

        This is a **generator** -- use ``yield from self.set_data_source(...)``
        inside your event handler so the loading state reaches the frontend
        immediately and the first-page load is chained after it.

        Args:
            source: Any object with an async ``fetch_page`` method.
            columns: Declared columns.  Defaults to ``source.column_defs()``
                when the source provides it.
            config: Grid options.  ``row_height`` must be positive.
            initially_visible: Column accessors visible at start (all when
                ``None``).
            filters: Initial filter values.
            container_height: Initial viewport height in pixels, used until
                the first scroll event reports the real one.
            dropdown_filters: Fields whose filter is a dropdown of the
                values seen in the loaded rows (see
                :func:`virtual_grid_filters`).
        """
        if columns is None:
            column_defs = getattr(source, "column_defs", None)
            columns = column_defs() if callable(column_defs) else []

        self.vg_status = LoadStatus.LOADING_INITIAL.value  # type: ignore[assignment]
        self.vg_stats = "Preparing grid..."  # type: ignore[assignment]
        yield

        session = GridSession(
            source,
            columns,
            config,
            initially_visible=initially_visible,
            filters=filters,
            container_height=container_height,
            dropdown_filters=dropdown_filters or (),
        )
        register_session(self._vg_session_id(), session)
        self.vg_show_column_chooser = False  # type: ignore[assignment]
        self.vg_loaded = True  # type: ignore[assignment]
        self._sync_vg(session)

        yield type(self).load_vg_first_page

    # ------------------------------------------------------------------
    # Loading handlers (background: they wait on fetches)
    # ------------------------------------------------------------------

    @rx.event(background=True)
    async def load_vg_first_page(self):
        """Load page 1 for the current filters (cache first)."""
        async with self:
            session = self._vg_session()
            if session is None:
                return
            session.start()
            self._sync_vg(session)
        await self._vg_settle(session)

    @rx.event(background=True)
    async def handle_vg_scroll(self, metrics: dict[str, Any]):
        """Recompute the window and check the sentinel on every scroll."""
        async with self:
            session = self._vg_session()
            if session is None:
                return
            fired = session.scroll(
                float(metrics.get("scrollOffset") or 0),
                metrics.get("containerHeight"),
            )
            self._sync_vg(session)
        if fired:
            await self._vg_settle(session)

    @rx.event(background=True)
    async def handle_vg_filter(self, name: str, value: str):
        """Apply one filter field; blank values clear it.

        Text inputs should be debounced on the client (``rx.debounce_input``)
        so a burst of keystrokes arrives here as one change.
        """
        async with self:
            session = self._vg_session()
            if session is None:
                return
            session.set_filter(name, value)
            self._sync_vg(session)
        await self._vg_settle(session)

    @rx.event(background=True)
    async def clear_vg_filters(self):
        async with self:
            session = self._vg_session()
            if session is None:
                return
            session.clear_filters()
            self._sync_vg(session)
        await self._vg_settle(session)

    @rx.event(background=True)
    async def retry_vg(self):
        """Inline retry after a failed load."""
        async with self:
            session = self._vg_session()
            if session is None:
                return
            session.retry()
            self._sync_vg(session)
        await self._vg_settle(session)

    @rx.event(background=True)
    async def refresh_vg(self):
        """Drop the cached result for the current filters and reload page 1."""
        async with self:
            session = self._vg_session()
            if session is None:
                return
            session.refresh()
            self._sync_vg(session)
        await self._vg_settle(session)

    # ------------------------------------------------------------------
    # Instant handlers (no fetch)
    # ------------------------------------------------------------------

    def handle_vg_sort(self, key: str) -> None:
        """Re-sort the loaded rows client-side (no fetch)."""
        session = self._vg_session()
        if session is None:
            return
        session.sort(key)
        self._sync_vg(session)

    def toggle_vg_column(self, column_id: str) -> None:
        session = self._vg_session()
        if session is None:
            return
        session.toggle_column(column_id)
        self._sync_vg(session)

    def move_vg_column(self, column_id: str, offset: int) -> None:
        session = self._vg_session()
        if session is None:
            return
        session.move_column(column_id, offset)
        self._sync_vg(session)

    def toggle_vg_column_chooser(self) -> None:
        self.vg_show_column_chooser = not self.vg_show_column_chooser  # type: ignore[assignment]

    def handle_vg_row_click(self, row_id: str) -> None:
        session = self._vg_session()
        if session is None:
            return
        session.select(row_id)
        self._sync_vg(session)

    def handle_vg_key(self, key: str):
        """Arrow keys move the selection and scroll it into view."""
        session = self._vg_session()
        if session is None:
            return None
        offset = session.navigate(key)
        self._sync_vg(session)
        if offset is None:
            return None
        # The browser answers with a scroll event, which checks the sentinel.
        return rx.call_script(
            f"document.getElementById('{_body_dom_id(type(self).__name__)}').scrollTop = {offset:.0f}"
        )

    def invalidate_vg_cache(self, everything: bool = False, namespace: bool = False):
        """Mutation hook: call after a create/update/delete, then reloads.

        By default only the current filters' cached result is dropped;
        *namespace* drops every filter combination of this grid's
        ``cache_namespace`` and *everything* clears the whole cache.
        Returns the refresh event so it can be chained from CRUD handlers::

            def save_client(self, form):
                api.save(form)
                return ClientsGrid.invalidate_vg_cache(False, True)
        """
        session = self._vg_session()
        if session is None:
            return None
        session.invalidate(everything=everything, namespace=namespace)
        return type(self).refresh_vg

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _vg_session_id(self) -> str:
        token = self.router.session.client_token
        return f"{type(self).__name__}:{token}"

    def _vg_session(self) -> GridSession | None:
        return get_session(self._vg_session_id())

    async def _vg_settle(self, session: GridSession) -> None:
        """Wait for the fetch in flight, then keep loading while the sentinel is on screen.

        Must be called outside ``async with self``; the state lock is only
        taken to push each applied page.
        """
        coordinator = session.coordinator
        loaded = -1
        while True:
            t0 = time.perf_counter()
            await coordinator.wait()
            async with self:
                grew = coordinator.row_count > loaded
                loaded = coordinator.row_count
                fired = grew and session.check_sentinel()
                self._sync_vg(session)
            logger.debug(
                "[VirtualGrid] settled: page=%d, total=%d, elapsed=%.1fms%s",
                coordinator.state.current_page, loaded,
                (time.perf_counter() - t0) * 1000,
                ", sentinel still visible" if fired else "",
            )
            if not fired:
                return

    def _sync_vg(self, session: GridSession) -> None:
        """Push the session's view state to the frontend vars."""
        for name, value in session.view_state().items():
            setattr(self, f"vg_{name}", value)


# ---------------------------------------------------------------------------
# UI helpers
# ---------------------------------------------------------------------------

def _header_cell(state_cls: type, column: rx.Var) -> rx.Component:
    label = rx.hstack(
        rx.text(column["header"], size="1", weight="medium"),
        rx.cond(
            state_cls.vg_sort_key == column["accessor"],
            rx.cond(
                state_cls.vg_sort_desc,
                rx.icon("chevron_down", size=14),
                rx.icon("chevron_up", size=14),
            ),
        ),
        spacing="1",
        align="center",
    )
    return rx.box(
        rx.cond(
            state_cls.vg_enable_sorting & column["sortable"].to(bool),
            rx.button(
                label,
                on_click=state_cls.handle_vg_sort(column["accessor"]),
                variant="ghost",
                size="1",
                width="100%",
                justify="start",
            ),
            label,
        ),
        title=column["description"],
        flex="1",
        min_width="0",
        padding="0.4em 0.75em",
    )


def _body_row(
    state_cls: type,
    cells: rx.Var,
    index: rx.Var,
    on_row_click: Callable[[rx.Var], Any] | None,
    on_row_double_click: Callable[[rx.Var], Any] | None,
) -> rx.Component:
    row_id = state_cls.vg_window_row_ids[index]
    click: list[Any] = [state_cls.handle_vg_row_click(row_id)]
    if on_row_click is not None:
        click.append(on_row_click(row_id))
    double_click: list[Any] = [state_cls.handle_vg_row_click(row_id)]
    if on_row_double_click is not None:
        double_click.append(on_row_double_click(row_id))

    return rx.hstack(
        rx.foreach(
            cells,
            lambda cell: rx.text(
                cell,
                size="1",
                flex="1",
                min_width="0",
                padding="0 0.75em",
                white_space="nowrap",
                overflow="hidden",
                text_overflow="ellipsis",
            ),
        ),
        on_click=click,
        on_double_click=double_click,
        height=state_cls.vg_row_height,
        align="center",
        spacing="0",
        cursor="pointer",
        background=rx.cond(row_id == state_cls.vg_selected_id, "var(--blue-a4)", "transparent"),
        border_bottom="1px solid var(--gray-a4)",
        _hover={"background": "var(--blue-a2)"},
    )


def _column_chooser(state_cls: type) -> rx.Component:
    return rx.box(
        rx.button(
            rx.icon("settings", size=14),
            "Columns",
            on_click=state_cls.toggle_vg_column_chooser,
            variant="soft",
            size="1",
        ),
        rx.cond(
            state_cls.vg_show_column_chooser,
            rx.vstack(
                rx.foreach(
                    state_cls.vg_columns,
                    lambda column: rx.hstack(
                        rx.button(
                            column["header"],
                            on_click=state_cls.toggle_vg_column(column["accessor"]),
                            variant=rx.cond(column["visible"].to(bool), "solid", "outline"),
                            size="1",
                            flex="1",
                        ),
                        rx.icon_button(
                            rx.icon("arrow_up", size=12),
                            on_click=state_cls.move_vg_column(column["accessor"], -1),
                            variant="ghost",
                            size="1",
                        ),
                        rx.icon_button(
                            rx.icon("arrow_down", size=12),
                            on_click=state_cls.move_vg_column(column["accessor"], 1),
                            variant="ghost",
                            size="1",
                        ),
                        spacing="1",
                        width="100%",
                    ),
                ),
                position="absolute",
                right="0",
                z_index="10",
                padding="0.5em",
                background="var(--color-panel-solid)",
                border="1px solid var(--gray-a5)",
                border_radius="6px",
                max_height="12em",
                overflow_y="auto",
                spacing="1",
            ),
        ),
        position="relative",
        align_self="end",
    )


def _load_more_footer(state_cls: type) -> rx.Component:
    """Below the rows: spinner while loading more, inline retry on failure."""
    return rx.match(
        state_cls.vg_status,
        (
            LoadStatus.LOADING_MORE.value,
            rx.hstack(
                rx.spinner(size="1"),
                rx.text("Loading more...", size="1", color="var(--gray-9)"),
                justify="center",
                padding="0.5em",
            ),
        ),
        (
            LoadStatus.ERROR.value,
            rx.cond(
                state_cls.vg_error_during == LoadStatus.LOADING_MORE.value,
                rx.hstack(
                    rx.text(state_cls.vg_error, size="1", color="var(--red-11)"),
                    rx.button("Retry", on_click=state_cls.retry_vg, size="1", variant="soft"),
                    justify="center",
                    padding="0.5em",
                ),
            ),
        ),
        rx.fragment(),
    )


def _empty_or_error(state_cls: type, empty_message: str) -> rx.Component:
    """Shown instead of rows when nothing is loaded."""
    return rx.center(
        rx.match(
            state_cls.vg_status,
            (
                LoadStatus.IDLE.value,
                LoadStatus.LOADING_INITIAL.value,
                rx.hstack(rx.spinner(size="2"), rx.text("Loading data...", size="2")),
            ),
            (
                LoadStatus.ERROR.value,
                rx.vstack(
                    rx.text(state_cls.vg_error, size="2", color="var(--red-11)"),
                    rx.button("Retry", on_click=state_cls.retry_vg, size="1"),
                    align="center",
                ),
            ),
            rx.text(empty_message, size="2", color="var(--gray-9)"),
        ),
        height="100%",
    )


def virtual_grid(
    state_cls: type,
    *,
    height: int = _DEFAULT_CONTAINER_HEIGHT,
    width: str = "100%",
    show_column_chooser: bool = True,
    empty_message: str = "No data available",
    on_row_click: Callable[[rx.Var], Any] | None = None,
    on_row_double_click: Callable[[rx.Var], Any] | None = None,
    **extra_props: Any,
) -> rx.Component:
    """Return a grid bound to a :class:`VirtualGridMixin` state.

    Clicking a row selects it; with the grid body focused, the up and down
    arrow keys move the selection.

    Args:
        state_cls: The ``rx.State`` subclass that also inherits from
            :class:`VirtualGridMixin`.
        height: Height of the scrolling body in pixels.  Pass the same
            value as ``container_height`` to ``set_data_source``.
        width: CSS width of the grid.
        show_column_chooser: Offer the column visibility menu (only
            rendered when the grid config enables it).
        empty_message: Text shown when the filters match nothing.
        on_row_click: Event handler called with the clicked row's id
            (as a string), after the row is selected.
        on_row_double_click: Same, for double clicks (e.g. open a detail
            view).
        **extra_props: Additional props for the outer container.

    Returns:
        A Reflex component.
    """
    header = rx.hstack(
        rx.foreach(state_cls.vg_visible_columns, lambda column: _header_cell(state_cls, column)),
        spacing="0",
        background="var(--gray-a2)",
        border_bottom="1px solid var(--gray-a5)",
    )

    body = ScrollContainer.create(
        rx.cond(
            state_cls.vg_row_count > 0,
            rx.box(
                rx.box(
                    rx.foreach(
                        state_cls.vg_window_cells,
                        lambda cells, index: _body_row(
                            state_cls, cells, index, on_row_click, on_row_double_click,
                        ),
                    ),
                    transform=state_cls.vg_window_transform,
                ),
                height=state_cls.vg_body_height,
                position="relative",
            ),
            _empty_or_error(state_cls, empty_message),
        ),
        _load_more_footer(state_cls),
        id=_body_dom_id(state_cls.__name__),
        on_scroll=state_cls.handle_vg_scroll,
        on_key_down=state_cls.handle_vg_key,
        tab_index=0,
        height=f"{height}px",
        overflow_y="auto",
        outline="none",
    )

    children: list[rx.Component] = []
    if show_column_chooser:
        children.append(rx.cond(state_cls.vg_enable_column_visibility, _column_chooser(state_cls)))
    children.append(
        rx.box(
            header,
            body,
            border="1px solid var(--gray-a5)",
            border_radius="6px",
            overflow="hidden",
        )
    )
    return rx.vstack(*children, width=width, spacing="1", **extra_props)


def _filter_change(state_cls: type, field: str):
    return lambda value: state_cls.handle_vg_filter(field, value)


def _filter_control(state_cls: type, field: str, debounce_ms: int) -> rx.Component:
    value = rx.cond(state_cls.vg_filters.contains(field), state_cls.vg_filters[field], "")
    label = field.replace("_", " ").title()
    text_input = rx.debounce_input(
        rx.input(
            placeholder=label,
            value=value,
            on_change=_filter_change(state_cls, field),
            size="1",
        ),
        debounce_timeout=debounce_ms,
    )
    return rx.cond(
        state_cls.vg_filter_options.contains(field),
        rx.select(
            state_cls.vg_filter_options[field].to(list[str]),
            value=rx.cond(value == "", ANY_OPTION, value),
            placeholder=label,
            on_change=_filter_change(state_cls, field),
            size="1",
        ),
        text_input,
    )


def virtual_grid_filters(state_cls: type, fields: list[str], *, debounce_ms: int = 300) -> rx.Component:
    """One filter control per field, wired to ``handle_vg_filter``.

    Fields passed as ``dropdown_filters`` to ``set_data_source`` render as a
    dropdown of the values loaded so far (with an ``(any)`` entry); the
    others, and dropdown fields with too many values, are debounced text
    inputs.
    """
    return rx.hstack(
        *[_filter_control(state_cls, field, debounce_ms) for field in fields],
        rx.button("Clear", on_click=state_cls.clear_vg_filters, variant="soft", size="1"),
        rx.button(rx.icon("refresh_cw", size=14), on_click=state_cls.refresh_vg, variant="soft", size="1"),
        spacing="2",
        wrap="wrap",
        margin_bottom="0.5em",
    )


def virtual_grid_detail_box(state_cls: type) -> rx.Component:
    """Return a detail box showing the selected row's fields.

    Args:
        state_cls: The ``rx.State`` subclass that inherits from
            :class:`VirtualGridMixin`.

    Returns:
        A Reflex component.
    """
    return rx.cond(
        state_cls.vg_selected_info != "",
        rx.box(
            rx.text(
                state_cls.vg_selected_info,
                white_space="pre-wrap",
                size="2",
            ),
            margin_top="1em",
            padding="1em",
            border_radius="8px",
            background="var(--gray-a3)",
        ),
    )


def virtual_grid_stats_bar(state_cls: type) -> rx.Component:
    """Return a stats bar showing the loaded count and load status.

    Args:
        state_cls: The ``rx.State`` subclass that inherits from
            :class:`VirtualGridMixin`.

    Returns:
        A Reflex component.
    """
    return rx.box(
        rx.hstack(
            rx.text(
                state_cls.vg_row_count.to(str),  # type: ignore[union-attr]
                " rows loaded",
                size="2",
                weight="medium",
            ),
            rx.text("|", size="2", color="var(--gray-7)"),
            rx.text(
                state_cls.vg_stats,
                size="1",
                color="var(--gray-9)",
                font_family="monospace",
            ),
            spacing="2",
            align="center",
        ),
        padding="0.4em 0.8em",
        border_radius="6px",
        background="var(--blue-a2)",
        border="1px solid var(--blue-a5)",
        margin_bottom="0.5em",
    )
