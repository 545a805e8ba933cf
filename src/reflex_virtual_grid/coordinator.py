"""Load Coordinator: the per-grid state machine.

The coordinator decides when to fetch page 1 (filter change, refresh,
retry), when to fetch the next page (sentinel visible), and owns the merged,
deduplicated row array handed to the rendering layer.

It is driven by message passing: :meth:`LoadCoordinator.dispatch` takes an
event and returns the new :class:`LoadState`.  Fetch completions come back
through the same method as internal events, so every transition goes
through one place::

    IDLE -> LOADING_INITIAL -> HAS_MORE | EXHAUSTED
    HAS_MORE -> LOADING_MORE -> HAS_MORE | EXHAUSTED
    any -> ERROR -> LOADING_INITIAL | LOADING_MORE   (on Retry)

``HAS_MORE`` after a page that exactly filled ``page_size`` is a guess: if
the server had nothing left, the next load returns zero rows and only then
does the grid settle into ``EXHAUSTED``.
"""

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Any

from reflex_virtual_grid.cache import ResultCache, get_result_cache, merge_unique
from reflex_virtual_grid.config import GridConfig
from reflex_virtual_grid.errors import NetworkFailure
from reflex_virtual_grid.filters import FilterSet, fingerprint as make_fingerprint
from reflex_virtual_grid.lifecycle import CancellationHandle, DataSource, RequestLifecycleManager
from reflex_virtual_grid.models import (
    ErrorInfo,
    LoadState,
    LoadStatus,
    Page,
    Row,
    SortSpec,
    ViewportState,
    Window,
)
from reflex_virtual_grid.sorting import sort_rows
from reflex_virtual_grid.windowing import compute_window

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FilterChanged:
    filters: FilterSet | Mapping[str, Any]


@dataclass(frozen=True)
class SentinelVisible:
    pass


@dataclass(frozen=True)
class Refresh:
    pass


@dataclass(frozen=True)
class Retry:
    pass


@dataclass(frozen=True)
class _PageLoaded:
    fingerprint: str
    page_index: int
    rows: Sequence[Row]


@dataclass(frozen=True)
class _PageFailed:
    fingerprint: str
    page_index: int
    error: NetworkFailure


Event = FilterChanged | SentinelVisible | Refresh | Retry | _PageLoaded | _PageFailed
StateListener = Callable[[LoadState], Any]


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------

class LoadCoordinator:
    """Orchestrates fetches and caching for one grid instance.

    Args:
        source: The data source (see :class:`~reflex_virtual_grid.lifecycle.DataSource`).
        config: Grid options; ``page_size``, ``ttl``, ``row_id_field``,
            ``request_timeout`` and ``cache_namespace`` are used here.
        cache: Result cache to share.  Defaults to the process-wide one.
        requests: Request manager override (mainly for tests).
    """

    def __init__(
        self,
        source: DataSource,
        config: GridConfig | None = None,
        *,
        cache: ResultCache | None = None,
        requests: RequestLifecycleManager | None = None,
    ) -> None:
        self.config = config or GridConfig()
        self._cache = cache if cache is not None else get_result_cache()
        self._requests = requests or RequestLifecycleManager(
            source, timeout=self.config.request_timeout,
        )
        self._state = LoadState()
        self._filters: FilterSet | None = None
        self._fingerprint: str | None = None
        self._rows: list[Row] = []
        self._identities: set[Any] = set()
        self._handle: CancellationHandle | None = None
        self._listeners: list[StateListener] = []

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> LoadState:
        return self._state

    @property
    def status(self) -> LoadStatus:
        return self._state.status

    @property
    def fingerprint(self) -> str | None:
        return self._fingerprint

    @property
    def filters(self) -> FilterSet | None:
        return self._filters

    @property
    def rows(self) -> list[Row]:
        """A copy of the merged, deduplicated rows in load order."""
        return list(self._rows)

    @property
    def row_count(self) -> int:
        return len(self._rows)

    @property
    def cache(self) -> ResultCache:
        return self._cache

    def view(self, sort_spec: SortSpec | None = None) -> list[Row]:
        """Merged rows ordered by *sort_spec* (load order when ``None``)."""
        if sort_spec is None or not self.config.enable_sorting:
            return list(self._rows)
        return sort_rows(self._rows, sort_spec)

    def render_window(
        self,
        viewport: ViewportState,
        sort_spec: SortSpec | None = None,
    ) -> tuple[Window, list[Row]]:
        """Sorted view sliced to the rows the viewport needs."""
        rows = self.view(sort_spec)
        window = compute_window(viewport, len(rows))
        return window, rows[window.start:window.end]

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call *listener* with the new state after every transition.

        Returns an unsubscribe function.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(self, event: Event) -> LoadState:
        """Apply *event* and return the resulting state."""
        if isinstance(event, FilterChanged):
            self._on_filter_changed(FilterSet.coerce(event.filters))
        elif isinstance(event, SentinelVisible):
            self._on_sentinel_visible()
        elif isinstance(event, Refresh):
            self._on_refresh()
        elif isinstance(event, Retry):
            self._on_retry()
        elif isinstance(event, _PageLoaded):
            self._on_page_loaded(event)
        elif isinstance(event, _PageFailed):
            self._on_page_failed(event)
        else:
            raise TypeError(f"Unknown grid event: {event!r}")
        return self._state

    # -- async conveniences: dispatch, then wait for the resulting fetch --

    async def apply_filters(self, filters: FilterSet | Mapping[str, Any]) -> LoadState:
        self.dispatch(FilterChanged(filters))
        await self.wait()
        return self._state

    async def load_more(self) -> LoadState:
        self.dispatch(SentinelVisible())
        await self.wait()
        return self._state

    async def refresh(self) -> LoadState:
        self.dispatch(Refresh())
        await self.wait()
        return self._state

    async def retry(self) -> LoadState:
        self.dispatch(Retry())
        await self.wait()
        return self._state

    async def wait(self) -> None:
        """Wait until no request issued by this coordinator is outstanding."""
        while self._handle is not None and not self._handle.done():
            handle = self._handle
            await handle.wait()
            if self._handle is handle:
                break

    def cancel(self) -> None:
        """Cancel any in-flight request without changing the rows."""
        self._requests.cancel_outstanding()
        self._handle = None
        if self._state.status.is_loading:
            self._set_state(
                LoadStatus.IDLE if not self._rows else LoadStatus.HAS_MORE,
                self._state.current_page,
            )

    def invalidate_cache(self, *, everything: bool = False, namespace: bool = False) -> int:
        """Mutation hook: drop cached results after a create/update/delete.

        Drops this grid's current fingerprint by default.  With *namespace*
        every filter combination under ``config.cache_namespace`` goes (the
        record type changed, so any filtered view of it may be stale); with
        *everything* the whole cache is cleared.  Rows already on screen are
        left alone; call :meth:`refresh` to reload them.
        """
        if everything:
            return self._cache.invalidate()
        if namespace and self.config.cache_namespace:
            return self._cache.invalidate_namespace(self.config.cache_namespace)
        if self._fingerprint is None:
            return 0
        return self._cache.invalidate(self._fingerprint)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _on_filter_changed(self, filters: FilterSet) -> None:
        fp = make_fingerprint(filters, self.config.cache_namespace or None)
        if fp == self._fingerprint and self._state.status not in (LoadStatus.IDLE, LoadStatus.ERROR):
            return

        self._cancel_in_flight()
        self._filters = filters
        self._fingerprint = fp
        self._reset_rows()
        self._set_state(LoadStatus.LOADING_INITIAL, 1)

        entry = self._cache.get(fp)
        if entry is not None:
            merge_unique(self._rows, self._identities, list(entry.rows), self.config.row_id_field,
                         context=f"grid {fp}")
            status = LoadStatus.HAS_MORE if entry.has_more else LoadStatus.EXHAUSTED
            logger.info(
                "[VirtualGrid] cache hit: %s rows=%d pages=%d (%s)",
                fp, len(self._rows), entry.pages_loaded, status.value,
            )
            self._set_state(status, entry.pages_loaded)
            return

        self._start_fetch(1)

    def _on_sentinel_visible(self) -> None:
        if self._state.status != LoadStatus.HAS_MORE:
            return
        self._set_state(LoadStatus.LOADING_MORE, self._state.current_page)
        self._start_fetch(self._state.current_page + 1)

    def _on_refresh(self) -> None:
        if self._fingerprint is None:
            return
        self._cancel_in_flight()
        self._cache.invalidate(self._fingerprint)
        self._reset_rows()
        self._set_state(LoadStatus.LOADING_INITIAL, 1)
        self._start_fetch(1)

    def _on_retry(self) -> None:
        error = self._state.error
        if self._state.status != LoadStatus.ERROR or error is None:
            return
        if error.during == LoadStatus.LOADING_MORE:
            self._set_state(LoadStatus.LOADING_MORE, self._state.current_page)
            self._start_fetch(self._state.current_page + 1)
        else:
            self._reset_rows()
            self._set_state(LoadStatus.LOADING_INITIAL, 1)
            self._start_fetch(1)

    def _on_page_loaded(self, event: _PageLoaded) -> None:
        if not self._is_current(event.fingerprint):
            return
        if not self._state.status.is_loading:
            logger.debug("[VirtualGrid] page %d ignored in %s", event.page_index, self._state.status.value)
            return

        rows = list(event.rows)
        page_size = self.config.page_size
        has_more = len(rows) == page_size
        merge_unique(self._rows, self._identities, rows, self.config.row_id_field,
                     context=f"grid {event.fingerprint}")

        current_page = event.page_index if rows or event.page_index == 1 else self._state.current_page
        entry = self._cache.put(
            event.fingerprint,
            Page(rows=rows, page_index=event.page_index, page_size=page_size),
            has_more,
            self.config.ttl,
            id_field=self.config.row_id_field,
        )
        if entry is None:
            # The entry was invalidated or expired mid-scroll; our rows start at row 1.
            self._cache.store(
                event.fingerprint,
                self._rows,
                has_more,
                self.config.ttl,
                pages_loaded=current_page,
                id_field=self.config.row_id_field,
            )
        status = LoadStatus.HAS_MORE if has_more else LoadStatus.EXHAUSTED
        self._handle = None
        self._set_state(status, current_page)
        logger.info(
            "[VirtualGrid] page %d applied: +%d rows, loaded=%d (%s)",
            event.page_index, len(rows), len(self._rows), status.value,
        )

    def _on_page_failed(self, event: _PageFailed) -> None:
        if not self._is_current(event.fingerprint):
            return
        during = self._state.status if self._state.status.is_loading else LoadStatus.LOADING_INITIAL
        info = ErrorInfo(
            message=str(event.error),
            during=during,
            page_index=event.page_index,
            retryable=event.error.retryable,
        )
        self._handle = None
        # Rows already loaded stay; the grid remains usable over them.
        self._set_state(LoadStatus.ERROR, self._state.current_page, info)
        logger.warning(
            "[VirtualGrid] load failed during %s (page %d): %s; keeping %d rows",
            during.value, event.page_index, event.error, len(self._rows),
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _is_current(self, fp: str) -> bool:
        if fp != self._fingerprint:
            logger.debug("[VirtualGrid] stale response for %s discarded (current %s)", fp, self._fingerprint)
            return False
        return True

    def _start_fetch(self, page_index: int) -> None:
        assert self._filters is not None and self._fingerprint is not None
        fp = self._fingerprint
        self._handle = self._requests.fetch(
            self._filters,
            page_index,
            self.config.page_size,
            on_success=lambda rows: self.dispatch(_PageLoaded(fp, page_index, rows)),
            on_failure=lambda error: self.dispatch(_PageFailed(fp, page_index, error)),
            fingerprint=fp,
        )

    def _cancel_in_flight(self) -> None:
        self._requests.cancel_outstanding()
        self._handle = None

    def _reset_rows(self) -> None:
        self._rows = []
        self._identities = set()

    def _set_state(self, status: LoadStatus, current_page: int, error: ErrorInfo | None = None) -> None:
        new_state = replace(self._state, status=status, current_page=current_page, error=error)
        if new_state == self._state:
            return
        self._state = new_state
        for listener in list(self._listeners):
            listener(new_state)
