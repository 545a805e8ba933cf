"""reflex-virtual-grid -- virtualized, incrementally-loaded, sortable data grid for Reflex.

Only the rows in view are rendered, pages are fetched as the user scrolls,
results are cached per filter set, and superseded requests are cancelled::

    pip install reflex-virtual-grid

The core (windowing, sorting, caching, the load state machine) is plain
Python and can be driven without Reflex; :class:`VirtualGridMixin` and
:func:`virtual_grid` bind it to a Reflex page.
"""

from reflex_virtual_grid.cache import ResultCache, get_result_cache, merge_unique, reset_result_cache
from reflex_virtual_grid.columns import ColumnVisibilityStore, distinct_values, render_cell
from reflex_virtual_grid.config import GridConfig
from reflex_virtual_grid.coordinator import (
    FilterChanged,
    LoadCoordinator,
    Refresh,
    Retry,
    SentinelVisible,
)
from reflex_virtual_grid.debounce import Debouncer
from reflex_virtual_grid.errors import ConfigurationError, GridError, NetworkFailure
from reflex_virtual_grid.filters import FilterSet, fingerprint
from reflex_virtual_grid.lifecycle import (
    CancellationHandle,
    CancellationToken,
    DataSource,
    RequestLifecycleManager,
)
from reflex_virtual_grid.models import (
    CacheEntry,
    ColumnDef,
    ErrorInfo,
    LoadState,
    LoadStatus,
    Page,
    SortDirection,
    SortSpec,
    ViewportState,
    Window,
)
from reflex_virtual_grid.polars_utils import (
    apply_filter_set,
    build_column_defs_from_schema,
    dataframe_to_rows,
    polars_dtype_to_grid_type,
)
from reflex_virtual_grid.sentinel import VisibilitySentinel
from reflex_virtual_grid.session import ANY_OPTION, GridSession, drop_session, get_session, register_session
from reflex_virtual_grid.sorting import compare_values, next_sort_spec, sort_rows
from reflex_virtual_grid.sources import CallableDataSource, LazyFrameDataSource, scan_file
from reflex_virtual_grid.virtual_grid import (
    VirtualGridMixin,
    virtual_grid,
    virtual_grid_detail_box,
    virtual_grid_filters,
    virtual_grid_stats_bar,
)
from reflex_virtual_grid.windowing import (
    compute_window,
    content_height,
    scroll_offset_for_row,
    visible_rows,
    window_offset,
)
