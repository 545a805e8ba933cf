"""Visibility sentinel: a boundary probe near the end of the rendered list.

The sentinel decouples "the user is close to the end" from the scroll math
that produced it.  Any platform with scroll geometry can drive it: the
Reflex binding calls :meth:`VisibilitySentinel.probe` from its scroll
handler, a native observer API could call it on intersection changes.

The marker sits ``lead_rows`` rows before the last loaded row, so the next
page is requested while there is still content left to scroll through.
"""

import logging
from collections.abc import Callable
from typing import Any

from reflex_virtual_grid.errors import ConfigurationError
from reflex_virtual_grid.models import LoadStatus, ViewportState

logger = logging.getLogger(__name__)

_INERT_STATUSES: frozenset[LoadStatus] = frozenset({
    LoadStatus.IDLE,
    LoadStatus.LOADING_INITIAL,
    LoadStatus.LOADING_MORE,
    LoadStatus.EXHAUSTED,
    LoadStatus.ERROR,
})


class VisibilitySentinel:
    """Fires *on_visible* when the boundary marker enters the observation region.

    The observation region is the viewport extended downwards by
    *load_threshold* pixels.  Probing is level-triggered: every probe that
    finds the marker inside the region fires, and the Load Coordinator
    ignores the calls it cannot act on.

    Args:
        on_visible: Zero-argument callback.
        load_threshold: Pixel margin before the physical end of the list.
        lead_rows: Rows between the marker and the last loaded row (>= 1).
    """

    def __init__(
        self,
        on_visible: Callable[[], Any],
        *,
        load_threshold: float = 300,
        lead_rows: int = 1,
    ) -> None:
        if load_threshold < 0:
            raise ConfigurationError(f"load_threshold must be >= 0, got {load_threshold!r}")
        if lead_rows < 1:
            raise ConfigurationError(f"lead_rows must be >= 1, got {lead_rows!r}")
        self._on_visible = on_visible
        self.load_threshold = load_threshold
        self.lead_rows = lead_rows

    def sentinel_index(self, total_rows: int) -> int:
        """Row index the marker is attached to."""
        return max(0, total_rows - 1 - self.lead_rows)

    def is_inert(self, status: LoadStatus) -> bool:
        return status in _INERT_STATUSES

    def is_visible(self, viewport: ViewportState, total_rows: int) -> bool:
        """Pure geometry: is the marker inside the observation region?"""
        if viewport.row_height <= 0:
            raise ConfigurationError(f"row_height must be > 0, got {viewport.row_height!r}")
        marker_top = self.sentinel_index(total_rows) * viewport.row_height
        region_bottom = (
            max(0.0, viewport.scroll_offset)
            + max(0.0, viewport.container_height)
            + self.load_threshold
        )
        return marker_top <= region_bottom

    def probe(self, viewport: ViewportState, total_rows: int, status: LoadStatus) -> bool:
        """Fire the callback if the marker is visible and loading is armed.

        Returns True when the callback was invoked.
        """
        if self.is_inert(status):
            return False
        if not self.is_visible(viewport, total_rows):
            return False
        logger.debug(
            "[VirtualGrid] sentinel visible: row %d of %d (offset=%.0f)",
            self.sentinel_index(total_rows), total_rows, viewport.scroll_offset,
        )
        self._on_visible()
        return True
