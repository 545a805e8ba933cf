"""Viewport window calculator.

Pure functions mapping scroll geometry onto the contiguous range of rows
that must be materialised.  Nothing here knows about the UI framework: the
Reflex binding (or any other event source) calls :func:`compute_window` on
every scroll or resize event.
"""

import math
from collections.abc import Sequence
from typing import TypeVar

from reflex_virtual_grid.errors import ConfigurationError
from reflex_virtual_grid.models import ViewportState, Window

T = TypeVar("T")


def _check_row_height(row_height: float) -> None:
    if row_height <= 0:
        raise ConfigurationError(f"row_height must be > 0, got {row_height!r}")


def compute_window(viewport: ViewportState, total_rows: int) -> Window:
    """Return the ``[start, end)`` row range to render.

    ``start = max(0, floor(scroll_offset / row_height) - overscan)`` and
    ``end = min(start + ceil(container_height / row_height) + 2 * overscan,
    total_rows)``.  ``start`` is clamped to ``end`` so the result always
    satisfies ``0 <= start <= end <= total_rows``.

    Raises:
        ConfigurationError: If ``viewport.row_height <= 0``.
    """
    _check_row_height(viewport.row_height)
    total_rows = max(0, total_rows)
    if total_rows == 0:
        return Window(0, 0)

    overscan = max(0, viewport.overscan)
    scroll_offset = max(0.0, viewport.scroll_offset)
    container_height = max(0.0, viewport.container_height)

    start = max(0, math.floor(scroll_offset / viewport.row_height) - overscan)
    visible_count = math.ceil(container_height / viewport.row_height) + 2 * overscan
    end = min(start + visible_count, total_rows)
    # Scrolled past the loaded rows (e.g. after a filter shrank the set).
    start = min(start, end)
    return Window(start, end)


def visible_rows(rows: Sequence[T], viewport: ViewportState) -> tuple[Window, list[T]]:
    """Compute the window for *rows* and return it with the sliced rows."""
    window = compute_window(viewport, len(rows))
    return window, list(rows[window.start:window.end])


def content_height(total_rows: int, row_height: float) -> float:
    """Height of the full (virtual) list body, used for the scroll spacer."""
    _check_row_height(row_height)
    return max(0, total_rows) * row_height


def window_offset(window: Window, row_height: float) -> float:
    """Pixel offset at which the first materialised row is drawn."""
    _check_row_height(row_height)
    return window.start * row_height


def scroll_offset_for_row(index: int, row_height: float) -> float:
    """Scroll offset that brings row *index* to the top of the viewport."""
    _check_row_height(row_height)
    return max(0, index) * row_height
