"""Plain data types shared by the grid core and the Reflex binding."""

import enum
from dataclasses import dataclass, field
from typing import Any, Callable

Row = dict[str, Any]


class LoadStatus(str, enum.Enum):
    """Status of a grid instance's load cycle.

    ``HAS_MORE`` and ``EXHAUSTED`` are the two *ready* states.
    """

    IDLE = "idle"
    LOADING_INITIAL = "loading_initial"
    LOADING_MORE = "loading_more"
    HAS_MORE = "has_more"
    EXHAUSTED = "exhausted"
    ERROR = "error"

    @property
    def is_loading(self) -> bool:
        return self in (LoadStatus.LOADING_INITIAL, LoadStatus.LOADING_MORE)

    @property
    def is_ready(self) -> bool:
        return self in (LoadStatus.HAS_MORE, LoadStatus.EXHAUSTED)


class SortDirection(str, enum.Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class SortSpec:
    """Client-side sort over the loaded rows.  ``key=None`` keeps load order."""

    key: str | None = None
    direction: SortDirection = SortDirection.ASC


@dataclass(frozen=True)
class ViewportState:
    """Scroll geometry, recomputed on every scroll/resize event."""

    scroll_offset: float
    container_height: float
    row_height: float
    overscan: int = 0


@dataclass(frozen=True)
class Window:
    """Half-open ``[start, end)`` range of row indices to materialise."""

    start: int
    end: int

    def __len__(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class Page:
    """One fetched page.  ``page_index`` is 1-based."""

    rows: list[Row]
    page_index: int
    page_size: int


@dataclass
class CacheEntry:
    fingerprint: str
    rows: list[Row]
    has_more: bool
    fetched_at: float
    expires_at: float
    pages_loaded: int = 1

    @property
    def total_loaded(self) -> int:
        return len(self.rows)


@dataclass(frozen=True)
class ErrorInfo:
    """What went wrong, and which load it interrupted."""

    message: str
    during: LoadStatus
    page_index: int
    kind: str = "network"
    retryable: bool = True


@dataclass(frozen=True)
class LoadState:
    status: LoadStatus = LoadStatus.IDLE
    current_page: int = 0
    error: ErrorInfo | None = None


@dataclass
class ColumnDef:
    """A declared grid column.

    ``render`` is an optional ``row -> value`` callable.  When it is absent
    the cell shows ``row[accessor]``.
    """

    accessor: str
    header: str | None = None
    width: str | None = None
    sortable: bool = True
    description: str | None = None
    render: Callable[[Row], Any] | None = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.header is None:
            self.header = humanize_field_name(self.accessor)

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe form (without ``render``) for Reflex state vars."""
        return {
            "accessor": self.accessor,
            "header": self.header,
            "width": self.width or "",
            "sortable": self.sortable,
            "description": self.description or "",
        }


def humanize_field_name(field_name: str) -> str:
    """Convert a snake_case or raw field name to a human-friendly header.

    Examples:
        ``"first_name"`` -> ``"First Name"``
        ``"__row_id__"`` -> ``"Row Id"``
    """
    return field_name.strip("_").replace("_", " ").title()
