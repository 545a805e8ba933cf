"""Grid configuration: recognised options, defaults and validation."""

import re
from dataclasses import dataclass, fields
from typing import Any

from reflex_virtual_grid.errors import ConfigurationError


_DEFAULT_ROW_HEIGHT: int = 45
_DEFAULT_OVERSCAN: int = 10
_DEFAULT_PAGE_SIZE: int = 20
_DEFAULT_TTL_SECONDS: float = 5 * 60.0
_DEFAULT_LOAD_THRESHOLD: int = 300
_DEFAULT_ROW_ID_FIELD: str = "id"

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _to_snake(name: str) -> str:
    """``"rowHeight"`` -> ``"row_height"``; snake_case passes through."""
    return _CAMEL_RE.sub("_", name).lower()


@dataclass(frozen=True)
class GridConfig:
    """Options for one grid instance.

    Attributes:
        row_height: Fixed row height in pixels.  Must be ``> 0``.
        overscan: Extra rows materialised above and below the viewport.
        page_size: Rows requested per fetch.
        ttl: Seconds a cached result set stays fresh after its last write.
        enable_sorting: Whether header clicks re-sort the loaded rows.
        enable_column_visibility: Whether the column chooser is offered.
        load_threshold: Pixel margin before the physical end of the list
            at which the sentinel starts firing.
        row_id_field: Name of the identity field on every row.
        request_timeout: Seconds before a fetch is abandoned as a
            failure.  ``None`` disables the timeout.
        cache_namespace: Prefix for cache keys, so two grids browsing
            different record types never share entries.
    """

    row_height: float = _DEFAULT_ROW_HEIGHT
    overscan: int = _DEFAULT_OVERSCAN
    page_size: int = _DEFAULT_PAGE_SIZE
    ttl: float = _DEFAULT_TTL_SECONDS
    enable_sorting: bool = True
    enable_column_visibility: bool = True
    load_threshold: float = _DEFAULT_LOAD_THRESHOLD
    row_id_field: str = _DEFAULT_ROW_ID_FIELD
    request_timeout: float | None = None
    cache_namespace: str = ""

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Raise :class:`ConfigurationError` on any contract violation."""
        if not isinstance(self.row_height, (int, float)) or self.row_height <= 0:
            raise ConfigurationError(
                f"row_height must be a positive number, got {self.row_height!r}"
            )
        if not isinstance(self.overscan, int) or self.overscan < 0:
            raise ConfigurationError(
                f"overscan must be a non-negative integer, got {self.overscan!r}"
            )
        if not isinstance(self.page_size, int) or self.page_size <= 0:
            raise ConfigurationError(
                f"page_size must be a positive integer, got {self.page_size!r}"
            )
        if self.ttl <= 0:
            raise ConfigurationError(f"ttl must be positive, got {self.ttl!r}")
        if self.load_threshold < 0:
            raise ConfigurationError(
                f"load_threshold must be >= 0, got {self.load_threshold!r}"
            )
        if not self.row_id_field:
            raise ConfigurationError("row_id_field must be a non-empty string")
        if self.request_timeout is not None and self.request_timeout <= 0:
            raise ConfigurationError(
                f"request_timeout must be positive or None, got {self.request_timeout!r}"
            )

    @classmethod
    def from_dict(cls, options: dict[str, Any]) -> "GridConfig":
        """Build a config from a mapping with camelCase or snake_case keys.

        Unknown keys are ignored so a settings payload written by a newer
        version still loads.
        """
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in options.items():
            name = _to_snake(key)
            if name in known:
                kwargs[name] = value
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}
