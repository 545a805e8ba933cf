"""Error taxonomy for the virtual grid.

Cancellation is deliberately absent: a superseded request is dropped
silently and never surfaces as an exception to the caller.
"""


class GridError(Exception):
    """Base class for all virtual grid errors."""


class ConfigurationError(GridError, ValueError):
    """Raised at setup time when grid options violate their contract.

    Examples are a non-positive ``row_height`` or a negative ``overscan``.
    These fail fast and are never swallowed.
    """


class NetworkFailure(GridError):
    """A page fetch failed (server error, connection error, timeout).

    The original exception is chained as ``__cause__``.  Network failures
    are transient: the caller may retry through the Load Coordinator.
    """

    retryable: bool = True

    def __init__(self, message: str, *, page_index: int | None = None) -> None:
        super().__init__(message)
        self.page_index = page_index
