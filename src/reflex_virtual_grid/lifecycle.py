"""Request lifecycle: cancellable page fetches with last-filter-wins semantics.

The data source contract is a single coroutine::

    async def fetch_page(filters, page_index, page_size, token) -> Sequence[Row]

It receives a :class:`CancellationToken` and should check it between
expensive steps.  The manager also cancels the asyncio task, so sources
that simply ``await`` I/O are interrupted at their next suspension point.
"""

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from typing import Any, Protocol

from reflex_virtual_grid.errors import NetworkFailure
from reflex_virtual_grid.filters import FilterSet, fingerprint as make_fingerprint
from reflex_virtual_grid.models import Row

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation flag handed to the data source."""

    __slots__ = ("_cancelled",)

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise asyncio.CancelledError()


class DataSource(Protocol):
    async def fetch_page(
        self,
        filters: FilterSet,
        page_index: int,
        page_size: int,
        token: CancellationToken,
    ) -> Sequence[Row]: ...


class CancellationHandle:
    """Returned by :meth:`RequestLifecycleManager.fetch`.

    Awaiting :meth:`wait` never raises, even when the request was
    cancelled; callbacks are the only way results are delivered.
    """

    def __init__(self, fingerprint: str, page_index: int) -> None:
        self.fingerprint = fingerprint
        self.page_index = page_index
        self.token = CancellationToken()
        self._task: asyncio.Task[None] | None = None

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else ("done" if self.done() else "pending")
        return f"<CancellationHandle {self.fingerprint} page={self.page_index} {state}>"

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def cancel(self) -> None:
        if self.token.cancelled:
            return
        self.token.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def done(self) -> bool:
        return self._task is None or self._task.done()

    async def wait(self) -> None:
        if self._task is not None and not self._task.done():
            await asyncio.wait({self._task})


SuccessCallback = Callable[[list[Row]], Any]
FailureCallback = Callable[[NetworkFailure], Any]


class RequestLifecycleManager:
    """Issues fetches for one grid instance, at most one outstanding at a time.

    Starting a request supersedes the outstanding one: the old request is
    cancelled *before* the new one starts, so a slow response for an old
    fingerprint can never land after a newer one.  A cancelled request never
    calls back.  Failures (including timeouts) call ``on_failure`` once;
    there is no automatic retry.
    """

    def __init__(self, source: DataSource, *, timeout: float | None = None) -> None:
        self._source = source
        self._timeout = timeout
        self._outstanding: CancellationHandle | None = None

    @property
    def outstanding(self) -> CancellationHandle | None:
        if self._outstanding is not None and self._outstanding.done():
            self._outstanding = None
        return self._outstanding

    def cancel_outstanding(self) -> None:
        handle = self._outstanding
        self._outstanding = None
        if handle is not None and not handle.done():
            logger.debug("[VirtualGrid] cancel request %r", handle)
            handle.cancel()

    def fetch(
        self,
        filters: FilterSet,
        page_index: int,
        page_size: int,
        on_success: SuccessCallback,
        on_failure: FailureCallback,
        *,
        fingerprint: str | None = None,
    ) -> CancellationHandle:
        """Start fetching *page_index* for *filters* and return its handle.

        Must be called with a running event loop.
        """
        key = fingerprint if fingerprint is not None else make_fingerprint(filters)
        previous = self.outstanding
        if previous is not None:
            if previous.fingerprint != key:
                logger.info(
                    "[VirtualGrid] superseded: %s page=%d -> %s page=%d",
                    previous.fingerprint, previous.page_index, key, page_index,
                )
            self.cancel_outstanding()

        handle = CancellationHandle(key, page_index)
        loop = asyncio.get_running_loop()
        handle._task = loop.create_task(
            self._run(handle, filters, page_index, page_size, on_success, on_failure)
        )
        self._outstanding = handle
        return handle

    async def _run(
        self,
        handle: CancellationHandle,
        filters: FilterSet,
        page_index: int,
        page_size: int,
        on_success: SuccessCallback,
        on_failure: FailureCallback,
    ) -> None:
        t0 = time.perf_counter()
        rows: list[Row] | None = None
        failure: NetworkFailure | None = None
        try:
            call = self._source.fetch_page(filters, page_index, page_size, handle.token)
            if self._timeout is not None:
                result = await asyncio.wait_for(call, self._timeout)
            else:
                result = await call
            rows = list(result or [])
        except asyncio.CancelledError:
            if handle.cancelled:
                logger.debug("[VirtualGrid] request cancelled: %r", handle)
                return
            raise
        except Exception as exc:
            if handle.cancelled:
                return
            message = str(exc) or type(exc).__name__
            failure = NetworkFailure(message, page_index=page_index)
            failure.__cause__ = exc
        finally:
            if self._outstanding is handle:
                self._outstanding = None

        elapsed_ms = (time.perf_counter() - t0) * 1000
        if handle.cancelled:
            # Completed after being superseded; the result belongs to nobody.
            logger.debug("[VirtualGrid] late response dropped: %r", handle)
            return
        if failure is not None:
            logger.warning(
                "[VirtualGrid] fetch failed: %s page=%d (%s) after %.1fms",
                handle.fingerprint, page_index, failure, elapsed_ms,
            )
            on_failure(failure)
            return
        logger.info(
            "[VirtualGrid] fetch: %s page=%d size=%d -> %d rows (%.1fms)",
            handle.fingerprint, page_index, page_size, len(rows or []), elapsed_ms,
        )
        on_success(rows or [])
