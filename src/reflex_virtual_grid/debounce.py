"""Caller-side coalescing of rapid events (e.g. filter typing).

The Load Coordinator never debounces; it only guarantees correctness under
rapid supersession.  Callers that receive bursts put a :class:`Debouncer`
in front of it.
"""

import asyncio
import inspect
from collections.abc import Callable
from typing import Any

from reflex_virtual_grid.errors import ConfigurationError

_DEFAULT_DELAY_SECONDS: float = 0.3


class Debouncer:
    """Runs *callback* with the arguments of the last :meth:`trigger` call,
    once *delay* seconds have passed without another trigger.

    *callback* may be a plain function or a coroutine function.  Must be
    used with a running event loop.
    """

    def __init__(self, callback: Callable[..., Any], delay: float = _DEFAULT_DELAY_SECONDS) -> None:
        if delay < 0:
            raise ConfigurationError(f"delay must be >= 0, got {delay!r}")
        self._callback = callback
        self.delay = delay
        self._timer: asyncio.TimerHandle | None = None
        self._pending: tuple[tuple[Any, ...], dict[str, Any]] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def trigger(self, *args: Any, **kwargs: Any) -> None:
        """(Re)start the timer with these arguments."""
        if self._timer is not None:
            self._timer.cancel()
        self._pending = (args, kwargs)
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        """Drop the pending call, if any."""
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._pending = None

    async def flush(self) -> None:
        """Run the pending call now and wait for it."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        pending, self._pending = self._pending, None
        if pending is not None:
            args, kwargs = pending
            result = self._callback(*args, **kwargs)
            if inspect.isawaitable(result):
                await result
        await self.wait()

    async def wait(self) -> None:
        """Wait for coroutine callbacks started by the timer."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks))

    def _fire(self) -> None:
        self._timer = None
        pending, self._pending = self._pending, None
        if pending is None:
            return
        args, kwargs = pending
        result = self._callback(*args, **kwargs)
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
