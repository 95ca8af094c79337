"""Fixed-interval reconciliation poller.

Every tick is launched as its own task and treated as a full snapshot, so
overlapping or out-of-order responses are not fenced: the next tick corrects
them. Once stopped, a poller never applies a result, even one whose request
was already in flight.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Poller(Generic[T]):
    """Calls fetch() every interval seconds and hands results to apply()."""

    def __init__(
        self,
        name: str,
        interval: float,
        fetch: Callable[[], Awaitable[T]],
        apply: Callable[[T], None],
    ):
        self.name = name
        self.interval = interval
        self._fetch = fetch
        self._apply = apply
        self._alive = False
        self._loop_task: asyncio.Task | None = None
        self._ticks: set[asyncio.Task] = set()

    @property
    def alive(self) -> bool:
        return self._alive

    def start(self) -> None:
        """Start ticking; the first tick fires immediately."""
        if self._loop_task is not None:
            return
        self._alive = True
        self._loop_task = asyncio.create_task(self._run(), name=f"poller:{self.name}")
        logger.debug(f"Poller {self.name} started every {self.interval}s")

    async def stop(self) -> None:
        """Stop ticking and cancel requests still in flight."""
        self._alive = False
        tasks = list(self._ticks)
        if self._loop_task is not None:
            tasks.append(self._loop_task)
            self._loop_task = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._ticks.clear()
        logger.debug(f"Poller {self.name} stopped")

    async def _run(self) -> None:
        while self._alive:
            task = asyncio.create_task(self.tick())
            self._ticks.add(task)
            task.add_done_callback(self._ticks.discard)
            await asyncio.sleep(self.interval)

    async def tick(self) -> bool:
        """Fetch once and apply the result if the poller is still alive.

        Returns:
            True if a result was applied
        """
        try:
            result = await self._fetch()
        except Exception as e:
            logger.warning(f"Poll {self.name} failed, retrying next tick: {e}")
            return False

        if not self._alive:
            logger.debug(f"Poll {self.name} resolved after stop, result discarded")
            return False

        try:
            self._apply(result)
        except Exception as e:
            logger.warning(f"Applying poll {self.name} failed, retrying next tick: {e}", exc_info=True)
            return False
        return True
