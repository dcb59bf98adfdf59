"""Poll coordinator: at most one reconciliation pass runs at any time.

Short polls, long polls, discovery and on-demand node queries all go through
the same lock. A trigger that cannot get the lock within the timeout is
dropped and logged; the next timer tick tries again.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from .exceptions import PollBusy
from .nodes import Node
from .reconciler import Reconciler

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT = 0.5


class PollKind(Enum):
    """Poll trigger sent by the timers."""

    SHORT = "short"
    LONG = "long"


class PollLock:
    """Named exclusive section with a bounded acquisition wait."""

    def __init__(self, name: str, timeout: float = DEFAULT_LOCK_TIMEOUT):
        self.name = name
        self.timeout = timeout
        self._lock = asyncio.Lock()

    def locked(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def hold(self, bounded: bool = True) -> AsyncIterator[None]:
        """Hold the lock for the duration of the ``async with`` block.

        Args:
            bounded: Give up after ``timeout``; otherwise wait for the holder

        Raises:
            PollBusy: The lock was not acquired within the timeout
        """
        if bounded:
            try:
                await asyncio.wait_for(self._lock.acquire(), self.timeout)
            except asyncio.TimeoutError:
                raise PollBusy(f"'{self.name}' still held after {self.timeout}s") from None
        else:
            await self._lock.acquire()
        try:
            yield
        finally:
            self._lock.release()


class PollCoordinator:
    """Serializes every reconciliation pass behind a single poll lock."""

    def __init__(self, reconciler: Reconciler, lock_timeout: float = DEFAULT_LOCK_TIMEOUT):
        self.reconciler = reconciler
        self.lock = PollLock("poll", lock_timeout)
        self._triggered: set[asyncio.Task] = set()

    async def _run_exclusive(self, label: str, work: Callable[[], Awaitable[Any]], default: Any = None) -> Any:
        """Run ``work`` under the poll lock; errors are logged, never raised."""
        try:
            async with self.lock.hold():
                return await work()
        except PollBusy as e:
            logger.warning(f"{label} skipped, another pass is running: {e}")
        except Exception as e:
            logger.error(f"Error while {label}: {e}", exc_info=True)
        return default

    def trigger(self, kind: PollKind) -> asyncio.Task:
        """Schedule a poll pass and return without waiting for it."""
        task = asyncio.create_task(self.poll(kind), name=f"poll_{kind.value}")
        self._triggered.add(task)
        task.add_done_callback(self._triggered.discard)
        return task

    async def poll(self, kind: PollKind):
        """Run one poll pass under the lock."""

        async def work():
            if kind is PollKind.LONG:
                # Reserved for discovery on its own interval
                logger.info("Long poll: nothing yet...")
            else:
                logger.info("Short poll: update nodes")
                await self.reconciler.query_all()

        await self._run_exclusive(f"{kind.value} polling", work)

    async def discover(self) -> int:
        """Run discovery under the lock.

        Returns:
            Number of devices created, 0 when busy or failed
        """
        return await self._run_exclusive("discovering", self.reconciler.discover, default=0)

    async def query_node(self, node: Node):
        """Query a single node under the lock."""
        await self._run_exclusive(f"querying {node.address}", node.query)

    async def shutdown(self, timeout: Optional[float] = None):
        """Let running passes finish, then run a final short and long poll."""
        if self._triggered:
            await asyncio.wait(list(self._triggered), timeout=timeout)
        await self.poll(PollKind.SHORT)
        await self.poll(PollKind.LONG)
