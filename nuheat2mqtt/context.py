"""Process-wide state shared by the nodes, the reconciler and the poller."""

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Coroutine, Optional

from nuheat import NuHeatClient, SessionStore

if TYPE_CHECKING:
    from .hub import Hub
    from .poller import PollCoordinator

logger = logging.getLogger(__name__)


class NodeServerContext:
    """Explicitly constructed context handed to every component.

    Created once at process start and closed at process stop. Besides the
    collaborators it owns the set of fire-and-forget background tasks, so
    they are neither garbage collected mid-flight nor left running at exit.
    """

    def __init__(
        self,
        client: NuHeatClient,
        hub: "Hub",
        storage: SessionStore,
        coordinator: Optional["PollCoordinator"] = None,
    ):
        self.client = client
        self.hub = hub
        self.storage = storage
        self.coordinator = coordinator
        self._background: set[asyncio.Task] = set()
        self._reauth_task: Optional[asyncio.Task] = None

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        """Run ``coro`` in the background; its result is discarded.

        Failures are logged with their stack and never propagate.
        """
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task):
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Error with background task {task.get_name()}: {exc}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    def reauthenticate(self) -> asyncio.Task:
        """Start a background re-authentication unless one is in flight.

        The caller does not wait for it: the current unit of work is
        abandoned and the next poll picks up the refreshed session.

        The login takes the poll lock, waiting as long as needed, so it
        never overlaps the login of a discovery pass. It usually starts
        right after the pass that detected the expiry releases the lock.
        """
        if self._reauth_task is None or self._reauth_task.done():
            self._reauth_task = self.spawn(self._reauthenticate(), name="reauthenticate")
        return self._reauth_task

    async def _reauthenticate(self):
        if self.coordinator is None:
            await self.client.authenticate()
            return
        async with self.coordinator.lock.hold(bounded=False):
            await self.client.authenticate()

    @property
    def pending(self) -> int:
        """Number of background tasks still running."""
        return len(self._background)

    async def drain(self, timeout: Optional[float] = None):
        """Wait for the background tasks currently running."""
        tasks = list(self._background)
        if not tasks:
            return
        done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            logger.warning(f"Cancelling background task {task.get_name()}")
            task.cancel()

    async def close(self, timeout: float = 10.0):
        """Flush background work at process stop."""
        await self.drain(timeout)
