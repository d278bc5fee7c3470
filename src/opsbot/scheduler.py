"""Fixed-delay driver for the status broadcaster."""

import asyncio
import logging

from opsbot.broadcaster import StatusBroadcaster

logger = logging.getLogger(__name__)


async def run(broadcaster: StatusBroadcaster, interval: float) -> None:
    """
    Tick the broadcaster forever, sleeping `interval` seconds between ticks.

    The first tick happens immediately. Nothing raised by a tick escapes the
    loop; the next tick simply tries again.
    """
    while True:
        try:
            state = await broadcaster.tick()
            logger.debug("Status tick finished in state %s", state.value)
        except Exception:
            logger.exception("Status tick failed unexpectedly")

        await asyncio.sleep(interval)


class StatusScheduler:
    """
    Runs the broadcaster loop as a single background asyncio task.

    The task shares no mutable state with command handlers, so a defect in it
    cannot take down the gateway connection or the webhook server.
    """

    def __init__(self, broadcaster: StatusBroadcaster, interval: float = 600.0) -> None:
        """
        Initialize the StatusScheduler.

        Args:
            broadcaster: The broadcaster to drive.
            interval: Delay between ticks (in seconds). Default 600s.
        """
        self._broadcaster = broadcaster
        self._interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        """Check if the background task is alive."""
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the background task on the running event loop."""
        if self.is_running:
            return

        self._task = asyncio.create_task(
            run(self._broadcaster, self._interval),
            name="status-broadcaster",
        )
        self._task.add_done_callback(self._on_done)

    async def stop(self) -> None:
        """Cancel the background task and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @staticmethod
    def _on_done(task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Status broadcaster task died", exc_info=exc)
