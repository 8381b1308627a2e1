"""Single-flight runs and fixed-interval loops for the bots."""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class SingleFlight:
    """At most one run of a job at a time; overlapping calls are skipped."""

    def __init__(self, name: str):
        self.name = name
        self._lock = asyncio.Lock()
        self.skipped = 0

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def run(self, job: Callable[[], Awaitable[Any]]) -> Optional[Any]:
        """Run ``job`` unless a previous run is in progress; None when skipped."""
        if self._lock.locked():
            self.skipped += 1
            logger.warning(
                "Previous run still in progress, skipping",
                extra={"job": self.name, "skipped": self.skipped},
            )
            return None
        async with self._lock:
            return await job()


async def run_periodically(
    name: str,
    interval: float,
    job: Callable[[], Awaitable[Any]],
    shutdown: asyncio.Event,
    run_immediately: bool = True,
):
    """Call ``job`` every ``interval`` seconds until ``shutdown`` is set.

    Errors are logged and the loop carries on with the next tick.
    """
    if not run_immediately:
        if await _wait(shutdown, interval):
            return
    while not shutdown.is_set():
        try:
            await job()
        except Exception as e:
            logger.error(f"{name} loop error: {e}", exc_info=True)
        if await _wait(shutdown, interval):
            return


async def _wait(shutdown: asyncio.Event, seconds: float) -> bool:
    """Sleep up to ``seconds``; True if shutdown was requested meanwhile."""
    try:
        await asyncio.wait_for(shutdown.wait(), timeout=seconds)
        return True
    except asyncio.TimeoutError:
        return False
