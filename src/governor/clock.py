"""Time source shared by every suspension point in the engine."""

import asyncio
import time


class Clock:
    """
    Wall clock in epoch milliseconds with an async sleep.

    The tracker, the throttle queue and the executor only read time and
    suspend through this object, so tests can substitute a virtual clock.
    """

    def now(self) -> float:
        """Current time in milliseconds since the epoch."""
        return time.time() * 1000

    async def sleep(self, ms: float) -> None:
        """Suspend the calling task for ``ms`` milliseconds."""
        if ms > 0:
            await asyncio.sleep(ms / 1000)
