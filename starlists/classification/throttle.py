import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

logger = logging.getLogger("starlists.pipeline")


class Throttle:
    """Minimum spacing between calls, owned by a single run."""

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self._min_interval = max(0.0, min_interval)
        self._clock = clock
        self._sleep = sleep or asyncio.sleep
        self._last_call: Optional[float] = None
        self._lock = asyncio.Lock()

    @classmethod
    def per_minute(cls, rpm: int, **kwargs) -> "Throttle":
        interval = 60.0 / rpm if rpm > 0 else 0.0
        return cls(interval, **kwargs)

    async def wait(self) -> None:
        async with self._lock:
            if self._last_call is not None:
                elapsed = self._clock() - self._last_call
                if elapsed < self._min_interval:
                    wait = self._min_interval - elapsed
                    logger.debug("Throttling for %.2fs", wait)
                    await self._sleep(wait)
            self._last_call = self._clock()
