import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger("starlists.pipeline")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    initial_delay: float = 0.5
    max_delay: float = 5.0

    def delay_for(self, attempt: int) -> float:
        return min(self.initial_delay * (2 ** attempt), self.max_delay)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    label: str = "operation",
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    no_retry_on: Tuple[Type[BaseException], ...] = (),
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> T:
    sleeper = sleep or asyncio.sleep
    attempt = 0
    while True:
        try:
            return await operation()
        except retry_on as exc:
            if no_retry_on and isinstance(exc, no_retry_on):
                raise
            if attempt >= policy.max_retries:
                logger.warning("%s failed after %s attempts: %s", label, attempt + 1, exc)
                raise
            wait = policy.delay_for(attempt)
            logger.warning(
                "%s failed on attempt %s/%s: %s. Retrying in %ss",
                label,
                attempt + 1,
                policy.max_retries + 1,
                exc,
                wait,
            )
            await sleeper(wait)
            attempt += 1
