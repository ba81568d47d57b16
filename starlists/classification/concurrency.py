import asyncio
import logging
from typing import Awaitable, Callable, List, Sequence, TypeVar, Union

logger = logging.getLogger("starlists.pipeline")

T = TypeVar("T")
R = TypeVar("R")


async def run_with_concurrency(
    items: Sequence[T],
    operation: Callable[[T], Awaitable[R]],
    concurrency: int,
) -> List[Union[R, BaseException]]:
    """Run ``operation`` over ``items`` with at most ``concurrency`` calls in flight.

    ``result[i]`` always belongs to ``items[i]``. An exception raised by one
    call is stored in that call's slot instead of propagating, so sibling
    workers keep draining the queue.
    """
    if concurrency < 1:
        raise ValueError("concurrency must be at least 1")
    total = len(items)
    results: List[Union[R, BaseException, None]] = [None] * total
    if total == 0:
        return []
    cursor = 0

    async def worker() -> None:
        nonlocal cursor
        while cursor < total:
            index = cursor
            cursor += 1
            try:
                results[index] = await operation(items[index])
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.debug("Worker operation failed for item %s: %s", index, exc)
                results[index] = exc

    workers = [asyncio.create_task(worker()) for _ in range(min(concurrency, total))]
    await asyncio.gather(*workers)
    return results  # type: ignore[return-value]
