import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_BACKOFF_BASE = 1.0  # Seconds, doubled per attempt
DEFAULT_BACKOFF_MAX = 30.0
DEFAULT_CONCURRENCY = 3
DEFAULT_BATCH_DELAY = 1.0


def backoff_delay(attempt: int, base: float = DEFAULT_BACKOFF_BASE, maximum: float = DEFAULT_BACKOFF_MAX) -> float:
    """Returns `base * 2**attempt`, capped at `maximum`."""
    return min(base * (2 ** attempt), maximum)


async def sleep_with_backoff(
    attempt: int,
    base: float = DEFAULT_BACKOFF_BASE,
    maximum: float = DEFAULT_BACKOFF_MAX,
    retry_after: Optional[float] = None,
) -> float:
    """
    Sleeps before the next retry. A server-provided Retry-After wins over the
    computed delay but is still capped at `maximum`.
    """
    if retry_after is not None and retry_after >= 0:
        sleep_time = min(retry_after, maximum)
    else:
        sleep_time = backoff_delay(attempt, base, maximum)
    await asyncio.sleep(sleep_time)
    return sleep_time


class RequestThrottle:
    """
    Enforces a minimum interval between consecutive outbound requests.
    Shared by every request a client issues, so concurrent fetches are serialized
    at their start time only.
    """

    def __init__(self, min_interval: float = 1.0):
        self.min_interval = min_interval
        self._lock = asyncio.Lock()
        self._last_request: Optional[float] = None

    async def wait(self) -> None:
        async with self._lock:
            loop = asyncio.get_running_loop()
            if self._last_request is not None:
                remaining = self.min_interval - (loop.time() - self._last_request)
                if remaining > 0:
                    await asyncio.sleep(remaining)
            self._last_request = loop.time()


async def map_in_chunks(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int = DEFAULT_CONCURRENCY,
    delay: float = DEFAULT_BATCH_DELAY,
) -> List[Union[R, BaseException]]:
    """
    Runs `worker` over `items` in fixed-size chunks. Chunks run strictly in sequence
    with `delay` seconds between them; items inside a chunk run concurrently.

    Exceptions raised by a worker are returned in place of its result so one bad
    item never aborts the batch. Result order matches `items`.
    """
    if concurrency < 1:
        raise ValueError("concurrency must be at least 1")

    results: List[Union[R, BaseException]] = []
    total_chunks = (len(items) + concurrency - 1) // concurrency

    for index in range(total_chunks):
        chunk = items[index * concurrency:(index + 1) * concurrency]
        chunk_results = await asyncio.gather(*(worker(item) for item in chunk), return_exceptions=True)
        results.extend(chunk_results)

        logger.debug(f"Processed chunk {index + 1}/{total_chunks} ({len(results)}/{len(items)} items).")

        if index < total_chunks - 1 and delay > 0:
            await asyncio.sleep(delay)

    return results
