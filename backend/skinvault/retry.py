import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from .errors import CatalogError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    base_delay: float = 1.0,
    retry_on: tuple[type[BaseException], ...] = (CatalogError,),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: str = "operation",
) -> T:
    """
    Run `operation` up to `attempts` times.

    After failed attempt n (1-based) waits base_delay * 2**(n-1) seconds.
    The exception from the final attempt is re-raised as-is; exceptions
    outside `retry_on` are never retried.
    """
    if attempts < 1:
        raise ValueError(f"attempts must be >= 1, got {attempts}")

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except retry_on as exc:
            if attempt == attempts:
                logger.error(f"{label} failed after {attempts} attempts: {exc}")
                raise
            delay = base_delay * 2 ** (attempt - 1)
            logger.warning(f"{label} attempt {attempt}/{attempts} failed ({exc}); retrying in {delay:.2f}s")
            await sleep(delay)

    raise AssertionError("unreachable")
