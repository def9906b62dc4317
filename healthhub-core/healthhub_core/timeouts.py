"""
Bounded External Calls
======================
Every call to a backing store goes through ``call_with_timeout`` so that a
slow or unreachable dependency surfaces as ``StoreUnavailable`` instead of
suspending the request.
"""

import asyncio
from typing import Awaitable, TypeVar

import structlog
from redis.exceptions import RedisError

from .errors import StoreUnavailable

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def call_with_timeout(
    awaitable: Awaitable[T],
    timeout: float,
    dependency: str,
) -> T:
    """
    Await ``awaitable`` for at most ``timeout`` seconds.

    Raises:
        StoreUnavailable: on timeout, connection failure or redis error
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("dependency_timeout", dependency=dependency, timeout=timeout)
        raise StoreUnavailable(dependency, f"timed out after {timeout}s")
    except (RedisError, OSError) as e:
        logger.warning("dependency_error", dependency=dependency, error=str(e))
        raise StoreUnavailable(dependency, str(e)) from e
