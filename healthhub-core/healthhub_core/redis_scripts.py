"""
Redis Lua Scripts
=================
Scripts are loaded once with SCRIPT LOAD and run by SHA. Redis forgets
loaded scripts on restart, failover or SCRIPT FLUSH; the next EVALSHA then
fails with NOSCRIPT and the script is loaded again before a single retry.
"""

from typing import Any, Optional, Sequence

import structlog
from redis.exceptions import NoScriptError

from .timeouts import call_with_timeout

logger = structlog.get_logger(__name__)


class CachedScript:
    """A Lua script bound to one Redis client."""

    def __init__(self, redis_client, source: str, timeout: float, dependency: str):
        self.redis = redis_client
        self.source = source
        self.timeout = timeout
        self.dependency = dependency
        self.sha: Optional[str] = None

    async def _load(self) -> str:
        self.sha = await self.redis.script_load(self.source)
        return self.sha

    async def _run(self, keys: Sequence[str], args: Sequence[Any]):
        sha = self.sha or await self._load()
        try:
            return await self.redis.evalsha(sha, len(keys), *keys, *args)
        except NoScriptError:
            logger.warning("lua_script_reloaded", dependency=self.dependency)
            sha = await self._load()
            return await self.redis.evalsha(sha, len(keys), *keys, *args)

    async def __call__(self, keys: Sequence[str], args: Sequence[Any]):
        """
        Run the script.

        Raises:
            StoreUnavailable: on timeout or any other Redis failure
        """
        return await call_with_timeout(self._run(keys, args), self.timeout, self.dependency)
