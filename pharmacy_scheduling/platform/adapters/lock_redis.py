import asyncio
import logging
from contextlib import asynccontextmanager
from redis.asyncio import from_url as redis_from_url
from redis.exceptions import LockError
from pharmacy_scheduling.core.config import settings
from pharmacy_scheduling.core.errors import ResourceBusy
from pharmacy_scheduling.platform.ports.locks import ResourceLockPort

log = logging.getLogger("locks.redis")

class RedisResourceLocks(ResourceLockPort):
    """Cross-process lock; TTL bounds how long a crashed holder can block a resource.

    A live holder keeps extending the TTL, so a slow write never loses the lock
    to a second writer while it is still running.
    """

    def __init__(self, ttl_seconds: float | None = None):
        if not settings.REDIS_URL:
            raise RuntimeError("REDIS_URL not configured")
        self.redis = redis_from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
        self.ttl = ttl_seconds or settings.LOCK_TTL_SECONDS

    async def _keep_alive(self, lock, resource_key: str):
        while True:
            await asyncio.sleep(self.ttl / 3)
            try:
                await lock.reacquire()
            except LockError:
                log.error(f"[REDIS LOCK] lost while held key={resource_key}")
                return

    @asynccontextmanager
    async def hold(self, resource_key: str, timeout: float):
        lock = self.redis.lock(f"scheduling:lock:{resource_key}", timeout=self.ttl, blocking_timeout=timeout)
        if not await lock.acquire():
            log.warning(f"[REDIS LOCK] timeout after {timeout}s key={resource_key}")
            raise ResourceBusy(resource_key)
        renew = asyncio.create_task(self._keep_alive(lock, resource_key), name=f"lock-renew:{resource_key}")
        try:
            yield
        finally:
            renew.cancel()
            await asyncio.gather(renew, return_exceptions=True)
            try:
                await lock.release()
            except LockError:
                log.error(f"[REDIS LOCK] lock expired before release key={resource_key}")
