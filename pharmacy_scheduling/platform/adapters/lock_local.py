import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from pharmacy_scheduling.core.errors import ResourceBusy
from pharmacy_scheduling.platform.ports.locks import ResourceLockPort

log = logging.getLogger("locks.local")

class LocalResourceLocks(ResourceLockPort):
    """In-process lock registry. Only safe with a single worker process."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @asynccontextmanager
    async def hold(self, resource_key: str, timeout: float):
        lock = self._locks[resource_key]
        try:
            await asyncio.wait_for(lock.acquire(), timeout=timeout)
        except asyncio.TimeoutError:
            log.warning(f"[LOCAL LOCK] timeout after {timeout}s key={resource_key}")
            raise ResourceBusy(resource_key)
        try:
            yield
        finally:
            lock.release()
