from contextlib import AbstractAsyncContextManager
from typing import Protocol, runtime_checkable

@runtime_checkable
class ResourceLockPort(Protocol):
    """Advisory lock scoped to one bookable resource (pharmacist).

    ``hold`` must raise ``ResourceBusy`` when the lock is not acquired within
    ``timeout`` seconds; it never blocks indefinitely.
    """
    def hold(self, resource_key: str, timeout: float) -> AbstractAsyncContextManager[None]: ...
