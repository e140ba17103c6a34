from pharmacy_scheduling.core.config import settings
from pharmacy_scheduling.platform.ports.event_bus import EventBusPort
from pharmacy_scheduling.platform.adapters.bus_noop import NoopEventBus
from pharmacy_scheduling.platform.adapters.bus_redis import RedisEventBus
from pharmacy_scheduling.platform.ports.locks import ResourceLockPort
from pharmacy_scheduling.platform.adapters.lock_local import LocalResourceLocks
from pharmacy_scheduling.platform.adapters.lock_redis import RedisResourceLocks

class ProviderRegistry:
    _event_bus: EventBusPort | None = None
    _resource_locks: ResourceLockPort | None = None

    @classmethod
    def event_bus(cls) -> EventBusPort:
        if cls._event_bus is None:
            prov = (settings.EVENT_BUS_PROVIDER or "noop").lower()
            if prov == "redis":
                cls._event_bus = RedisEventBus()
            else:
                cls._event_bus = NoopEventBus()
        return cls._event_bus

    @classmethod
    def resource_locks(cls) -> ResourceLockPort:
        if cls._resource_locks is None:
            if settings.LOCK_PROVIDER == "redis":
                cls._resource_locks = RedisResourceLocks()
            else:
                cls._resource_locks = LocalResourceLocks()
        return cls._resource_locks

registry = ProviderRegistry()
