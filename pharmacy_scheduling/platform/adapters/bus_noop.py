import logging
from pharmacy_scheduling.platform.ports.event_bus import DomainEvent, EventBusPort

log = logging.getLogger("bus.noop")

class NoopEventBus(EventBusPort):
    """Logs events instead of publishing them; the default outside production."""

    async def publish(self, event: DomainEvent) -> None:
        log.info(f"[NOOP BUS] {event.event_type} {event.subject_type}={event.subject_id} org={event.org_id} payload={event.payload}")
