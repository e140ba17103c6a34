import json
import logging
from redis.asyncio import from_url as redis_from_url
from pharmacy_scheduling.core.config import settings
from pharmacy_scheduling.platform.ports.event_bus import DomainEvent, EventBusPort

log = logging.getLogger("bus.redis")

class RedisEventBus(EventBusPort):
    """One Redis stream for every scheduling event; consumers filter on ``event_type``."""

    def __init__(self, stream: str | None = None):
        if not settings.REDIS_URL:
            raise RuntimeError("REDIS_URL not configured")
        self.redis = redis_from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
        self.stream = stream or settings.REDIS_STREAM or "scheduling.events"

    async def publish(self, event: DomainEvent) -> None:
        # stream fields must be flat strings
        fields = {
            "event_id": event.event_id,
            "event_type": event.event_type,
            "org_id": event.org_id,
            "subject": f"{event.subject_type}:{event.subject_id}",
            "body": json.dumps(event.to_dict(), default=str),
        }
        entry_id = await self.redis.xadd(self.stream, fields, maxlen=settings.REDIS_STREAM_MAXLEN, approximate=True)
        log.debug(f"[REDIS BUS] {event.event_type} -> {self.stream} {entry_id}")
