from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Protocol, runtime_checkable

@dataclass(frozen=True)
class DomainEvent:
    """What leaves the outbox. ``subject_id`` keys ordering per appointment or schedule."""
    event_id: str
    org_id: str
    event_type: str
    subject_type: str
    subject_id: str
    occurred_at: datetime | None
    payload: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["occurred_at"] = self.occurred_at.isoformat() if self.occurred_at else None
        return d

@runtime_checkable
class EventBusPort(Protocol):
    async def publish(self, event: DomainEvent) -> None: ...
