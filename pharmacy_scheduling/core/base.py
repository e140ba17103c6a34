import uuid
from datetime import datetime, timezone
from sqlalchemy import TIMESTAMP, text
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column


def utcnow() -> datetime:
    """Default clock. Services take an injectable one for tests."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


_STAMP = TIMESTAMP(timezone=True)


class WorkplaceRecordMixin:
    """Columns shared by every scheduling table.

    ``org_id`` scopes a row to one workplace. ``version`` is the optimistic
    concurrency counter checked on appointment writes. Rows are retired by
    setting ``deleted_at`` and are then invisible to every query.
    """

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID] = mapped_column(default=uuid.UUID(int=1), index=True)
    version: Mapped[int] = mapped_column(default=1)
    created_at: Mapped[datetime] = mapped_column(_STAMP, default=utcnow, server_default=text("CURRENT_TIMESTAMP"))
    updated_at: Mapped[datetime] = mapped_column(
        _STAMP, default=utcnow, onupdate=utcnow, server_default=text("CURRENT_TIMESTAMP")
    )
    deleted_at: Mapped[datetime | None] = mapped_column(_STAMP, nullable=True)

    def retire(self, at: datetime) -> None:
        self.deleted_at = at

    @declared_attr.directive
    def __tablename__(cls) -> str:
        return cls.__name__.lower()
