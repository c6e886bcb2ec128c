"""
Declarative base, timestamp mixin, and a UTC-aware DateTime type.

PostgreSQL hands back aware datetimes while SQLite drops the offset; UTCDateTime
normalises both so expiry comparisons never mix naive and aware values.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from booking_core.core import clock


class UTCDateTime(TypeDecorator):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    created_at = Column(UTCDateTime(), nullable=False, default=lambda: clock.utcnow())
    updated_at = Column(
        UTCDateTime(),
        nullable=False,
        default=lambda: clock.utcnow(),
        onupdate=lambda: clock.utcnow(),
    )
