"""Database models for the local sync store."""
from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Integer,
    JSON,
    String,
    Text,
)

from vocasync.models.base import Base, TimestampMixin


class QueueEntryRow(Base, TimestampMixin):
    """One record waiting for (or already acknowledged by) the server.

    Rows are never deleted; only ``synced`` and the diagnostic columns change.
    """

    __tablename__ = "sync_queue"

    id = Column(Integer, primary_key=True, autoincrement=True)
    queue = Column(String, nullable=False, index=True)  # e.g. "unsync_progress"
    captured_at = Column(BigInteger, nullable=False, index=True)  # epoch millis
    payload = Column(JSON, nullable=False)
    synced = Column(Boolean, default=False, nullable=False)
    synced_at = Column(DateTime(timezone=True))
    attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(String)
    rejected = Column(Boolean, default=False, nullable=False)  # invalid payload, skipped by flushes


class KeyValue(Base, TimestampMixin):
    """JSON-encoded value stored under a string key."""

    __tablename__ = "key_values"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
