"""Database models for Relay."""
from __future__ import annotations

from sqlalchemy import BigInteger, Column, DateTime, Integer, Text, func

from .session import Base

COLLECT_EVENTS_TABLE = "collect_events"


class CollectEventRecord(Base):
    """One pending analytics event awaiting the next drain cycle."""

    __tablename__ = COLLECT_EVENTS_TABLE
    # AUTOINCREMENT keeps SQLite from handing out the ids of drained rows again.
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    payload = Column(Text, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
