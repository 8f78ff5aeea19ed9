"""Database repository helpers."""
from __future__ import annotations

from typing import List

from sqlalchemy import delete, func, select
from sqlalchemy.engine import Row
from sqlalchemy.orm import Session

from .models import CollectEventRecord


def insert_collect_event(session: Session, payload: str) -> int:
    """Insert one pending event and return its assigned identifier."""

    record = CollectEventRecord(payload=payload)
    session.add(record)
    session.flush()
    return record.id


def select_pending_for_update(session: Session) -> List[Row]:
    """Read every pending row in id order, locking the rows read."""

    stmt = (
        select(CollectEventRecord.id, CollectEventRecord.payload, CollectEventRecord.created_at)
        .order_by(CollectEventRecord.id.asc())
        .with_for_update()
    )
    return list(session.execute(stmt).all())


def delete_through(session: Session, max_id: int) -> int:
    """Delete every row up to and including ``max_id``; return the delete count."""

    result = session.execute(
        delete(CollectEventRecord)
        .where(CollectEventRecord.id <= max_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def count_pending(session: Session) -> int:
    return session.execute(select(func.count()).select_from(CollectEventRecord)).scalar_one()
