"""Durable pending-event store backing the collect pipeline."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..db import repository
from ..db.models import COLLECT_EVENTS_TABLE, CollectEventRecord
from ..db.session import get_engine, session_scope, table_exists

logger = logging.getLogger("relay.storage")

# Dialects whose row locks make READ COMMITTED + SELECT ... FOR UPDATE sufficient.
_ROW_LOCKING_DIALECTS = frozenset({"postgresql", "mysql", "mariadb"})


@dataclass(frozen=True, slots=True)
class PendingEvent:
    """A row claimed from the pending-event table."""

    id: int
    payload: str
    created_at: Optional[datetime] = None


class ClaimConsistencyError(RuntimeError):
    """Raised inside a claim transaction when the delete count disagrees with the read."""


class EventStore:
    """Append and claim-and-remove operations over the collect events table."""

    def __init__(self) -> None:
        self._table_exists: Optional[bool] = None

    def is_ready(self) -> bool:
        # Only a positive lookup is cached; a missing table is checked again next call.
        if self._table_exists:
            return True
        try:
            self._table_exists = table_exists(COLLECT_EVENTS_TABLE)
        except SQLAlchemyError as exc:
            logger.warning("Collect events table lookup failed: %s", exc)
            return False
        return self._table_exists

    def create_table(self) -> None:
        CollectEventRecord.__table__.create(bind=get_engine(), checkfirst=True)
        self._table_exists = True
        logger.info("Collect events table ready")

    def drop_table(self) -> None:
        CollectEventRecord.__table__.drop(bind=get_engine(), checkfirst=True)
        self._table_exists = False
        logger.info("Collect events table dropped")

    def append(self, event: Mapping[str, Any]) -> bool:
        """Queue one event. Returns False instead of raising on any failure."""

        if not self.is_ready():
            return False
        try:
            payload = json.dumps(event)
        except (TypeError, ValueError) as exc:
            logger.warning("Dropping unserializable collect event: %s", exc)
            return False
        try:
            with session_scope() as session:
                repository.insert_collect_event(session, payload)
        except SQLAlchemyError as exc:
            logger.warning("Failed to queue collect event: %s", exc)
            return False
        return True

    def claim_and_remove(self) -> List[PendingEvent]:
        """Atomically read and delete every pending row, in ascending id order.

        Returns an empty list, leaving the table untouched, when the number of
        rows deleted differs from the number read. Database errors roll the
        transaction back and propagate.
        """

        if not self.is_ready():
            return []
        try:
            with session_scope(**self._claim_options()) as session:
                rows = repository.select_pending_for_update(session)
                if not rows:
                    return []
                max_id = rows[-1].id
                deleted = repository.delete_through(session, max_id)
                if deleted != len(rows):
                    raise ClaimConsistencyError(f"read {len(rows)} pending rows but deleted {deleted}")
        except ClaimConsistencyError as exc:
            logger.warning("Claim rolled back: %s", exc)
            return []
        claimed = [PendingEvent(id=row.id, payload=row.payload, created_at=row.created_at) for row in rows]
        logger.debug("Claimed %s pending events through id %s", len(claimed), max_id)
        return claimed

    def count_pending(self) -> int:
        if not self.is_ready():
            return 0
        with session_scope() as session:
            return repository.count_pending(session)

    @staticmethod
    def _claim_options() -> dict:
        if get_engine().dialect.name in _ROW_LOCKING_DIALECTS:
            return {"isolation_level": "READ COMMITTED"}
        return {}
