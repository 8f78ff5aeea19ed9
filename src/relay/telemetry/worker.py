"""Periodic drain of pending collect events into outbound batches."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Iterator, List, Sequence, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from .dispatch import BatchDispatcher
from .schedule import RecurringTask
from .storage import EventStore, PendingEvent

logger = logging.getLogger("relay.worker")

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 50
DEFAULT_INTERVAL_SECONDS = 300


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Yield consecutive slices of at most ``size`` items."""

    if size < 1:
        raise ValueError(f"chunk size must be >= 1, got {size}")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


def build_events_from_rows(rows: Sequence[PendingEvent]) -> List[Dict[str, Any]]:
    """Decode claimed payloads, dropping any row that is not a JSON object."""

    events: List[Dict[str, Any]] = []
    for row in rows:
        try:
            payload = json.loads(row.payload)
        except ValueError:
            payload = None
        if isinstance(payload, dict):
            events.append(payload)
        else:
            logger.warning("Dropping malformed collect event %s", row.id)
    return events


class CollectWorker:
    """Claims every pending event and hands it to the dispatcher in chunks."""

    def __init__(
        self,
        store: EventStore,
        dispatcher: BatchDispatcher,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        trigger: RecurringTask | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.store = store
        self.dispatcher = dispatcher
        self.batch_size = batch_size
        self.trigger = trigger or RecurringTask("collect-batch", DEFAULT_INTERVAL_SECONDS)

    async def run(self) -> int:
        """Run one drain cycle and return the number of chunks dispatched."""

        if not await asyncio.to_thread(self.store.is_ready):
            return 0
        try:
            rows = await asyncio.to_thread(self.store.claim_and_remove)
        except SQLAlchemyError as exc:
            logger.error("Claiming pending collect events failed: %s", exc)
            return 0
        if not rows:
            return 0

        events = build_events_from_rows(rows)
        dispatched = 0
        for chunk in chunked(events, self.batch_size):
            try:
                self.dispatcher.send(chunk)
            except Exception as exc:
                logger.error("Submitting a batch of %s collect events failed: %s", len(chunk), exc)
                continue
            dispatched += 1
        logger.info("Drained %s collect events into %s batches", len(events), dispatched)
        return dispatched

    def schedule(self) -> bool:
        return self.trigger.schedule(self.run)

    @property
    def scheduled(self) -> bool:
        return self.trigger.scheduled

    async def flush_and_stop(self) -> int:
        """Drain once more, then stop the recurring trigger."""

        try:
            dispatched = await self.run()
        finally:
            await self.trigger.clear()
        return dispatched
