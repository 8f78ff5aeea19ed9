"""Fire-and-forget delivery of event batches to the collect endpoint."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Mapping, Optional, Sequence, Set

import httpx

logger = logging.getLogger("relay.dispatch")


class BatchDispatcher:
    """Posts each batch as one JSON array without waiting for the response."""

    def __init__(self, endpoint: str, client: httpx.AsyncClient, *, timeout: float = 1.0) -> None:
        self.endpoint = endpoint
        self.timeout = timeout
        self.attempted = 0
        self._client = client
        self._in_flight: Set[asyncio.Task[None]] = set()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def send(self, events: Sequence[Mapping[str, Any]]) -> None:
        """Submit a batch and return immediately. Must be called from a running event loop."""

        try:
            body = json.dumps(list(events))
        except (TypeError, ValueError) as exc:
            logger.warning("Dropping batch of %s events that could not be serialized: %s", len(events), exc)
            return
        task = asyncio.get_running_loop().create_task(self._post(body))
        self._in_flight.add(task)
        task.add_done_callback(self._forget)
        self.attempted += 1

    async def _post(self, body: str) -> None:
        try:
            response = await self._client.post(
                self.endpoint,
                content=body,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            # Delivery is best effort; the batch is gone either way.
            logger.debug("Collect batch send failed: %s", exc)
            return
        logger.debug("Collect batch answered with status %s", response.status_code)

    def _forget(self, task: asyncio.Task[None]) -> None:
        self._in_flight.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Collect batch send raised: %r", task.exception())

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait up to ``timeout`` for in-flight sends, cancelling whatever is left."""

        if not self._in_flight:
            return
        pending = set(self._in_flight)
        _, still_running = await asyncio.wait(pending, timeout=self.timeout if timeout is None else timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        await self._client.aclose()
