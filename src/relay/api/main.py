"""FastAPI application entrypoint for Relay."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx
import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.background import BackgroundTasks

from ..core.config import Settings, get_settings
from ..core.http import build_collect_client
from ..core.logging import setup_logging
from ..db.session import configure_engine
from ..security.auth import verify_api_key
from ..telemetry.dispatch import BatchDispatcher
from ..telemetry.events import RequestContext
from ..telemetry.producer import CollectEventProducer
from ..telemetry.schedule import RecurringTask
from ..telemetry.storage import EventStore
from ..telemetry.worker import CollectWorker

logger = logging.getLogger("relay.api")


def _request_context(request: Request, content_type: str) -> RequestContext:
    return RequestContext(
        method=request.method,
        url=str(request.url),
        path=request.url.path,
        headers=dict(request.headers),
        cookies=dict(request.cookies),
        client_host=request.client.host if request.client else None,
        response_content_type=content_type,
    )


async def shutdown_collect(worker: CollectWorker, dispatcher: BatchDispatcher) -> None:
    """Flush pending events, then close the outbound client even if the flush fails."""

    try:
        await worker.flush_and_stop()
    finally:
        await dispatcher.aclose()


def _admin_router(settings: Settings, store: EventStore, worker: CollectWorker) -> APIRouter:
    router = APIRouter(
        prefix=f"{settings.api_v1_prefix}/admin/collect",
        dependencies=[Depends(verify_api_key)],
        tags=["collect"],
    )

    @router.get("/status")
    async def collect_status() -> dict:
        ready = await asyncio.to_thread(store.is_ready)
        pending = await asyncio.to_thread(store.count_pending)
        return {"ready": ready, "pending": pending, "scheduled": worker.scheduled}

    @router.post("/flush")
    async def collect_flush() -> dict:
        batches = await worker.run()
        return {"batches": batches}

    @router.post("/deactivate")
    async def collect_deactivate(
        purge: bool = Query(False, description="Drop the pending event table after flushing."),
    ) -> dict:
        batches = await worker.flush_and_stop()
        if purge:
            await asyncio.to_thread(store.drop_table)
        return {"batches": batches, "scheduled": worker.scheduled, "purged": purge}

    return router


def create_app(
    settings: Optional[Settings] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_format)
    configure_engine(settings.database_url)

    store = EventStore()
    producer = CollectEventProducer(store, settings_provider=lambda: settings)
    dispatcher = BatchDispatcher(
        settings.collect_endpoint,
        build_collect_client(settings, transport=transport),
        timeout=settings.collect_timeout_seconds,
    )
    worker = CollectWorker(
        store,
        dispatcher,
        batch_size=settings.collect_batch_size,
        trigger=RecurringTask("collect-batch", settings.collect_interval_seconds),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Initialising %s (%s)", settings.app_name, settings.environment)
        try:
            await asyncio.to_thread(store.create_table)
        except SQLAlchemyError as exc:
            logger.error("Could not provision the collect events table: %s", exc)
        if settings.collect_enabled:
            worker.schedule()
        yield
        logger.info("Shutting down %s", settings.app_name)
        await shutdown_collect(worker, dispatcher)

    app = FastAPI(title=settings.app_name, version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.dispatcher = dispatcher
    app.state.worker = worker
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def record_collect_event(request: Request, call_next):
        response = await call_next(request)
        try:
            context = _request_context(request, response.headers.get("content-type", ""))
            tasks = BackgroundTasks([response.background] if response.background else [])
            tasks.add_task(producer.on_request_complete, context)
            response.background = tasks
        except Exception as exc:  # pragma: no cover - never fail the request for analytics
            logger.debug("Skipping collect event: %s", exc)
        return response

    @app.get("/")
    async def root() -> dict:
        return {"service": settings.app_name, "message": "Relay API is online."}

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    app.include_router(_admin_router(settings, store, worker))
    return app


def run() -> None:
    uvicorn.run("relay.api.main:create_app", factory=True, host="0.0.0.0", port=8000, reload=False)
