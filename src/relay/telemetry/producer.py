"""Builds and queues one analytics event per completed request."""
from __future__ import annotations

import logging
from typing import Callable

from ..core.config import Settings, get_settings
from .events import RequestContext, construct_collect_event
from .storage import EventStore

logger = logging.getLogger("relay.producer")


def _under_prefix(path: str, prefix: str) -> bool:
    """Match whole path segments so /admin does not cover /administration."""

    base = prefix.rstrip("/")
    return path == base or path.startswith(base + "/")


class CollectEventProducer:
    """End-of-request hook that appends a collect event to the store."""

    def __init__(self, store: EventStore, settings_provider: Callable[[], Settings] = get_settings) -> None:
        self.store = store
        self._settings_provider = settings_provider

    def should_record(self, context: RequestContext, settings: Settings) -> bool:
        if context.method.upper() != "GET":
            return False
        if any(_under_prefix(context.path, prefix) for prefix in settings.collect_excluded_prefixes):
            return False
        return settings.collect_configured

    def on_request_complete(self, context: RequestContext) -> None:
        # Runs after every response; nothing raised here may reach the host.
        try:
            settings = self._settings_provider()
            if not self.should_record(context, settings):
                return
            event = construct_collect_event(
                context,
                project_id=settings.project_id,
                version=settings.client_version,
                session_cookie_name=settings.session_cookie_name,
            )
            self.store.append(event.to_dict())
        except Exception as exc:
            logger.debug("Collect event discarded: %s", exc)
