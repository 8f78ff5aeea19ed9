"""HTTP utilities for Relay's outbound collect client."""
from __future__ import annotations

import httpx

from .config import Settings, get_settings


def build_collect_client(
    settings: Settings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create the shared client used for fire-and-forget batch sends."""

    settings = settings or get_settings()
    headers = {"Content-Type": "application/json", "User-Agent": f"{settings.app_name}/{settings.client_version}"}
    return httpx.AsyncClient(
        timeout=settings.collect_timeout_seconds,
        follow_redirects=settings.collect_max_redirects > 0,
        max_redirects=settings.collect_max_redirects,
        headers=headers,
        transport=transport,
    )
