"""Authentication helpers for Relay administrative routes."""
from __future__ import annotations

from fastapi import HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader

api_key_header = APIKeyHeader(name="X-Relay-Key", auto_error=False)


def verify_api_key(request: Request, api_key: str = Security(api_key_header)) -> None:
    settings = request.app.state.settings
    if not settings.api_keys:
        return
    if api_key in settings.api_keys:
        return
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")
