"""Analytics event payloads recorded for inbound requests."""
from __future__ import annotations

import ipaddress
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

UNKNOWN = "Unknown"
CLIENT_IP_HEADERS = ("client-ip", "x-forwarded-for")

_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True, slots=True)
class RequestContext:
    """What the host knows about a request once its response has been sent."""

    method: str
    url: str
    path: str
    headers: Mapping[str, str] = field(default_factory=dict)
    cookies: Mapping[str, str] = field(default_factory=dict)
    client_host: Optional[str] = None
    response_content_type: str = ""


@dataclass(frozen=True, slots=True)
class EventEnvelope:
    project_id: str
    session_id: str
    version: str

    def to_dict(self) -> Dict[str, Any]:
        return {"projectId": self.project_id, "sessionId": self.session_id, "version": self.version}


@dataclass(frozen=True, slots=True)
class AnalyticsRecord:
    time: int
    ip: str
    ua: str
    url: str
    method: str
    response_content_type: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time": self.time,
            "ip": self.ip,
            "ua": self.ua,
            "url": self.url,
            "method": self.method,
            "response_content_type": self.response_content_type,
        }


@dataclass(frozen=True, slots=True)
class CollectEvent:
    """A single event as it appears in the outbound JSON array."""

    envelope: EventEnvelope
    analytics: AnalyticsRecord

    def to_dict(self) -> Dict[str, Any]:
        return {"envelope": self.envelope.to_dict(), "analytics": self.analytics.to_dict()}


def sanitize_text(value: str) -> str:
    """Strip markup and collapse whitespace in a header value."""

    return _WHITESPACE_RE.sub(" ", _TAG_RE.sub("", value)).strip()


def _is_public(candidate: str) -> bool:
    try:
        address = ipaddress.ip_address(candidate)
    except ValueError:
        return False
    return not (
        address.is_private
        or address.is_reserved
        or address.is_loopback
        or address.is_link_local
        or address.is_unspecified
        or address.is_multicast
    )


def client_ip(context: RequestContext) -> str:
    """Return the first public address from proxy headers or the socket peer."""

    sources = [context.headers.get(name) for name in CLIENT_IP_HEADERS]
    sources.append(context.client_host)
    for source in sources:
        if not source:
            continue
        for candidate in source.split(","):
            candidate = candidate.strip()
            if _is_public(candidate):
                return candidate
    return UNKNOWN


def construct_collect_event(
    context: RequestContext,
    *,
    project_id: str,
    version: str,
    session_cookie_name: str,
    now: Optional[float] = None,
) -> CollectEvent:
    user_agent = context.headers.get("user-agent")
    envelope = EventEnvelope(
        project_id=project_id,
        session_id=context.cookies.get(session_cookie_name, ""),
        version=version,
    )
    analytics = AnalyticsRecord(
        time=int(now if now is not None else time.time()),
        ip=client_ip(context),
        ua=sanitize_text(user_agent) if user_agent else UNKNOWN,
        url=context.url,
        method=context.method or UNKNOWN,
        response_content_type=context.response_content_type,
    )
    return CollectEvent(envelope=envelope, analytics=analytics)
