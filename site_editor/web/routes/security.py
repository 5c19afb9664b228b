"""
Origin checks for the editor's write endpoints.

The editor script runs on the static site, which usually lives on another
origin than this service. Writes are therefore accepted from the service's own
origin and from the site origins listed in SITE_EDITOR_ALLOWED_ORIGINS
(comma separated). Requests without Origin/Referer (CLI, curl) are allowed.

Proxy awareness: X-Forwarded-Proto/Host are only trusted when
SITE_EDITOR_TRUST_PROXY=true.
"""
from __future__ import annotations

import os
from typing import Optional, Set, Tuple
from urllib.parse import urlparse

from fastapi import Request


Origin = Tuple[str, str, int]


def _default_port(scheme: str) -> int:
    return 443 if scheme == "https" else 80


def parse_origin(url: str) -> Origin:
    p = urlparse(url)
    if not p.scheme or not p.hostname:
        raise ValueError("invalid_origin")
    scheme = p.scheme.lower()
    return scheme, p.hostname.lower(), int(p.port or _default_port(scheme))


def allowed_origins() -> Set[Origin]:
    origins: Set[Origin] = set()
    for item in (os.getenv("SITE_EDITOR_ALLOWED_ORIGINS") or "").split(","):
        item = item.strip()
        if not item:
            continue
        try:
            origins.add(parse_origin(item))
        except ValueError:
            continue
    return origins


def _server_origin(request: Request) -> Origin:
    trust_proxy = (os.getenv("SITE_EDITOR_TRUST_PROXY", "false") or "").lower() == "true"
    scheme = (request.url.scheme or "http").lower()
    host = (request.url.hostname or "").lower()
    port: Optional[int] = request.url.port
    if trust_proxy:
        proto = (request.headers.get("x-forwarded-proto") or "").split(",")[0].strip().lower()
        fwd_host = (request.headers.get("x-forwarded-host") or "").split(",")[0].strip().lower()
        if proto:
            scheme = proto
        if fwd_host:
            host, _, port_str = fwd_host.partition(":")
            port = int(port_str) if port_str.isdigit() else None
    return scheme, host, int(port or _default_port(scheme))


def is_allowed_origin(request: Request) -> bool:
    """True when the request comes from this service or an allowed site origin."""
    raw = request.headers.get("origin") or request.headers.get("referer")
    if not raw:
        return True
    try:
        origin = parse_origin(raw)
    except ValueError:
        return False
    return origin == _server_origin(request) or origin in allowed_origins()


__all__ = ["allowed_origins", "is_allowed_origin", "parse_origin"]
