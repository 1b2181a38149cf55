"""Caller identity and origin checks."""

from __future__ import annotations

from typing import Iterable

from starlette.requests import Request

UNKNOWN_IDENTITY = "unknown"


def client_identity(request: Request, *, trust_proxy_headers: bool = True) -> str:
    """Best-effort caller address used as the rate-limit key.

    Proxy headers are client-controlled unless a trusted proxy rewrites them,
    so any caller can pick its own identity when they are honoured.
    """
    if trust_proxy_headers:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first = forwarded.split(",", 1)[0].strip()
            if first:
                return first
        real_ip = (request.headers.get("x-real-ip") or "").strip()
        if real_ip:
            return real_ip
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_IDENTITY


def normalize_origin(origin: str) -> str:
    return origin.strip().rstrip("/").lower()


def is_allowed_origin(origin: str | None, allowed: Iterable[str]) -> bool:
    """Absent origins are same-origin or non-browser callers and always pass."""
    if origin is None or not origin.strip():
        return True
    candidate = normalize_origin(origin)
    return any(candidate == normalize_origin(item) for item in allowed)
