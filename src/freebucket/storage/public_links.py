"""Helpers for building public object URLs."""

from __future__ import annotations

from urllib.parse import quote, urljoin


def build_public_url(domain: str, prefix: str, key: str) -> str:
    """Return ``https://<domain>/<prefix>/<key>``; ``domain`` may carry a scheme."""
    base = domain.strip().rstrip("/")
    if "://" not in base:
        base = f"https://{base}"
    path = "/".join(part.strip("/") for part in (prefix, key) if part and part.strip("/"))
    return urljoin(base + "/", quote(path))
