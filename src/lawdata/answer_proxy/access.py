"""Origin/referer allow-list check and the CORS headers that go with it."""

from __future__ import annotations

from typing import Iterable, Optional
from urllib.parse import urlsplit

from .errors import (
    err_forbidden_origin,
    err_forbidden_referer,
    err_invalid_referer_format,
    err_missing_origin,
)

ALLOWED_METHODS = "POST, OPTIONS"
ALLOWED_HEADERS = "Content-Type, Authorization"


def is_origin_allowed(origin: Optional[str], allowed: Iterable[str]) -> bool:
    if not origin:
        return False
    return origin in allowed


def referer_origin(referer: str) -> str:
    """Reduce a referer URL to ``scheme://hostname``.

    The port is dropped, so a referer on a non-default port never matches an
    allow-list entry without one.
    """

    parts = urlsplit(referer.strip())
    if not parts.scheme or not parts.hostname:
        raise ValueError(f"Referer is not an absolute URL: {referer!r}")
    return f"{parts.scheme}://{parts.hostname}"


def authorize_request(
    origin: Optional[str], referer: Optional[str], allowed: Iterable[str]
) -> str:
    """Return the caller's origin, or raise a 403 ``ProxyError``.

    A present Origin header is authoritative; the Referer is consulted only
    when Origin is missing.
    """

    allowed = list(allowed)
    if origin:
        if not is_origin_allowed(origin, allowed):
            raise err_forbidden_origin()
        return origin
    if referer:
        try:
            candidate = referer_origin(referer)
        except ValueError as exc:
            raise err_invalid_referer_format() from exc
        if not is_origin_allowed(candidate, allowed):
            raise err_forbidden_referer()
        return candidate
    raise err_missing_origin()


def cors_headers(origin: str) -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Methods": ALLOWED_METHODS,
        "Access-Control-Allow-Headers": ALLOWED_HEADERS,
        "Vary": "Origin",
    }


def stream_headers(origin: str) -> dict[str, str]:
    headers = cors_headers(origin)
    headers.update(
        {
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        }
    )
    return headers
